"""
PMS vendor adapters

Vendor packages are discovered and imported by the factory; this package
only re-exports the shared base classes.
"""

from .base import BaseAdapter, OAuthAdapterMixin, RestEndpoints, RestVendorAdapter, VendorProfile

__all__ = [
    "BaseAdapter",
    "OAuthAdapterMixin",
    "RestEndpoints",
    "RestVendorAdapter",
    "VendorProfile",
]
