"""Hyatt OPERA connector"""

from .connector import HYATT_BRAND_CODES, WOH_TIERS, HyattOperaConnector

__all__ = ["HyattOperaConnector", "HYATT_BRAND_CODES", "WOH_TIERS"]
