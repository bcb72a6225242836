"""SIHOT PMS connector"""

from .connector import SihotConnector

__all__ = ["SihotConnector"]
