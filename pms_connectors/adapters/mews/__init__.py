"""Mews Connector API adapter"""

from .connector import MewsConnector

__all__ = ["MewsConnector"]
