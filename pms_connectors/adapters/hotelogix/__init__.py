"""Hotelogix PMS connector"""

from .connector import HotelogixConnector

__all__ = ["HotelogixConnector"]
