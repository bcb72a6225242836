"""Infor HMS connector"""

from .connector import InforConnector

__all__ = ["InforConnector"]
