"""RoomKey PMS connector"""

from .connector import RoomKeyConnector

__all__ = ["RoomKeyConnector"]
