"""
WebSocket server and event handling for Codenames rooms.
"""

from .events import *
from .server import app

__all__ = ["app"]
