"""
Remote control surface: a WebSocket server that marshals control messages
onto the tick thread, and the matching async client.
"""

from .client import ControlClient
from .server import ControlServer

__all__ = ["ControlClient", "ControlServer"]
