"""WebSocket module for the terminal channel."""

from .manager import ConnectionManager, WebSocketConfig
from .router import router

__all__ = ["ConnectionManager", "WebSocketConfig", "router"]
