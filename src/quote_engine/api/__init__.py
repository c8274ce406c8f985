"""
HTTP and WebSocket API for quote runs.
"""

from .routes import router, set_dependencies
from .websocket import send_run_update, watchers, websocket_endpoint

__all__ = [
    "router",
    "set_dependencies",
    "watchers",
    "send_run_update",
    "websocket_endpoint",
]
