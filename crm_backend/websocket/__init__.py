"""
WebSocket package for real-time communication.

This package provides:
- Connection management with process-local rooms
- Reference-counted presence tracking
- Bearer token (or bare user id) handshake
- Call room signaling relay
- Broadcast service used by the HTTP API
"""

from crm_backend.websocket.connection_manager import ConnectionManager, manager, ws_metrics
from crm_backend.websocket.broadcast import WebSocketBroadcast, ws_broadcast

__all__ = [
    "ConnectionManager",
    "manager",
    "ws_metrics",
    "WebSocketBroadcast",
    "ws_broadcast",
]
