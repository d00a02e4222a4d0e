# infrastructure/realtime/__init__.py
"""Transporte realtime concreto (websockets)."""

from .websocket_transport import (
    WebSocketSession,
    WebSocketTransport,
    decode_frame,
    encode_frame,
)

__all__ = ["WebSocketTransport", "WebSocketSession", "encode_frame", "decode_frame"]
