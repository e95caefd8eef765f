"""
Transport: the text-frame connection to a session endpoint.
"""

from live_session.components.transport.base import Transport, TransportState
from live_session.components.transport.websocket import WebSocketTransport, build_session_url

__all__ = [
    "Transport",
    "TransportState",
    "WebSocketTransport",
    "build_session_url",
]
