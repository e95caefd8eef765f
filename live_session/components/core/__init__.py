"""
Core components: constants, exceptions, phase state machine.
"""

from live_session.components.core.constants import (
    WSCloseCode,
    SessionConstants,
    FrameType,
    ConnectionStatus,
    PointType,
)
from live_session.components.core.exceptions import (
    LiveSessionError,
    TransportError,
    TransportConnectError,
    ConnectTimeoutError,
    DisconnectedError,
    InvalidStateError,
    JoinTimeoutError,
    NoActiveActivityError,
    StaleActivityError,
    MalformedFrameError,
    ServerRejectedError,
)
from live_session.components.core.state import SessionPhase, PhaseMachine, can_transition

__all__ = [
    "WSCloseCode",
    "SessionConstants",
    "FrameType",
    "ConnectionStatus",
    "PointType",
    "LiveSessionError",
    "TransportError",
    "TransportConnectError",
    "ConnectTimeoutError",
    "DisconnectedError",
    "InvalidStateError",
    "JoinTimeoutError",
    "NoActiveActivityError",
    "StaleActivityError",
    "MalformedFrameError",
    "ServerRejectedError",
    "SessionPhase",
    "PhaseMachine",
    "can_transition",
]
