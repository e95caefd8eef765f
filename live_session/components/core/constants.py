"""
Live Session Constants.

Centralized constants with documentation explaining rationale for each value.
Runtime values (timeouts, throttle window) are read from
`shared.config.settings`; the values here are the defaults used when a
component is constructed without explicit configuration.
"""

from enum import IntEnum, StrEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "SessionConstants",
    "FrameType",
    "ConnectionStatus",
    "PointType",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes understood by the client.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) are sent by the session server.
    """

    NORMAL = 1000  # Normal closure (leave or end of session)
    GOING_AWAY = 1001  # Server shutting down or client navigating away
    PROTOCOL_ERROR = 1002
    POLICY_VIOLATION = 1008
    MESSAGE_TOO_BIG = 1009
    SERVER_ERROR = 1011

    AUTH_FAILED = 4001  # Token rejected by the server
    FORBIDDEN = 4003  # Not allowed to connect to this session
    SESSION_NOT_FOUND = 4004  # Unknown session code


class FrameType(StrEnum):
    """Logical frame types exchanged with the session server."""

    # Outbound
    JOIN = "join"
    LEAVE = "leave"
    START = "start"
    SUBMIT_ACTIVITY = "submitActivity"
    NEXT_ACTIVITY = "nextActivity"  # also inbound
    END_SESSION = "endSession"

    # Inbound
    PARTICIPANTS_UPDATE = "participantsUpdate"
    SESSION_START = "sessionStart"
    SESSION_END = "sessionEnd"
    SESSION_SUMMARY = "sessionSummary"
    ERROR = "error"


INBOUND_FRAME_TYPES: Final[frozenset[str]] = frozenset({
    FrameType.PARTICIPANTS_UPDATE,
    FrameType.SESSION_START,
    FrameType.NEXT_ACTIVITY,
    FrameType.SESSION_END,
    FrameType.SESSION_SUMMARY,
    FrameType.ERROR,
})


class ConnectionStatus(StrEnum):
    """Human-readable connection status for UI binding."""

    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"
    FAILED_TO_CONNECT = "Failed to connect"
    CONNECTION_ERROR = "Connection error"


class PointType(StrEnum):
    """Scoring semantics of an activity. Presentation only."""

    STANDARD = "STANDARD"
    DOUBLE_POINTS = "DOUBLE_POINTS"
    NO_POINTS = "NO_POINTS"


class SessionConstants:
    """
    Session protocol operational constants.

    Each constant is documented with the rationale for its value.
    """

    # ==========================================================================
    # Timeout Constants
    # ==========================================================================

    # CONNECT_TIMEOUT: 10 seconds
    # Rationale: Covers a TLS handshake on a slow mobile network. Longer
    # than that and the participant is better served by an explicit retry.
    CONNECT_TIMEOUT: Final[float] = 10.0

    # JOIN_TIMEOUT: 5 seconds
    # Rationale: The server broadcasts a roster within milliseconds of a
    # join. Five seconds absorbs a congested server without leaving the
    # participant staring at a spinner.
    JOIN_TIMEOUT: Final[float] = 5.0

    # SEND_TIMEOUT: 5 seconds
    # Rationale: A send that cannot complete in this time means the socket
    # is effectively dead; the reader task will observe the close shortly.
    SEND_TIMEOUT: Final[float] = 5.0

    # CLOSE_TIMEOUT: 2 seconds
    # Rationale: Teardown must never hang a navigation. The close handshake
    # is best effort.
    CLOSE_TIMEOUT: Final[float] = 2.0

    # ==========================================================================
    # Leaderboard Constants
    # ==========================================================================

    # LEADERBOARD_THROTTLE: 300 ms
    # Rationale: Rank animations take ~250 ms; emitting faster than that
    # restarts animations mid-flight and reads as flicker.
    LEADERBOARD_THROTTLE: Final[float] = 0.3

    # MAX_PARTICIPANTS: 100
    # Rationale: Full-snapshot roster frames are sized for this. Larger
    # rosters still work but are logged so the delta-frame evolution can be
    # prioritised.
    MAX_PARTICIPANTS: Final[int] = 100

    # ==========================================================================
    # Participant Defaults
    # ==========================================================================

    UNKNOWN_DISPLAY_NAME: Final[str] = "Unknown"
    DEFAULT_ERROR_MESSAGE: Final[str] = "An error occurred"
