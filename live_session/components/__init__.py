"""
Live Session Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, exceptions, phase machine)
- transport/  - Text-frame connection to the session endpoint
- events/     - Wire frames, domain types, typed event bus
- roster/     - Per-session participant registry
- ranking/    - Leaderboard derivation and per-activity history
- broadcast/  - Throttled leaderboard fan-out
- resilience/ - Reconnect backoff
- metrics/    - Per-client counters

New code should import from specific submodules for clarity.
"""

# =============================================================================
# Core Components
# =============================================================================
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
from live_session.components.core.state import SessionPhase, PhaseMachine

# =============================================================================
# Events, Roster, Ranking
# =============================================================================
from live_session.components.events.types import (
    Participant,
    RankedParticipant,
    Activity,
    SessionSummary,
    EndSessionSummary,
)
from live_session.components.events.bus import EventBus, SessionEvent, Subscription
from live_session.components.roster.registry import ParticipantRegistry
from live_session.components.ranking.engine import (
    rank,
    rank_deltas,
    ranking_changes,
    has_score_changes,
    RankingChange,
    RankDirection,
)
from live_session.components.ranking.history import RankingHistory

# =============================================================================
# Broadcast, Transport, Resilience, Metrics
# =============================================================================
from live_session.components.broadcast.leaderboard import (
    LeaderboardBroadcaster,
    LeaderboardFeed,
    LeaderboardUpdate,
)
from live_session.components.transport.base import Transport, TransportState
from live_session.components.transport.websocket import WebSocketTransport, build_session_url
from live_session.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_host_retry_config,
    create_participant_retry_config,
)
from live_session.components.metrics.collector import SessionMetrics

__all__ = [
    # Core
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
    # Events / Roster / Ranking
    "Participant",
    "RankedParticipant",
    "Activity",
    "SessionSummary",
    "EndSessionSummary",
    "EventBus",
    "SessionEvent",
    "Subscription",
    "ParticipantRegistry",
    "rank",
    "rank_deltas",
    "ranking_changes",
    "has_score_changes",
    "RankingChange",
    "RankDirection",
    "RankingHistory",
    # Broadcast / Transport / Resilience / Metrics
    "LeaderboardBroadcaster",
    "LeaderboardFeed",
    "LeaderboardUpdate",
    "Transport",
    "TransportState",
    "WebSocketTransport",
    "build_session_url",
    "RetryConfig",
    "calculate_delay_with_jitter",
    "create_host_retry_config",
    "create_participant_retry_config",
    "SessionMetrics",
]
