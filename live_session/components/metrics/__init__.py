"""
Metrics: per-client counters.
"""

from live_session.components.metrics.collector import (
    SessionMetrics,
    FrameMetrics,
    LeaderboardMetrics,
    ConnectionMetrics,
)

__all__ = [
    "SessionMetrics",
    "FrameMetrics",
    "LeaderboardMetrics",
    "ConnectionMetrics",
]
