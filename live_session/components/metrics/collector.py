"""
Metrics Collector for a session client.

Plain counters grouped by concern. Everything runs on one event loop, so
increments need no locking.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class FrameMetrics:
    """Metrics for inbound/outbound frame processing."""
    received: int = 0
    processed: int = 0
    dropped_malformed: int = 0
    dropped_wrong_phase: int = 0
    dropped_stale_activity: int = 0
    sent: int = 0
    send_failed: int = 0


@dataclass
class LeaderboardMetrics:
    """Metrics for leaderboard fan-out."""
    published: int = 0
    emitted: int = 0
    collapsed: int = 0
    subscriber_errors: int = 0


@dataclass
class ConnectionMetrics:
    """Metrics for the connection lifecycle."""
    connect_attempts: int = 0
    connect_failures: int = 0
    unexpected_disconnects: int = 0
    join_timeouts: int = 0
    server_errors: int = 0


class SessionMetrics:
    """
    Counters for one session client.

    Usage:
        metrics = SessionMetrics()
        metrics.frames.received += 1
        stats = metrics.get_snapshot()
    """

    def __init__(self) -> None:
        self.frames = FrameMetrics()
        self.leaderboard = LeaderboardMetrics()
        self.connection = ConnectionMetrics()

    def record_dropped(self, reason: str) -> None:
        """Count a dropped inbound frame. reason: malformed, wrong_phase, stale_activity."""
        attr = f"dropped_{reason}"
        setattr(self.frames, attr, getattr(self.frames, attr) + 1)

    @property
    def dropped_total(self) -> int:
        f = self.frames
        return f.dropped_malformed + f.dropped_wrong_phase + f.dropped_stale_activity

    def get_snapshot(self) -> dict[str, Any]:
        """Get a point-in-time copy of all counters."""
        return {
            "frames": asdict(self.frames),
            "leaderboard": asdict(self.leaderboard),
            "connection": asdict(self.connection),
            "frames_dropped_total": self.dropped_total,
        }

    def reset(self) -> dict[str, Any]:
        """Reset all counters and return the previous snapshot."""
        snapshot = self.get_snapshot()
        self.frames = FrameMetrics()
        self.leaderboard = LeaderboardMetrics()
        self.connection = ConnectionMetrics()
        return snapshot
