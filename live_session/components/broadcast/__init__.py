"""
Broadcast: throttled leaderboard fan-out.
"""

from live_session.components.broadcast.leaderboard import (
    LeaderboardBroadcaster,
    LeaderboardFeed,
    LeaderboardUpdate,
    LeaderboardSubscriber,
)

__all__ = [
    "LeaderboardBroadcaster",
    "LeaderboardFeed",
    "LeaderboardUpdate",
    "LeaderboardSubscriber",
]
