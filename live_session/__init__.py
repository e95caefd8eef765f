"""
Live Session: real-time session coordination and leaderboard ranking.

Entry points:
- SessionClient        - protocol client for one live session
- LeaderboardBroadcaster - shared, throttled leaderboard fan-out
- ReconnectingSession  - caller-side reconnect policy
- SessionsApi          - REST call that creates a session
"""

from live_session.components.broadcast.leaderboard import LeaderboardBroadcaster, LeaderboardUpdate
from live_session.components.core.state import SessionPhase
from live_session.components.events.bus import SessionEvent, Subscription
from live_session.session_client import ClientRole, SessionClient, SessionInfo
from live_session.reconnect import ReconnectingSession
from live_session.sessions_api import CreatedSession, SessionApiError, SessionsApi

__all__ = [
    "SessionClient",
    "SessionInfo",
    "ClientRole",
    "SessionPhase",
    "SessionEvent",
    "Subscription",
    "LeaderboardBroadcaster",
    "LeaderboardUpdate",
    "ReconnectingSession",
    "SessionsApi",
    "CreatedSession",
    "SessionApiError",
]
