"""
Roster: the per-session participant registry.
"""

from live_session.components.roster.registry import ParticipantRegistry

__all__ = ["ParticipantRegistry"]
