"""
Events: wire frames, domain types and the typed event bus.
"""

from live_session.components.events.types import (
    Participant,
    RankedParticipant,
    Activity,
    SessionSummary,
    EndSessionSummary,
    InboundFrame,
    decode_frame,
    encode_frame,
)
from live_session.components.events.bus import (
    EventBus,
    SessionEvent,
    Subscription,
)

__all__ = [
    "Participant",
    "RankedParticipant",
    "Activity",
    "SessionSummary",
    "EndSessionSummary",
    "InboundFrame",
    "decode_frame",
    "encode_frame",
    "EventBus",
    "SessionEvent",
    "Subscription",
]
