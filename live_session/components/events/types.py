"""
Frame and Domain Types for the session protocol.

Wire shapes are Pydantic models (camelCase aliases, unknown fields ignored);
what flows past the decoder are immutable domain objects. Decoding never
raises anything but MalformedFrameError so a bad frame can be dropped
without touching client state.

Envelope:
    {"type": "participantsUpdate", "data": [...], "message": "...", "meta": {...}}
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from shared.config.settings import settings
from live_session.components.core.constants import (
    FrameType,
    INBOUND_FRAME_TYPES,
    PointType,
    SessionConstants,
)
from live_session.components.core.exceptions import MalformedFrameError


# =============================================================================
# Domain Objects
# =============================================================================


@dataclass(frozen=True, slots=True)
class Participant:
    """
    One participant as last reported by the server.

    participant_key is the identity used for every lookup. display_name
    may collide between participants and is presentation only.
    """

    participant_key: str
    display_name: str
    display_avatar: str
    realtime_score: int = 0
    connected: bool = True
    user_id: str | None = None


@dataclass(frozen=True, slots=True)
class RankedParticipant:
    """A participant with its 1-based position in a ranked snapshot."""

    participant: Participant
    realtime_ranking: int

    @property
    def participant_key(self) -> str:
        return self.participant.participant_key

    @property
    def display_name(self) -> str:
        return self.participant.display_name

    @property
    def realtime_score(self) -> int:
        return self.participant.realtime_score


@dataclass(frozen=True, slots=True)
class Activity:
    """
    The activity the host advanced to.

    sequence is the server-assigned ordinal when present; the client
    derives one otherwise (see SessionClient).
    """

    activity_id: str
    point_type: PointType = PointType.STANDARD
    sequence: int | None = None
    payload: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


# =============================================================================
# Wire Models
# =============================================================================


class WireModel(BaseModel):
    """Base for server payloads: camelCase aliases, extra fields ignored."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
        frozen=True,
    )


class ParticipantUserWire(WireModel):
    user_id: str = Field(alias="userId")


class ParticipantWire(WireModel):
    id: str
    display_name: str | None = Field(default=None, alias="displayName")
    display_avatar: str | None = Field(default=None, alias="displayAvatar")
    realtime_score: int = Field(default=0, alias="realtimeScore")
    realtime_ranking: int | None = Field(default=None, alias="realtimeRanking")
    connected: bool = True
    user: ParticipantUserWire | None = None

    @field_validator("realtime_score", mode="before")
    @classmethod
    def _score_or_zero(cls, value: Any) -> int:
        # Scores are server-computed; anything that is not a number counts as 0
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return int(value)

    def to_participant(self, default_avatar: str | None = None) -> Participant:
        """Convert to a domain Participant, filling presentation defaults."""
        user_id = self.user.user_id if self.user is not None else None
        return Participant(
            participant_key=user_id or self.id,
            display_name=self.display_name or SessionConstants.UNKNOWN_DISPLAY_NAME,
            display_avatar=self.display_avatar or default_avatar or settings.default_avatar_url,
            realtime_score=self.realtime_score,
            connected=self.connected,
            user_id=user_id,
        )


class ActivityWire(WireModel):
    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
        frozen=True,
    )

    activity_id: str = Field(alias="activityId")
    point_type: PointType = Field(default=PointType.STANDARD, alias="pointType")
    sequence: int | None = None

    @field_validator("point_type", mode="before")
    @classmethod
    def _known_point_type(cls, value: Any) -> Any:
        # Point types only drive presentation; an unknown one must not drop the activity
        if value is None or value not in PointType.__members__.values():
            return PointType.STANDARD
        return value


class SessionSummary(WireModel):
    """Payload of sessionStart and sessionEnd frames."""

    session_id: str = Field(alias="sessionId")
    session_code: str | None = Field(default=None, alias="sessionCode")
    status: str | None = None
    session_status: str | None = Field(default=None, alias="sessionStatus")
    current_activity_id: str | None = Field(default=None, alias="currentActivityId")
    start_time: str | None = Field(default=None, alias="startTime")


class EndSessionSummary(WireModel):
    """One participant's final result, from the sessionSummary frame."""

    participant_id: str = Field(alias="participantId")
    participant_name: str = Field(alias="participantName")
    total_score: int = Field(default=0, alias="totalScore")
    final_ranking: int = Field(alias="finalRanking")


class ServerErrorItem(WireModel):
    message: str | None = None


class ServerErrorWire(WireModel):
    errors: list[ServerErrorItem] = Field(default_factory=list)

    @property
    def first_message(self) -> str:
        for item in self.errors:
            if item.message:
                return item.message
        return SessionConstants.DEFAULT_ERROR_MESSAGE


class FrameEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    data: Any = None


_participants_adapter = TypeAdapter(list[ParticipantWire])
_summaries_adapter = TypeAdapter(list[EndSessionSummary])


# =============================================================================
# Outbound Payloads
# =============================================================================


class OutboundModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class JoinPayload(OutboundModel):
    session_code: str = Field(alias="sessionCode")
    display_name: str = Field(alias="displayName", min_length=1)
    display_avatar: str = Field(alias="displayAvatar")


class LeavePayload(OutboundModel):
    session_code: str = Field(alias="sessionCode")


class StartPayload(OutboundModel):
    session_id: str = Field(alias="sessionId")


class SubmitActivityPayload(OutboundModel):
    session_id: str = Field(alias="sessionId")
    activity_id: str = Field(alias="activityId")
    answer_content: Any = Field(default=None, alias="answerContent")


class NextActivityPayload(OutboundModel):
    session_id: str = Field(alias="sessionId")
    activity_id: str | None = Field(default=None, alias="activityId")


class EndSessionPayload(OutboundModel):
    session_id: str = Field(alias="sessionId")


# =============================================================================
# Decoded Frame
# =============================================================================


@dataclass(frozen=True, slots=True)
class InboundFrame:
    """
    A decoded inbound frame.

    payload type by frame_type:
    - PARTICIPANTS_UPDATE: tuple[Participant, ...]
    - SESSION_START / SESSION_END: SessionSummary
    - NEXT_ACTIVITY: Activity
    - SESSION_SUMMARY: tuple[EndSessionSummary, ...]
    - ERROR: str (first server error message)
    """

    frame_type: FrameType
    payload: Any


def decode_frame(raw: str | bytes, default_avatar: str | None = None) -> InboundFrame:
    """
    Decode one inbound text frame.

    Raises:
        MalformedFrameError: For invalid JSON, an unknown frame type, or a
            payload that does not match the frame type.
    """
    try:
        envelope = FrameEnvelope.model_validate(json.loads(raw))
    except (ValueError, TypeError, RecursionError) as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueError;
        # RecursionError comes from absurdly nested JSON
        raise MalformedFrameError(str(e)) from e

    if envelope.type not in INBOUND_FRAME_TYPES:
        raise MalformedFrameError("unknown frame type", frame_type=envelope.type)

    frame_type = FrameType(envelope.type)
    data = envelope.data
    try:
        if frame_type == FrameType.PARTICIPANTS_UPDATE:
            wires = _participants_adapter.validate_python(data or [])
            payload: Any = tuple(w.to_participant(default_avatar) for w in wires)
        elif frame_type in (FrameType.SESSION_START, FrameType.SESSION_END):
            payload = SessionSummary.model_validate(data)
        elif frame_type == FrameType.NEXT_ACTIVITY:
            wire = ActivityWire.model_validate(data)
            payload = Activity(
                activity_id=wire.activity_id,
                point_type=wire.point_type,
                sequence=wire.sequence,
                payload=MappingProxyType(dict(data)),
            )
        elif frame_type == FrameType.SESSION_SUMMARY:
            payload = tuple(_summaries_adapter.validate_python(data or []))
        else:
            payload = ServerErrorWire.model_validate(data or {}).first_message
    except ValidationError as e:
        raise MalformedFrameError(
            f"{e.error_count()} validation error(s)", frame_type=frame_type.value
        ) from e

    return InboundFrame(frame_type=frame_type, payload=payload)


def encode_frame(frame_type: FrameType, payload: OutboundModel | None = None) -> str:
    """Encode an outbound frame as JSON text."""
    data = payload.model_dump(by_alias=True) if payload is not None else {}
    return json.dumps({"type": frame_type.value, "data": data})
