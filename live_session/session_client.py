"""
Session Protocol Client.

One instance per live session. Owns the connection to the session endpoint,
the phase state machine, the participant registry of that session and its
feed into the shared LeaderboardBroadcaster. Inbound frames become typed
domain events; outbound actions are coroutines that raise on misuse before
anything is sent.

Architecture:
- A single reader task consumes frames strictly in arrival order.
- Each frame is applied (registry or session metadata) before its event
  fires, so handlers always see consistent state.
- Frames, ranking and fan-out are synchronous; the only suspension points
  are the transport and the leaderboard throttle timer.

Usage:
    broadcaster = LeaderboardBroadcaster()
    client = SessionClient("ABC123", broadcaster=broadcaster)
    client.on_next_activity(show_activity)
    await client.connect()
    me = await client.join_session("Alice")
"""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable, Collection

from shared.config.logging import get_logger, session_code_var
from shared.config.settings import settings
from live_session.components.broadcast.leaderboard import (
    LeaderboardBroadcaster,
    LeaderboardFeed,
    LeaderboardSubscriber,
    LeaderboardUpdate,
)
from live_session.components.core.constants import (
    ConnectionStatus,
    FrameType,
    SessionConstants,
    WSCloseCode,
)
from live_session.components.core.exceptions import (
    ConnectTimeoutError,
    DisconnectedError,
    InvalidStateError,
    JoinTimeoutError,
    LiveSessionError,
    MalformedFrameError,
    NoActiveActivityError,
    ServerRejectedError,
    StaleActivityError,
    TransportConnectError,
    TransportError,
)
from live_session.components.core.state import (
    CONNECTED_OR_LATER,
    SESSION_FRAME_PHASES,
    PhaseMachine,
    SessionPhase,
)
from live_session.components.events.bus import EventBus, Handler, SessionEvent, Subscription
from live_session.components.events.types import (
    Activity,
    EndSessionPayload,
    EndSessionSummary,
    InboundFrame,
    JoinPayload,
    LeavePayload,
    NextActivityPayload,
    OutboundModel,
    Participant,
    RankedParticipant,
    SessionSummary,
    StartPayload,
    SubmitActivityPayload,
    decode_frame,
    encode_frame,
)
from live_session.components.metrics.collector import SessionMetrics
from live_session.components.ranking.engine import rank
from live_session.components.ranking.history import RankingHistory
from live_session.components.roster.registry import ParticipantRegistry
from live_session.components.transport.base import Transport
from live_session.components.transport.websocket import WebSocketTransport, build_session_url

logger = get_logger(__name__)


class ClientRole(StrEnum):
    HOST = "host"
    PARTICIPANT = "participant"


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """Read-only view of the session as this client last saw it."""

    session_id: str
    session_code: str
    role: ClientRole
    phase: SessionPhase
    activity_id: str | None
    activity_sequence: int
    status: str | None


# Frames still meaningful after the session ended
_ENDED_FRAMES: frozenset[FrameType] = frozenset({FrameType.SESSION_SUMMARY, FrameType.ERROR})


class SessionClient:
    """
    Protocol client for one live session.

    Args:
        session_code: Human-entry code of the session.
        session_id: Opaque id; required for host actions and answers. A
            participant learns it from the sessionStart frame.
        role: HOST never joins; its first roster or sessionStart frame
            makes it ACTIVE.
        transport: Injected transport. Built from settings.ws_base_url
            on connect() when omitted.
        broadcaster: Shared leaderboard hub. A private one is created when
            omitted.
        participant_key: This client's own key when known up front (the
            authenticated user id); used to recognise its roster entry.
        exclude_from_ranking: Participant keys left out of the leaderboard.
    """

    def __init__(
        self,
        session_code: str = "",
        session_id: str = "",
        *,
        role: ClientRole = ClientRole.PARTICIPANT,
        transport: Transport | None = None,
        broadcaster: LeaderboardBroadcaster | None = None,
        participant_key: str | None = None,
        exclude_from_ranking: Collection[str] = (),
        token: str | None = None,
        connect_timeout: float | None = None,
        join_timeout: float | None = None,
        metrics: SessionMetrics | None = None,
    ) -> None:
        self._session_code = session_code
        self._session_id = session_id
        self._role = role
        self._token = token
        self._transport = transport
        self._owns_transport = transport is None
        self._broadcaster = broadcaster or LeaderboardBroadcaster(settings.leaderboard_throttle_seconds)
        self._connect_timeout = connect_timeout if connect_timeout is not None else settings.connect_timeout
        self._join_timeout = join_timeout if join_timeout is not None else settings.join_timeout
        self._default_avatar = settings.default_avatar_url
        self._exclude_keys = frozenset(exclude_from_ranking)

        self.metrics = metrics or SessionMetrics()
        self._phase = PhaseMachine(on_change=self._on_phase_change)
        self._bus = EventBus()
        self._registry = ParticipantRegistry()
        self._history = RankingHistory()
        self._feed: LeaderboardFeed | None = None
        self._ranked: list[RankedParticipant] = []

        self._activity: Activity | None = None
        self._activity_sequence = 0
        self._summary: SessionSummary | None = None
        self._final_summary: tuple[EndSessionSummary, ...] = ()

        self._own_key = participant_key
        self._join_avatar: str | None = None
        self._join_waiter: asyncio.Future[Participant] | None = None
        self._pending: set[asyncio.Future[Any]] = set()

        self._connect_task: asyncio.Task[None] | None = None
        self._reader: asyncio.Task[None] | None = None
        self._status: str = ConnectionStatus.DISCONNECTED
        self._finished = asyncio.Event()
        self._closing = False
        self._leaving = False

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase.phase

    @property
    def role(self) -> ClientRole:
        return self._role

    @property
    def connection_status(self) -> str:
        """Connecting / Connected / Disconnected, or error text."""
        return self._status

    @property
    def session(self) -> SessionInfo:
        return SessionInfo(
            session_id=self._session_id,
            session_code=self._session_code,
            role=self._role,
            phase=self._phase.phase,
            activity_id=self._activity.activity_id if self._activity else None,
            activity_sequence=self._activity_sequence,
            status=self._summary.status if self._summary else None,
        )

    @property
    def participants(self) -> list[Participant]:
        return self._registry.all()

    @property
    def leaderboard(self) -> list[RankedParticipant]:
        """Ranking of the latest roster, unthrottled."""
        return list(self._ranked)

    @property
    def current_activity(self) -> Activity | None:
        return self._activity

    @property
    def own_participant(self) -> Participant | None:
        if self._own_key is None:
            return None
        return self._registry.get(self._own_key)

    @property
    def ranking_history(self) -> RankingHistory:
        return self._history

    @property
    def final_summary(self) -> tuple[EndSessionSummary, ...]:
        return self._final_summary

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, event: SessionEvent, handler: Handler) -> Subscription:
        return self._bus.subscribe(event, handler)

    def on_participants_update(self, handler: Callable[[tuple[Participant, ...]], None]) -> Subscription:
        return self._bus.subscribe(SessionEvent.PARTICIPANTS_UPDATE, handler)

    def on_session_start(self, handler: Callable[[SessionSummary], None]) -> Subscription:
        return self._bus.subscribe(SessionEvent.SESSION_START, handler)

    def on_next_activity(self, handler: Callable[[Activity], None]) -> Subscription:
        return self._bus.subscribe(SessionEvent.NEXT_ACTIVITY, handler)

    def on_session_end(self, handler: Callable[[SessionSummary], None]) -> Subscription:
        return self._bus.subscribe(SessionEvent.SESSION_END, handler)

    def on_session_summary(self, handler: Callable[[tuple[EndSessionSummary, ...]], None]) -> Subscription:
        return self._bus.subscribe(SessionEvent.SESSION_SUMMARY, handler)

    def on_connection_status(self, handler: Callable[[str], None]) -> Subscription:
        return self._bus.subscribe(SessionEvent.CONNECTION_STATUS, handler)

    def on_error(self, handler: Callable[[LiveSessionError], None]) -> Subscription:
        return self._bus.subscribe(SessionEvent.ERROR, handler)

    def subscribe_leaderboard(self, callback: LeaderboardSubscriber) -> Subscription:
        """
        Leaderboard emissions of this session, via the shared broadcaster.

        Matched against the session code at delivery time, so a host may
        subscribe before update_session_code().
        """
        def deliver(update: LeaderboardUpdate) -> None:
            if update.session_code == self._session_code:
                callback(update)

        return self._broadcaster.subscribe(deliver)

    # =========================================================================
    # Session identity
    # =========================================================================

    def update_session_code(self, session_code: str) -> None:
        """Change the session code. Only while not connected."""
        if not session_code:
            raise ValueError("session_code must not be empty")
        self._phase.require("change session code", SessionPhase.DISCONNECTED, SessionPhase.ERROR)
        self._session_code = session_code
        self._reset_owned_transport()

    def update_session_id(self, session_id: str) -> None:
        """Set the session id, e.g. once the host's create call returned."""
        if not session_id:
            raise ValueError("session_id must not be empty")
        self._session_id = session_id
        if self._phase.is_in(SessionPhase.DISCONNECTED, SessionPhase.ERROR):
            self._reset_owned_transport()

    def _reset_owned_transport(self) -> None:
        # Next connect() rebuilds the endpoint URL from the new identity
        if self._owns_transport:
            self._transport = None

    def _ensure_transport(self) -> Transport:
        if self._transport is None:
            url = build_session_url(
                settings.ws_base_url,
                self._session_code,
                self._session_id if self._role == ClientRole.HOST else None,
            )
            self._transport = WebSocketTransport(url, token=self._token)
        return self._transport

    def _endpoint(self) -> str:
        return getattr(self._transport, "url", None) or self._session_code

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """
        Connect to the session endpoint.

        No-op if already connected or later. Concurrent callers share one
        attempt. No retry: see ReconnectingSession.

        Raises:
            ConnectTimeoutError: Not connected within connect_timeout.
            TransportConnectError: The transport could not connect.
            InvalidStateError: The client is being torn down.
        """
        if self._phase.phase in CONNECTED_OR_LATER:
            return

        if self._connect_task is None or self._connect_task.done():
            self._phase.require("connect", SessionPhase.DISCONNECTED, SessionPhase.ERROR)
            self._connect_task = asyncio.create_task(self._open(), name=f"connect:{self._session_code}")
        await asyncio.shield(self._connect_task)

    async def _open(self) -> None:
        self._closing = False
        self._leaving = False
        self._finished.clear()
        self._phase.transition(SessionPhase.CONNECTING)
        self.metrics.connection.connect_attempts += 1

        transport = self._ensure_transport()
        try:
            await asyncio.wait_for(transport.connect(), self._connect_timeout)
        except TimeoutError as e:
            error = ConnectTimeoutError(self._endpoint(), self._connect_timeout)
            await self._fail_connect(transport, error)
            raise error from e
        except TransportConnectError as e:
            await self._fail_connect(transport, e)
            raise

        if self._phase.phase != SessionPhase.CONNECTING:
            # disconnect() ran while the handshake was in flight
            await transport.close(WSCloseCode.NORMAL, "client disconnect")
            raise DisconnectedError("Disconnected while connecting")

        self._phase.transition(SessionPhase.CONNECTED)
        self._feed = self._broadcaster.open_feed(self._session_code, self.metrics)
        self._reader = asyncio.create_task(self._read_loop(transport), name=f"reader:{self._session_code}")
        logger.info(
            "Connected to session",
            session_code=self._session_code,
            role=self._role.value,
        )

    async def _fail_connect(self, transport: Transport, error: TransportConnectError) -> None:
        self.metrics.connection.connect_failures += 1
        logger.warning("Session connect failed", session_code=self._session_code, error=str(error))
        if self._phase.phase == SessionPhase.CONNECTING:
            self._phase.transition(SessionPhase.ERROR)
            self._set_status(ConnectionStatus.FAILED_TO_CONNECT)
        await transport.close(WSCloseCode.NORMAL, "connect failed")
        self._finished.set()

    async def disconnect(self) -> None:
        """
        Tear the client down. Idempotent, never raises.

        Pending actions fail with DisconnectedError, the leaderboard feed is
        flushed and closed, and the transport is released. The registry and
        the last emitted leaderboard are kept.
        """
        if self._closing:
            return
        self._closing = True

        self._release(DisconnectedError("Client disconnected"))

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            await asyncio.wait([reader], timeout=SessionConstants.CLOSE_TIMEOUT)

        if self._transport is not None:
            await self._transport.close(WSCloseCode.NORMAL, "client disconnect")
        logger.info("Disconnected from session", session_code=self._session_code)

    def _release(self, error: DisconnectedError) -> None:
        """Synchronous part of teardown, shared by disconnect() and transport loss."""
        for future in list(self._pending):
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        self._join_waiter = None

        if self._feed is not None:
            self._feed.close()
            self._feed = None

        if not self._phase.is_terminal and self._phase.phase != SessionPhase.DISCONNECTED:
            self._phase.transition(SessionPhase.DISCONNECTED)
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._finished.set()

    async def wait_finished(self) -> None:
        """Wait until the session ended or the connection was released."""
        await self._finished.wait()

    async def __aenter__(self) -> SessionClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # =========================================================================
    # Outbound actions
    # =========================================================================

    async def join_session(self, display_name: str, display_avatar: str | None = None) -> Participant:
        """
        Join as a participant.

        Resolves with this client's own Participant once a roster frame
        containing it arrives; sending alone does not confirm the join.

        Raises:
            InvalidStateError: Not CONNECTED.
            JoinTimeoutError: No confirming roster within join_timeout. The
                client returns to CONNECTED and may try again.
            ServerRejectedError: The server answered with an error frame.
            DisconnectedError: The connection closed while waiting.
        """
        self._phase.require("join session", SessionPhase.CONNECTED)

        avatar = display_avatar or f"{self._default_avatar}?seed={secrets.token_hex(8)}"
        payload = JoinPayload(
            session_code=self._session_code,
            display_name=display_name,
            display_avatar=avatar,
        )

        waiter: asyncio.Future[Participant] = asyncio.get_running_loop().create_future()
        self._join_avatar = avatar
        self._join_waiter = waiter
        self._pending.add(waiter)
        self._phase.transition(SessionPhase.JOINING)
        logger.info("Joining session", session_code=self._session_code, display_name=display_name)

        try:
            try:
                await self._send(FrameType.JOIN, payload)
            except TransportError:
                self._revert_join()
                raise
            try:
                participant = await asyncio.wait_for(waiter, self._join_timeout)
            except TimeoutError:
                self.metrics.connection.join_timeouts += 1
                self._revert_join()
                logger.warning("Join not confirmed", session_code=self._session_code, timeout=self._join_timeout)
                raise JoinTimeoutError(self._join_timeout) from None
        finally:
            self._pending.discard(waiter)
            if self._join_waiter is waiter:
                self._join_waiter = None

        logger.info(
            "Joined session",
            session_code=self._session_code,
            participant_key=participant.participant_key,
        )
        return participant

    def _revert_join(self) -> None:
        if self._phase.phase == SessionPhase.JOINING:
            self._phase.transition(SessionPhase.CONNECTED)

    async def leave_session(self) -> None:
        """
        Leave the session and tear down.

        From JOINING or ACTIVE a leave frame is sent best effort. From ENDED
        or ERROR the client just tears down. Once disconnected, further
        calls are no-ops and send nothing.

        Raises:
            InvalidStateError: While CONNECTING or CONNECTED (nothing joined yet).
        """
        if self._leaving or self._closing or self._phase.phase == SessionPhase.DISCONNECTED:
            return
        if self._phase.is_in(SessionPhase.CONNECTING, SessionPhase.CONNECTED):
            raise InvalidStateError(
                "leave session",
                current=self._phase.phase,
                allowed=(SessionPhase.JOINING, SessionPhase.ACTIVE),
            )

        self._leaving = True
        if self._phase.is_in(SessionPhase.JOINING, SessionPhase.ACTIVE):
            try:
                await self._send(FrameType.LEAVE, LeavePayload(session_code=self._session_code))
            except TransportError as e:
                logger.info("Leave frame not delivered", session_code=self._session_code, error=str(e))
        await self.disconnect()

    async def start_session(self) -> None:
        """Ask the server to start the session. Role is checked server-side."""
        self._phase.require("start session", SessionPhase.CONNECTED, SessionPhase.ACTIVE)
        session_id = self._require_session_id("start session")
        await self._send(FrameType.START, StartPayload(session_id=session_id))

    async def next_activity(self, activity_id: str | None = None) -> None:
        """Host: advance to activity_id, or to the next one in the collection."""
        self._phase.require("advance activity", SessionPhase.ACTIVE)
        session_id = self._require_session_id("advance activity")
        await self._send(
            FrameType.NEXT_ACTIVITY,
            NextActivityPayload(session_id=session_id, activity_id=activity_id),
        )

    async def end_session(self) -> None:
        """Host: end the session for everyone."""
        self._phase.require("end session", SessionPhase.CONNECTED, SessionPhase.ACTIVE)
        session_id = self._require_session_id("end session")
        await self._send(FrameType.END_SESSION, EndSessionPayload(session_id=session_id))

    async def submit_activity(self, activity_id: str, answer_content: Any = None) -> None:
        """
        Submit an answer for the current activity.

        Raises:
            InvalidStateError: Not ACTIVE. Nothing is sent.
            NoActiveActivityError: No activity has started yet.
            StaleActivityError: activity_id is not the current activity.
        """
        self._phase.require("submit activity", SessionPhase.ACTIVE)
        if self._activity is None:
            raise NoActiveActivityError()
        if activity_id != self._activity.activity_id:
            raise StaleActivityError(activity_id, self._activity.activity_id, self._activity_sequence)

        session_id = self._require_session_id("submit activity")
        await self._send(
            FrameType.SUBMIT_ACTIVITY,
            SubmitActivityPayload(
                session_id=session_id,
                activity_id=activity_id,
                answer_content=answer_content,
            ),
        )

    def _require_session_id(self, action: str) -> str:
        if not self._session_id:
            raise InvalidStateError(f"{action} without a session id", current=self._phase.phase)
        return self._session_id

    async def _send(self, frame_type: FrameType, payload: OutboundModel) -> None:
        transport = self._transport
        if transport is None:
            raise DisconnectedError("No transport")

        frame = encode_frame(frame_type, payload)
        try:
            await asyncio.wait_for(transport.send(frame), SessionConstants.SEND_TIMEOUT)
        except TimeoutError as e:
            self.metrics.frames.send_failed += 1
            raise DisconnectedError(f"Sending {frame_type.value} timed out") from e
        except TransportError:
            self.metrics.frames.send_failed += 1
            raise
        self.metrics.frames.sent += 1
        logger.debug("Frame sent", session_code=self._session_code, frame_type=frame_type.value)

    # =========================================================================
    # Inbound frames
    # =========================================================================

    async def _read_loop(self, transport: Transport) -> None:
        session_code_var.set(self._session_code)
        while True:
            try:
                raw = await transport.receive()
            except TransportError as e:
                self._on_transport_closed(e)
                return
            self._handle_raw(raw)

    def _handle_raw(self, raw: str | bytes) -> None:
        self.metrics.frames.received += 1
        try:
            frame = decode_frame(raw, self._default_avatar)
        except MalformedFrameError as e:
            self.metrics.record_dropped("malformed")
            logger.warning("Dropped malformed frame", session_code=self._session_code, reason=str(e))
            return
        except Exception:
            # The reader must outlive any single frame
            self.metrics.record_dropped("malformed")
            logger.exception("Frame decoding failed", session_code=self._session_code)
            return

        phase = self._phase.phase
        accepted = (
            frame.frame_type in _ENDED_FRAMES
            if phase == SessionPhase.ENDED
            else phase in SESSION_FRAME_PHASES
        )
        if not accepted:
            self.metrics.record_dropped("wrong_phase")
            logger.debug(
                "Dropped frame for current phase",
                frame_type=frame.frame_type.value,
                phase=phase.value,
            )
            return

        try:
            self._dispatch_frame(frame)
        except Exception:
            logger.exception("Frame handling failed", frame_type=frame.frame_type.value)
            return
        self.metrics.frames.processed += 1

    def _dispatch_frame(self, frame: InboundFrame) -> None:
        handler = {
            FrameType.PARTICIPANTS_UPDATE: self._on_participants_update,
            FrameType.SESSION_START: self._on_session_start,
            FrameType.NEXT_ACTIVITY: self._on_next_activity,
            FrameType.SESSION_END: self._on_session_end,
            FrameType.SESSION_SUMMARY: self._on_session_summary,
            FrameType.ERROR: self._on_server_error,
        }[frame.frame_type]
        handler(frame.payload)

    def _on_participants_update(self, participants: tuple[Participant, ...]) -> None:
        self._registry.apply(participants)
        self._ranked = rank(self._registry.all(), self._exclude_keys)
        if self._feed is not None:
            self._feed.publish(self._ranked)

        own = self._find_own(participants)
        if self._role == ClientRole.HOST:
            if self._phase.phase == SessionPhase.CONNECTED:
                self._phase.transition(SessionPhase.ACTIVE)
        elif own is not None and self._phase.is_in(SessionPhase.CONNECTED, SessionPhase.JOINING):
            # CONNECTED here means the confirmation arrived after a join timeout
            self._phase.transition(SessionPhase.ACTIVE)

        waiter = self._join_waiter
        if own is not None and waiter is not None and not waiter.done():
            waiter.set_result(own)

        self._bus.publish(SessionEvent.PARTICIPANTS_UPDATE, tuple(self._registry.all()))

    def _find_own(self, participants: tuple[Participant, ...]) -> Participant | None:
        if self._own_key is not None:
            own = self._registry.get(self._own_key)
            if own is not None:
                return own
        if self._join_avatar is None:
            return None
        for participant in participants:
            if participant.display_avatar == self._join_avatar:
                self._own_key = participant.participant_key
                return participant
        return None

    def _on_session_start(self, summary: SessionSummary) -> None:
        self._summary = summary
        if not self._session_id:
            self._session_id = summary.session_id
        if self._role == ClientRole.HOST and self._phase.phase == SessionPhase.CONNECTED:
            self._phase.transition(SessionPhase.ACTIVE)
        logger.info("Session started", session_id=summary.session_id)
        self._bus.publish(SessionEvent.SESSION_START, summary)

    def _on_next_activity(self, activity: Activity) -> None:
        current = self._activity
        if activity.sequence is not None:
            stale = activity.sequence <= self._activity_sequence
            sequence = activity.sequence
        else:
            stale = current is not None and current.activity_id == activity.activity_id
            sequence = self._activity_sequence + 1
        if stale:
            self.metrics.record_dropped("stale_activity")
            logger.info(
                "Dropped stale activity frame",
                activity_id=activity.activity_id,
                sequence=activity.sequence,
                current_sequence=self._activity_sequence,
            )
            return

        if current is not None:
            self._history.record(current.activity_id, self._ranked)
        self._activity = activity
        self._activity_sequence = sequence
        logger.info("Activity advanced", activity_id=activity.activity_id, sequence=sequence)
        self._bus.publish(SessionEvent.NEXT_ACTIVITY, activity)

    def _on_session_end(self, summary: SessionSummary) -> None:
        self._summary = summary
        if self._activity is not None:
            self._history.record(self._activity.activity_id, self._ranked)
        self._phase.transition(SessionPhase.ENDED)

        waiter = self._join_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(InvalidStateError("join session", current=SessionPhase.ENDED))

        # Final snapshot goes out before the feed is released
        if self._feed is not None:
            self._feed.close()
            self._feed = None

        logger.info("Session ended", session_id=summary.session_id)
        self._bus.publish(SessionEvent.SESSION_END, summary)
        self._finished.set()

    def _on_session_summary(self, summaries: tuple[EndSessionSummary, ...]) -> None:
        self._final_summary = summaries
        self._bus.publish(SessionEvent.SESSION_SUMMARY, summaries)

    def _on_server_error(self, message: str) -> None:
        self.metrics.connection.server_errors += 1
        error = ServerRejectedError(message)
        logger.warning("Server rejected a frame", session_code=self._session_code, message=message)

        waiter = self._join_waiter
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)
            self._revert_join()
        self._bus.publish(SessionEvent.ERROR, error)

    def _on_transport_closed(self, error: TransportError) -> None:
        if self._closing:
            return
        self._reader = None
        unexpected = not self._phase.is_terminal
        code = getattr(error, "code", None)
        disconnected = (
            error if isinstance(error, DisconnectedError) else DisconnectedError(str(error), code=code)
        )
        self._release(disconnected)

        if unexpected:
            self.metrics.connection.unexpected_disconnects += 1
            logger.warning("Connection lost", session_code=self._session_code, code=code)
            self._bus.publish(SessionEvent.ERROR, disconnected)
        else:
            logger.info("Connection closed after session end", session_code=self._session_code)

    # =========================================================================
    # Status
    # =========================================================================

    def _on_phase_change(self, previous: SessionPhase, current: SessionPhase) -> None:
        if current == SessionPhase.CONNECTING:
            self._set_status(ConnectionStatus.CONNECTING)
        elif current == SessionPhase.CONNECTED and previous == SessionPhase.CONNECTING:
            self._set_status(ConnectionStatus.CONNECTED)
        elif current == SessionPhase.DISCONNECTED:
            self._set_status(ConnectionStatus.DISCONNECTED)

    def _set_status(self, status: str) -> None:
        if status == self._status:
            return
        self._status = status
        self._bus.publish(SessionEvent.CONNECTION_STATUS, status)
