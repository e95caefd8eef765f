"""
Tests for the session protocol client.

Tests verify:
- Connection lifecycle and status surface
- Join confirmation through roster frames, timeouts and rejections
- Phase checks on every outbound action (nothing sent on rejection)
- Activity tracking, stale answers and duplicate activity frames
- Frame handling per phase, malformed frames, transport loss
- The end-to-end participant scenario
"""

import asyncio
from unittest.mock import patch

import pytest

from live_session.components.core.constants import ConnectionStatus
from live_session.components.core.exceptions import (
    ConnectTimeoutError,
    DisconnectedError,
    InvalidStateError,
    JoinTimeoutError,
    NoActiveActivityError,
    ServerRejectedError,
    StaleActivityError,
    TransportConnectError,
)
from live_session.components.core.state import SessionPhase
from live_session.components.events.bus import SessionEvent
import live_session.session_client as session_client_module
from live_session.session_client import ClientRole, SessionClient
from tests.conftest import roster_entry, settle


async def join_as(client, transport, key="p-alice", name="Alice", score=0, others=()):
    """Join and confirm with a roster frame carrying the client's own avatar."""
    join = asyncio.create_task(client.join_session(name))
    await settle()
    avatar = transport.sent[-1]["data"]["displayAvatar"]
    transport.inject("participantsUpdate", [roster_entry(key, score, name, avatar), *others])
    return await join


# =============================================================================
# Connection lifecycle
# =============================================================================


class TestConnect:
    """connect() and disconnect()."""

    @pytest.mark.asyncio
    async def test_connect_reaches_connected(self, participant_client, transport):
        statuses = []
        participant_client.on_connection_status(statuses.append)

        await participant_client.connect()

        assert participant_client.phase == SessionPhase.CONNECTED
        assert participant_client.connection_status == ConnectionStatus.CONNECTED
        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_connect_is_noop_when_connected(self, participant_client, transport):
        await participant_client.connect()
        await participant_client.connect()

        assert transport.connect_calls == 1
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_attempt(self, participant_client, transport):
        transport.connect_delay = 0.05

        await asyncio.gather(participant_client.connect(), participant_client.connect())

        assert transport.connect_calls == 1
        assert participant_client.phase == SessionPhase.CONNECTED
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_connect_failure_moves_to_error(self, participant_client, transport, connect_error):
        transport.connect_error = connect_error

        with pytest.raises(TransportConnectError):
            await participant_client.connect()

        assert participant_client.phase == SessionPhase.ERROR
        assert participant_client.connection_status == ConnectionStatus.FAILED_TO_CONNECT
        assert participant_client.metrics.connection.connect_failures == 1

    @pytest.mark.asyncio
    async def test_connect_can_be_retried_after_error(self, participant_client, transport, connect_error):
        transport.connect_error = connect_error
        with pytest.raises(TransportConnectError):
            await participant_client.connect()

        transport.connect_error = None
        await participant_client.connect()

        assert participant_client.phase == SessionPhase.CONNECTED
        assert participant_client.metrics.connection.connect_attempts == 2
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_connect_timeout(self, transport, broadcaster):
        transport.connect_delay = 1.0
        client = SessionClient("ABC123", transport=transport, broadcaster=broadcaster, connect_timeout=0.05)

        with pytest.raises(ConnectTimeoutError) as exc_info:
            await client.connect()

        assert exc_info.value.timeout == 0.05
        assert client.phase == SessionPhase.ERROR

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, participant_client, transport):
        await participant_client.connect()

        await participant_client.disconnect()
        await participant_client.disconnect()

        assert participant_client.phase == SessionPhase.DISCONNECTED
        assert participant_client.connection_status == ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_before_connect(self, participant_client):
        await participant_client.disconnect()

        assert participant_client.phase == SessionPhase.DISCONNECTED

    @pytest.mark.asyncio
    async def test_async_context_manager(self, participant_client):
        async with participant_client as client:
            assert client.phase == SessionPhase.CONNECTED

        assert participant_client.phase == SessionPhase.DISCONNECTED


# =============================================================================
# Joining
# =============================================================================


class TestJoin:
    """join_session() fire-and-confirm."""

    @pytest.mark.asyncio
    async def test_join_sends_frame_and_resolves_on_roster(self, participant_client, transport):
        await participant_client.connect()

        join = asyncio.create_task(participant_client.join_session("Alice"))
        await settle()

        assert participant_client.phase == SessionPhase.JOINING
        frame = transport.sent[-1]
        assert frame["type"] == "join"
        assert frame["data"]["sessionCode"] == "ABC123"
        assert frame["data"]["displayName"] == "Alice"
        assert "?seed=" in frame["data"]["displayAvatar"]

        transport.inject("participantsUpdate", [
            roster_entry("p-bob", 5, "Bob"),
            roster_entry("p-alice", 0, "Alice", frame["data"]["displayAvatar"]),
        ])
        me = await join

        assert me.participant_key == "p-alice"
        assert participant_client.phase == SessionPhase.ACTIVE
        assert participant_client.own_participant == me
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_roster_without_own_entry_does_not_confirm(self, participant_client, transport):
        await participant_client.connect()
        join = asyncio.create_task(participant_client.join_session("Alice"))
        await settle()

        transport.inject("participantsUpdate", [roster_entry("p-bob", 5, "Bob")])
        await settle()

        assert not join.done()
        assert participant_client.phase == SessionPhase.JOINING
        await participant_client.disconnect()
        with pytest.raises(DisconnectedError):
            await join

    @pytest.mark.asyncio
    async def test_join_matches_known_participant_key(self, transport, broadcaster):
        client = SessionClient(
            "ABC123",
            transport=transport,
            broadcaster=broadcaster,
            participant_key="user-42",
        )
        await client.connect()
        join = asyncio.create_task(client.join_session("Alice", display_avatar="shared.svg"))
        await settle()

        transport.inject("participantsUpdate", [
            {"id": "guest-9", "displayName": "Alice", "displayAvatar": "x.svg", "user": {"userId": "user-42"}},
        ])
        me = await join

        assert me.participant_key == "user-42"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_join_requires_connected(self, participant_client, transport):
        with pytest.raises(InvalidStateError):
            await participant_client.join_session("Alice")

        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_join_rejected_with_empty_name(self, participant_client, transport):
        await participant_client.connect()

        with pytest.raises(ValueError):
            await participant_client.join_session("")

        assert participant_client.phase == SessionPhase.CONNECTED
        assert transport.sent == []
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_join_timeout_returns_to_connected(self, transport, broadcaster):
        client = SessionClient("ABC123", transport=transport, broadcaster=broadcaster, join_timeout=0.05)
        await client.connect()

        with pytest.raises(JoinTimeoutError):
            await client.join_session("Alice")

        assert client.phase == SessionPhase.CONNECTED
        assert client.metrics.connection.join_timeouts == 1
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_late_confirmation_after_timeout_activates(self, transport, broadcaster):
        client = SessionClient("ABC123", transport=transport, broadcaster=broadcaster, join_timeout=0.05)
        await client.connect()
        with pytest.raises(JoinTimeoutError):
            await client.join_session("Alice")
        avatar = transport.sent[-1]["data"]["displayAvatar"]

        transport.inject("participantsUpdate", [roster_entry("p-alice", 0, "Alice", avatar)])
        await settle()

        assert client.phase == SessionPhase.ACTIVE
        assert client.own_participant.participant_key == "p-alice"
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_join_rejected_by_server_error_frame(self, participant_client, transport):
        errors = []
        participant_client.on_error(errors.append)
        await participant_client.connect()
        join = asyncio.create_task(participant_client.join_session("Alice"))
        await settle()

        transport.inject("error", {"errors": [{"message": "Session is full"}]})

        with pytest.raises(ServerRejectedError, match="Session is full"):
            await join
        assert participant_client.phase == SessionPhase.CONNECTED
        assert isinstance(errors[0], ServerRejectedError)
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_join_send_failure_reverts_to_connected(self, participant_client, transport):
        await participant_client.connect()
        transport.send_error = DisconnectedError("socket gone")

        with pytest.raises(DisconnectedError):
            await participant_client.join_session("Alice")

        assert participant_client.phase == SessionPhase.CONNECTED
        assert participant_client.metrics.frames.send_failed == 1
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_transport_close_fails_pending_join(self, participant_client, transport):
        await participant_client.connect()
        join = asyncio.create_task(participant_client.join_session("Alice"))
        await settle()

        transport.drop()

        with pytest.raises(DisconnectedError):
            await join
        assert participant_client.phase == SessionPhase.DISCONNECTED


# =============================================================================
# Leaving
# =============================================================================


class TestLeave:
    """leave_session() teardown."""

    @pytest.mark.asyncio
    async def test_leave_twice_sends_one_leave_frame(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport)

        await participant_client.leave_session()
        await participant_client.leave_session()

        assert transport.sent_types().count("leave") == 1
        assert transport.sent[-1]["data"] == {"sessionCode": "ABC123"}
        assert participant_client.phase == SessionPhase.DISCONNECTED

    @pytest.mark.asyncio
    async def test_leave_tears_down_even_if_send_fails(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport)
        transport.send_error = DisconnectedError("socket gone")

        await participant_client.leave_session()

        assert participant_client.phase == SessionPhase.DISCONNECTED

    @pytest.mark.asyncio
    async def test_leave_from_connected_is_rejected(self, participant_client, transport):
        await participant_client.connect()

        with pytest.raises(InvalidStateError):
            await participant_client.leave_session()

        assert transport.sent == []
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_leave_after_session_end_sends_nothing(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport)
        transport.inject("sessionEnd", {"sessionId": "s-1"})
        await settle()

        await participant_client.leave_session()

        assert "leave" not in transport.sent_types()
        assert participant_client.phase == SessionPhase.ENDED

    @pytest.mark.asyncio
    async def test_leave_when_never_connected_is_noop(self, participant_client, transport):
        await participant_client.leave_session()

        assert transport.sent == []


# =============================================================================
# Activities and answers
# =============================================================================


class TestActivities:
    """nextActivity tracking and submit_activity()."""

    @pytest.mark.asyncio
    async def test_submit_from_connecting_is_rejected_and_sends_nothing(self, participant_client, transport):
        transport.connect_delay = 0.05
        connecting = asyncio.create_task(participant_client.connect())
        await settle()
        assert participant_client.phase == SessionPhase.CONNECTING

        with pytest.raises(InvalidStateError):
            await participant_client.submit_activity("q1", "A")

        assert transport.sent == []
        await connecting
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_submit_without_activity(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport)
        sent_before = len(transport.sent)

        with pytest.raises(NoActiveActivityError):
            await participant_client.submit_activity("q1", "A")

        assert len(transport.sent) == sent_before
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_submit_current_activity(self, participant_client, transport):
        activities = []
        participant_client.on_next_activity(activities.append)
        await participant_client.connect()
        await join_as(participant_client, transport)
        transport.inject("sessionStart", {"sessionId": "s-1", "sessionCode": "ABC123"})
        transport.inject("nextActivity", {"activityId": "q1", "pointType": "STANDARD"})
        await settle()

        await participant_client.submit_activity("q1", {"choice": 2})

        assert activities[0].activity_id == "q1"
        assert participant_client.session.activity_sequence == 1
        assert transport.sent[-1] == {
            "type": "submitActivity",
            "data": {"sessionId": "s-1", "activityId": "q1", "answerContent": {"choice": 2}},
        }
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_stale_answer_is_rejected_locally(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport)
        transport.inject("sessionStart", {"sessionId": "s-1"})
        transport.inject("nextActivity", {"activityId": "q1"})
        transport.inject("nextActivity", {"activityId": "q2"})
        await settle()
        sent_before = len(transport.sent)

        with pytest.raises(StaleActivityError) as exc_info:
            await participant_client.submit_activity("q1", "A")

        assert exc_info.value.current_activity_id == "q2"
        assert exc_info.value.sequence == 2
        assert len(transport.sent) == sent_before
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_duplicate_activity_frame_is_dropped(self, participant_client, transport):
        activities = []
        participant_client.on_next_activity(activities.append)
        await participant_client.connect()
        await join_as(participant_client, transport)

        transport.inject("nextActivity", {"activityId": "q1"})
        transport.inject("nextActivity", {"activityId": "q1"})
        await settle()

        assert len(activities) == 1
        assert participant_client.session.activity_sequence == 1
        assert participant_client.metrics.frames.dropped_stale_activity == 1
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_out_of_order_sequence_is_dropped(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport)

        transport.inject("nextActivity", {"activityId": "q3", "sequence": 3})
        transport.inject("nextActivity", {"activityId": "q2", "sequence": 2})
        await settle()

        assert participant_client.current_activity.activity_id == "q3"
        assert participant_client.session.activity_sequence == 3
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_submit_needs_session_id(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport)
        transport.inject("nextActivity", {"activityId": "q1"})
        await settle()

        with pytest.raises(InvalidStateError):
            await participant_client.submit_activity("q1", "A")
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_ranking_history_per_activity(self, participant_client, transport):
        await participant_client.connect()
        await join_as(participant_client, transport, others=[roster_entry("p-bob", 0, "Bob")])

        transport.inject("nextActivity", {"activityId": "q1"})
        transport.inject("participantsUpdate", [roster_entry("p-alice", 1, "Alice"), roster_entry("p-bob", 5, "Bob")])
        transport.inject("nextActivity", {"activityId": "q2"})
        await settle()

        snapshot = participant_client.ranking_history.snapshot("q1")
        assert [rp.participant_key for rp in snapshot] == ["p-bob", "p-alice"]
        await participant_client.disconnect()


# =============================================================================
# Host
# =============================================================================


class TestHost:
    """Host-side flow."""

    @pytest.mark.asyncio
    async def test_session_start_activates_host(self, host_client, transport):
        started = []
        host_client.on_session_start(started.append)
        await host_client.connect()

        transport.inject("sessionStart", {"sessionId": "session-1", "status": "STARTED"})
        await settle()

        assert host_client.phase == SessionPhase.ACTIVE
        assert started[0].session_id == "session-1"
        assert host_client.session.status == "STARTED"
        await host_client.disconnect()

    @pytest.mark.asyncio
    async def test_first_roster_activates_host(self, host_client, transport):
        await host_client.connect()

        transport.inject("participantsUpdate", [roster_entry("p-alice")])
        await settle()

        assert host_client.phase == SessionPhase.ACTIVE
        await host_client.disconnect()

    @pytest.mark.asyncio
    async def test_leaderboard_subscription_before_session_code(self, transport, broadcaster):
        host = SessionClient(role=ClientRole.HOST, transport=transport, broadcaster=broadcaster)
        updates = []
        host.subscribe_leaderboard(updates.append)

        host.update_session_code("ABC123")
        host.update_session_id("session-1")
        await host.connect()
        transport.inject("participantsUpdate", [roster_entry("a", 1)])
        await settle()

        assert [u.session_code for u in updates] == ["ABC123"]
        assert updates[0].participants[0].participant_key == "a"
        await host.disconnect()

    @pytest.mark.asyncio
    async def test_leaderboard_subscription_ignores_other_sessions(self, host_client, transport, broadcaster):
        updates = []
        host_client.subscribe_leaderboard(updates.append)
        other = broadcaster.open_feed("XYZ789")

        await host_client.connect()
        other.publish([])
        transport.inject("participantsUpdate", [roster_entry("a", 1)])
        await settle()

        assert [u.session_code for u in updates] == ["ABC123"]
        other.close()
        await host_client.disconnect()

    @pytest.mark.asyncio
    async def test_host_actions_send_frames(self, host_client, transport):
        await host_client.connect()
        await host_client.start_session()
        transport.inject("sessionStart", {"sessionId": "session-1"})
        await settle()

        await host_client.next_activity()
        await host_client.next_activity("q7")
        await host_client.end_session()

        assert transport.sent == [
            {"type": "start", "data": {"sessionId": "session-1"}},
            {"type": "nextActivity", "data": {"sessionId": "session-1", "activityId": None}},
            {"type": "nextActivity", "data": {"sessionId": "session-1", "activityId": "q7"}},
            {"type": "endSession", "data": {"sessionId": "session-1"}},
        ]
        await host_client.disconnect()

    @pytest.mark.asyncio
    async def test_next_activity_requires_active(self, host_client, transport):
        await host_client.connect()

        with pytest.raises(InvalidStateError):
            await host_client.next_activity()

        assert transport.sent == []
        await host_client.disconnect()

    @pytest.mark.asyncio
    async def test_host_entry_excluded_from_ranking(self, transport, broadcaster):
        host = SessionClient(
            "ABC123",
            "session-1",
            role=ClientRole.HOST,
            transport=transport,
            broadcaster=broadcaster,
            exclude_from_ranking={"host-user"},
        )
        await host.connect()

        transport.inject("participantsUpdate", [roster_entry("host-user", 99), roster_entry("p-alice", 1)])
        await settle()

        assert [rp.participant_key for rp in host.leaderboard] == ["p-alice"]
        assert len(host.participants) == 2
        await host.disconnect()

    @pytest.mark.asyncio
    async def test_update_session_identity(self, transport, broadcaster):
        host = SessionClient(role=ClientRole.HOST, transport=transport, broadcaster=broadcaster)

        host.update_session_code("XYZ789")
        host.update_session_id("session-9")

        assert host.session.session_code == "XYZ789"
        assert host.session.session_id == "session-9"
        with pytest.raises(ValueError):
            host.update_session_code("")
        with pytest.raises(ValueError):
            host.update_session_id("")

    @pytest.mark.asyncio
    async def test_session_code_is_fixed_while_connected(self, host_client):
        await host_client.connect()

        with pytest.raises(InvalidStateError):
            host_client.update_session_code("OTHER")

        assert host_client.session.session_code == "ABC123"
        await host_client.disconnect()


# =============================================================================
# Inbound frame handling
# =============================================================================


class TestFrames:
    """Frame dispatch, phases, malformed frames and transport loss."""

    @pytest.mark.asyncio
    async def test_handlers_observe_applied_roster(self, participant_client, transport):
        observed = []

        def on_roster(participants):
            observed.append((
                [p.participant_key for p in participants],
                [p.participant_key for p in participant_client.participants],
                [rp.participant_key for rp in participant_client.leaderboard],
            ))

        participant_client.on_participants_update(on_roster)
        await participant_client.connect()

        transport.inject("participantsUpdate", [roster_entry("a", 1), roster_entry("b", 4)])
        await settle()

        assert observed == [(["a", "b"], ["a", "b"], ["b", "a"])]
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_malformed_frame_is_dropped(self, participant_client, transport):
        await participant_client.connect()

        transport.inject_raw("{not json")
        transport.inject("participantsUpdate", [{"displayName": "no id"}])
        transport.inject("participantsUpdate", [roster_entry("a", 1)])
        await settle()

        assert [p.participant_key for p in participant_client.participants] == ["a"]
        assert participant_client.metrics.frames.dropped_malformed == 2
        assert participant_client.phase == SessionPhase.CONNECTED
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_reader_survives_numeric_and_nesting_extremes(self, participant_client, transport):
        await participant_client.connect()

        transport.inject_raw('{"type": "participantsUpdate", "data": [{"id": "a", "realtimeScore": 1e400}]}')
        transport.inject_raw('{"type": "participantsUpdate", "data": ' + "[" * 100_000 + "]" * 100_000 + "}")
        transport.inject("participantsUpdate", [roster_entry("b", 3)])
        await settle()

        assert [p.participant_key for p in participant_client.participants] == ["b"]
        assert participant_client.metrics.frames.dropped_malformed == 1
        assert not participant_client._reader.done()
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_unexpected_decode_failure_drops_frame(self, participant_client, transport):
        real_decode = session_client_module.decode_frame
        calls = []

        def flaky_decode(raw, default_avatar=None):
            calls.append(raw)
            if len(calls) == 1:
                raise OverflowError("cannot convert float infinity to integer")
            return real_decode(raw, default_avatar)

        await participant_client.connect()
        with patch.object(session_client_module, "decode_frame", flaky_decode):
            transport.inject("participantsUpdate", [roster_entry("a", 1)])
            transport.inject("participantsUpdate", [roster_entry("b", 2)])
            await settle()

        assert [p.participant_key for p in participant_client.participants] == ["b"]
        assert participant_client.metrics.frames.dropped_malformed == 1
        assert participant_client.phase == SessionPhase.CONNECTED
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_reader(self, participant_client, transport):
        def broken(participants):
            raise RuntimeError("boom")

        participant_client.on_participants_update(broken)
        await participant_client.connect()

        transport.inject("participantsUpdate", [roster_entry("a", 1)])
        transport.inject("participantsUpdate", [roster_entry("a", 2)])
        await settle()

        assert participant_client.participants[0].realtime_score == 2
        assert participant_client.metrics.frames.processed == 2
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_frames_after_end_are_dropped_except_summary(self, participant_client, transport):
        summaries = []
        participant_client.on_session_summary(summaries.append)
        await participant_client.connect()
        await join_as(participant_client, transport)

        transport.inject("sessionEnd", {"sessionId": "s-1"})
        transport.inject("participantsUpdate", [roster_entry("late", 50)])
        transport.inject("sessionSummary", [
            {"participantId": "p-alice", "participantName": "Alice", "totalScore": 0, "finalRanking": 1},
        ])
        await settle()

        assert participant_client.phase == SessionPhase.ENDED
        assert all(p.participant_key != "late" for p in participant_client.participants)
        assert participant_client.metrics.frames.dropped_wrong_phase == 1
        assert summaries[0][0].participant_name == "Alice"
        assert participant_client.final_summary == summaries[0]
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_unexpected_close_keeps_last_state(self, participant_client, transport, broadcaster):
        errors = []
        statuses = []
        participant_client.on_error(errors.append)
        await participant_client.connect()
        await join_as(participant_client, transport, others=[roster_entry("p-bob", 3, "Bob")])
        await settle()
        participant_client.on_connection_status(statuses.append)

        transport.drop()
        await settle()

        assert participant_client.phase == SessionPhase.DISCONNECTED
        assert statuses == [ConnectionStatus.DISCONNECTED]
        assert isinstance(errors[-1], DisconnectedError)
        assert participant_client.metrics.connection.unexpected_disconnects == 1
        assert [rp.participant_key for rp in participant_client.leaderboard] == ["p-bob", "p-alice"]
        assert broadcaster.latest("ABC123") is not None

    @pytest.mark.asyncio
    async def test_server_close_after_end_is_not_an_error(self, participant_client, transport):
        errors = []
        participant_client.on_error(errors.append)
        await participant_client.connect()
        await join_as(participant_client, transport)

        transport.inject("sessionEnd", {"sessionId": "s-1"})
        transport.drop(code=1000)
        await settle()

        assert participant_client.phase == SessionPhase.ENDED
        assert errors == []
        assert participant_client.connection_status == ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_wait_finished_resolves_on_session_end(self, participant_client, transport):
        await participant_client.connect()
        waiter = asyncio.create_task(participant_client.wait_finished())
        await settle()
        assert not waiter.done()

        transport.inject("sessionEnd", {"sessionId": "s-1"})
        await asyncio.wait_for(waiter, 1.0)

        assert participant_client.phase == SessionPhase.ENDED
        await participant_client.disconnect()

    @pytest.mark.asyncio
    async def test_server_error_is_published(self, participant_client, transport):
        errors = []
        participant_client.subscribe(SessionEvent.ERROR, errors.append)
        await participant_client.connect()

        transport.inject("error", {"errors": [{"message": "Not allowed"}]})
        await settle()

        assert str(errors[0]) == "Not allowed"
        assert participant_client.metrics.connection.server_errors == 1
        await participant_client.disconnect()


# =============================================================================
# End-to-end
# =============================================================================


class TestEndToEnd:
    """Participant scenario from connect to session end."""

    @pytest.mark.asyncio
    async def test_alice_and_bob(self, transport, broadcaster):
        client = SessionClient("ABC123", transport=transport, broadcaster=broadcaster)
        updates = []
        client.subscribe_leaderboard(updates.append)

        await client.connect()
        assert client.phase == SessionPhase.CONNECTED

        join = asyncio.create_task(client.join_session("Alice"))
        await settle()
        assert client.phase == SessionPhase.JOINING
        avatar = transport.sent[0]["data"]["displayAvatar"]

        transport.inject("participantsUpdate", [roster_entry("p-alice", 0, "Alice", avatar)])
        me = await join
        assert client.phase == SessionPhase.ACTIVE
        assert me.display_name == "Alice"

        transport.inject("participantsUpdate", [
            roster_entry("p-alice", 0, "Alice", avatar),
            roster_entry("p-bob", 5, "Bob"),
        ])
        await settle()
        assert [(rp.display_name, rp.realtime_ranking) for rp in client.leaderboard] == [
            ("Bob", 1),
            ("Alice", 2),
        ]

        transport.inject("sessionEnd", {"sessionId": "s-1"})
        await settle()
        assert client.phase == SessionPhase.ENDED

        # The final roster was still inside the throttle window; ending flushed it
        final = updates[-1]
        assert [(rp.display_name, rp.realtime_ranking) for rp in final.participants] == [
            ("Bob", 1),
            ("Alice", 2),
        ]
        assert final.delta_for("p-alice") == -1

        with pytest.raises(InvalidStateError):
            await client.submit_activity("q1", "A")
        await client.disconnect()
