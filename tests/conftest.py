"""
Pytest configuration and fixtures for live session tests.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from live_session.components.broadcast.leaderboard import LeaderboardBroadcaster
from live_session.components.core.constants import WSCloseCode
from live_session.components.core.exceptions import DisconnectedError, TransportConnectError
from live_session.components.events.types import Participant
from live_session.components.transport.base import TransportState
from live_session.session_client import ClientRole, SessionClient

_CLOSED = object()


class FakeTransport:
    """
    In-memory Transport.

    Frames pushed with inject() are returned by receive() in order;
    everything the client sends is recorded in `sent` (decoded JSON).
    """

    def __init__(self, url: str = "ws://test/ws/session/ABC123") -> None:
        self.url = url
        self.sent: list[dict[str, Any]] = []
        self.connect_calls = 0
        self.connect_error: Exception | None = None
        self.connect_delay: float = 0.0
        self.send_error: Exception | None = None
        self._state = TransportState.IDLE
        self._close_code: int | None = None
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def close_code(self) -> int | None:
        return self._close_code

    async def connect(self) -> None:
        self.connect_calls += 1
        self._state = TransportState.CONNECTING
        # Each connection gets its own inbound stream
        self._inbound = asyncio.Queue()
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            self._state = TransportState.CLOSED
            raise self.connect_error
        self._state = TransportState.OPEN

    async def send(self, frame: str) -> None:
        if self._state != TransportState.OPEN:
            raise DisconnectedError("Cannot send: connection is not open")
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(json.loads(frame))

    async def receive(self) -> str:
        item = await self._inbound.get()
        if item is _CLOSED:
            self._state = TransportState.CLOSED
            raise DisconnectedError("Connection closed", code=self._close_code)
        return item

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None:
        if self._state != TransportState.CLOSED:
            self._close_code = code
        self._state = TransportState.CLOSED
        self._inbound.put_nowait(_CLOSED)

    # Test helpers

    def inject(self, frame_type: str, data: Any = None) -> None:
        self._inbound.put_nowait(json.dumps({"type": frame_type, "data": data}))

    def inject_raw(self, raw: str) -> None:
        self._inbound.put_nowait(raw)

    def drop(self, code: int = WSCloseCode.GOING_AWAY) -> None:
        """Simulate the server closing the connection."""
        self._close_code = code
        self._inbound.put_nowait(_CLOSED)

    def sent_types(self) -> list[str]:
        return [frame["type"] for frame in self.sent]


def participant(key: str, score: int = 0, name: str | None = None) -> Participant:
    return Participant(
        participant_key=key,
        display_name=name or key.title(),
        display_avatar=f"https://avatars.test/{key}.svg",
        realtime_score=score,
    )


def roster_entry(
    key: str,
    score: int = 0,
    name: str | None = None,
    avatar: str | None = None,
) -> dict[str, Any]:
    """A participant in wire shape."""
    return {
        "id": key,
        "displayName": name or key.title(),
        "displayAvatar": avatar or f"https://avatars.test/{key}.svg",
        "realtimeScore": score,
    }


async def settle(turns: int = 5) -> None:
    """Let the reader task and call_soon callbacks run."""
    for _ in range(turns):
        await asyncio.sleep(0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def broadcaster() -> LeaderboardBroadcaster:
    return LeaderboardBroadcaster(throttle=0.3)


@pytest.fixture
def participant_client(transport: FakeTransport, broadcaster: LeaderboardBroadcaster) -> SessionClient:
    return SessionClient(
        "ABC123",
        transport=transport,
        broadcaster=broadcaster,
        join_timeout=0.5,
        connect_timeout=0.5,
    )


@pytest.fixture
def host_client(transport: FakeTransport, broadcaster: LeaderboardBroadcaster) -> SessionClient:
    return SessionClient(
        "ABC123",
        "session-1",
        role=ClientRole.HOST,
        transport=transport,
        broadcaster=broadcaster,
        connect_timeout=0.5,
    )


@pytest.fixture
def connect_error() -> TransportConnectError:
    return TransportConnectError("ws://test/ws/session/ABC123", "connection refused")
