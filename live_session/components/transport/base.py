"""
Transport Adapter contract.

A transport carries opaque text frames to and from one session endpoint.
It knows nothing about frame types or session phases; SessionClient owns
those. Anything satisfying this protocol can be injected, which is how the
test suite drives the client without a network.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from live_session.components.core.constants import WSCloseCode


class TransportState(StrEnum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@runtime_checkable
class Transport(Protocol):
    """
    Bidirectional text-frame connection.

    Contract:
    - connect() resolves once frames can be sent; raises
      TransportConnectError on failure. A CLOSED transport may connect again.
    - send() raises DisconnectedError when not OPEN.
    - receive() returns the next inbound frame in arrival order and raises
      DisconnectedError once the connection is closed, by either side.
    - close() is idempotent and never raises.
    """

    @property
    def state(self) -> TransportState: ...

    @property
    def close_code(self) -> int | None: ...

    async def connect(self) -> None: ...

    async def send(self, frame: str) -> None: ...

    async def receive(self) -> str | bytes: ...

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None: ...
