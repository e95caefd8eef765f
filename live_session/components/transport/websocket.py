"""
WebSocket transport built on the `websockets` asyncio client.

Keepalive uses WebSocket ping/pong at the configured interval, so a dead
peer is detected without any application-level heartbeat frames.
"""

from __future__ import annotations

import asyncio
from typing import Callable
from urllib.parse import quote

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from shared.config.logging import get_logger
from shared.config.settings import settings
from live_session.components.core.constants import SessionConstants, WSCloseCode
from live_session.components.core.exceptions import (
    ConnectTimeoutError,
    DisconnectedError,
    TransportConnectError,
)
from live_session.components.transport.base import TransportState

logger = get_logger(__name__)


def build_session_url(
    base_url: str,
    session_code: str,
    session_id: str | None = None,
) -> str:
    """
    Connection endpoint for one session.

    Participants only know the short code; a host also passes the
    session id returned when the session was created.

    Example:
        >>> build_session_url("ws://localhost:8080/ws", "ABC123")
        'ws://localhost:8080/ws/session/ABC123'
        >>> build_session_url("ws://localhost:8080/ws", "ABC123", "s-9")
        'ws://localhost:8080/ws/session/ABC123?sessionId=s-9'
    """
    if not session_code:
        raise ValueError("session_code is required to build a session URL")
    url = f"{base_url.rstrip('/')}/session/{quote(session_code, safe='')}"
    if session_id:
        url += f"?sessionId={quote(session_id, safe='')}"
    return url


class WebSocketTransport:
    """
    Transport over a single WebSocket connection.

    Args:
        url: Full session endpoint (see build_session_url).
        token: Optional bearer token sent in the Authorization header.
        on_state_change: Called with each new TransportState.
    """

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        ping_interval: float | None = None,
        ping_timeout: float | None = None,
        max_size: int | None = None,
        open_timeout: float | None = None,
        on_state_change: Callable[[TransportState], None] | None = None,
    ) -> None:
        self._url = url
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._ping_interval = ping_interval if ping_interval is not None else settings.ws_ping_interval
        self._ping_timeout = ping_timeout if ping_timeout is not None else settings.ws_ping_timeout
        self._max_size = max_size if max_size is not None else settings.ws_max_message_size
        self._open_timeout = open_timeout if open_timeout is not None else settings.connect_timeout
        self._on_state_change = on_state_change
        self._ws: ClientConnection | None = None
        self._state = TransportState.IDLE
        self._close_code: int | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def close_code(self) -> int | None:
        return self._close_code

    def _set_state(self, state: TransportState) -> None:
        if state == self._state:
            return
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    async def connect(self) -> None:
        """
        Open the WebSocket.

        Raises:
            ConnectTimeoutError: Handshake did not finish within open_timeout.
            TransportConnectError: Invalid URL, rejected handshake or network error.
        """
        if self._state in (TransportState.OPEN, TransportState.CONNECTING):
            return

        self._set_state(TransportState.CONNECTING)
        self._close_code = None
        try:
            self._ws = await connect(
                self._url,
                additional_headers=self._headers or None,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                max_size=self._max_size,
                open_timeout=self._open_timeout,
                close_timeout=SessionConstants.CLOSE_TIMEOUT,
            )
        except TimeoutError as e:
            self._set_state(TransportState.CLOSED)
            raise ConnectTimeoutError(self._url, self._open_timeout) from e
        except (InvalidURI, InvalidHandshake, OSError) as e:
            self._set_state(TransportState.CLOSED)
            raise TransportConnectError(self._url, str(e)) from e

        self._set_state(TransportState.OPEN)
        logger.info("WebSocket connected", url=self._url)

    async def send(self, frame: str) -> None:
        ws = self._ws
        if ws is None or self._state != TransportState.OPEN:
            raise DisconnectedError("Cannot send: connection is not open", code=self._close_code)
        try:
            await ws.send(frame)
        except ConnectionClosed as e:
            self._mark_closed(e)
            raise DisconnectedError("Connection closed while sending", code=self._close_code) from e

    async def receive(self) -> str | bytes:
        ws = self._ws
        if ws is None or self._state not in (TransportState.OPEN, TransportState.CLOSING):
            raise DisconnectedError("Cannot receive: connection is not open", code=self._close_code)
        try:
            return await ws.recv()
        except ConnectionClosed as e:
            self._mark_closed(e)
            raise DisconnectedError(
                f"Connection closed ({self._close_code})", code=self._close_code
            ) from e

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None:
        ws = self._ws
        if ws is None or self._state == TransportState.CLOSED:
            self._set_state(TransportState.CLOSED)
            return

        self._set_state(TransportState.CLOSING)
        try:
            await asyncio.wait_for(ws.close(code=code, reason=reason), SessionConstants.CLOSE_TIMEOUT)
        except (TimeoutError, ConnectionClosed, OSError) as e:
            logger.debug("WebSocket close handshake incomplete", url=self._url, error=str(e))
        finally:
            if self._close_code is None:
                self._close_code = ws.close_code if ws.close_code is not None else code
            self._ws = None
            self._set_state(TransportState.CLOSED)
            logger.info("WebSocket closed", url=self._url, code=self._close_code)

    def _mark_closed(self, error: ConnectionClosed) -> None:
        received = error.rcvd
        self._close_code = received.code if received is not None else WSCloseCode.GOING_AWAY
        self._ws = None
        self._set_state(TransportState.CLOSED)
