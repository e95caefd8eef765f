"""
Reconnect policy layered above SessionClient.

SessionClient.connect() never retries; hosts and participants want
different backoff, so the policy lives here. Every attempt uses a fresh
client from the factory, since a client is bound to one connection
lifetime and an ended session cannot be resumed.

Usage:
    async def rejoin(client: SessionClient) -> None:
        await client.join_session("Alice")

    session = ReconnectingSession(
        lambda: SessionClient("ABC123", broadcaster=broadcaster),
        create_participant_retry_config(),
    )
    await session.run(rejoin)
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from shared.config.logging import get_logger
from live_session.components.core.exceptions import DisconnectedError, TransportError
from live_session.components.core.state import SessionPhase
from live_session.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_participant_retry_config,
    should_retry,
)
from live_session.session_client import SessionClient

logger = get_logger(__name__)


class ReconnectingSession:
    """
    Keeps a connected SessionClient alive across transport failures.

    Args:
        client_factory: Builds a new, unconnected SessionClient.
        retry_config: Backoff policy. Participant defaults when omitted.
        sleep: Awaitable delay, injectable for tests.
        on_client: Called with each client once it is connected.
    """

    def __init__(
        self,
        client_factory: Callable[[], SessionClient],
        retry_config: RetryConfig | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_client: Callable[[SessionClient], None] | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._config = retry_config or create_participant_retry_config()
        self._sleep = sleep
        self._on_client = on_client
        self._client: SessionClient | None = None
        self._stopped = False
        self._reconnects = 0

    @property
    def client(self) -> SessionClient | None:
        return self._client

    @property
    def reconnects(self) -> int:
        """Successful connections after the first."""
        return self._reconnects

    async def connect(self) -> SessionClient:
        """
        Connect a fresh client, backing off between failed attempts.

        Raises:
            TransportError: The last attempt's error once max_attempts is reached.
            DisconnectedError: stop() was called.
        """
        attempt = 0
        while True:
            if self._stopped:
                raise DisconnectedError("Reconnect stopped")

            client = self._client_factory()
            try:
                await client.connect()
            except TransportError as e:
                attempt += 1
                await client.disconnect()
                if not should_retry(attempt, self._config.max_attempts):
                    logger.error("Giving up connecting", attempts=attempt, error=str(e))
                    raise
                delay = calculate_delay_with_jitter(attempt - 1, self._config)
                logger.warning(
                    "Connect failed, retrying",
                    attempt=attempt,
                    max_attempts=self._config.max_attempts,
                    delay=round(delay, 2),
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            if self._client is not None:
                self._reconnects += 1
            self._client = client
            if self._on_client is not None:
                self._on_client(client)
            return client

    async def run(self, on_connected: Callable[[SessionClient], Awaitable[None]]) -> None:
        """
        Connect, hand the client to on_connected, and reconnect whenever
        the connection drops, until the session ends or stop() is called.

        on_connected runs after every (re)connect, e.g. to join again. If it
        fails with a TransportError the client is dropped and the next attempt
        backs off; any other error disconnects the client and propagates.
        """
        failures = 0
        while not self._stopped:
            client = await self.connect()
            try:
                await on_connected(client)
            except TransportError as e:
                await client.disconnect()
                failures += 1
                if not should_retry(failures, self._config.max_attempts):
                    logger.error("Giving up after setup failures", attempts=failures, error=str(e))
                    raise
                delay = calculate_delay_with_jitter(failures - 1, self._config)
                logger.warning(
                    "Connection lost during setup, retrying",
                    attempt=failures,
                    delay=round(delay, 2),
                    error=str(e),
                )
                await self._sleep(delay)
                continue
            except Exception:
                await client.disconnect()
                raise
            failures = 0

            await client.wait_finished()

            if client.phase == SessionPhase.ENDED:
                logger.info("Session ended, not reconnecting")
                return
            if self._stopped:
                return
            logger.info("Connection dropped, reconnecting", phase=client.phase.value)

    async def stop(self) -> None:
        """Stop reconnecting and disconnect the current client."""
        self._stopped = True
        if self._client is not None:
            await self._client.disconnect()
