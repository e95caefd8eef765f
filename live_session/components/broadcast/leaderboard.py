"""
Leaderboard Broadcaster.

One shared hub per process, constructor-injected into whatever composes the
session UI. Session clients publish ranked snapshots through a
LeaderboardFeed; UI panels subscribe once and all receive the same emission,
so ranks are derived once per update no matter how many panels are open.

Throttling (per feed):
- The window is measured from the last *emitted* update.
- Updates published while an emission is scheduled replace the pending
  snapshot; the emission always carries the latest state.
- When the window has already elapsed, or a subscriber joined since the
  last emission, the update is emitted on the next event-loop turn instead
  of waiting out the window. Updates published in the same turn still
  collapse into that one emission.

Closing a feed flushes a pending snapshot before releasing it, so the final
state of a session is never silently dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping, Sequence

from shared.config.logging import get_logger
from live_session.components.core.constants import SessionConstants
from live_session.components.events.bus import Subscription
from live_session.components.events.types import RankedParticipant
from live_session.components.metrics.collector import SessionMetrics
from live_session.components.ranking.engine import rank_deltas

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LeaderboardUpdate:
    """
    One emission. Subscribers always receive the full ranked list.

    deltas are relative to the previous emission of the same session
    (positive = moved up); participants new since then have no entry.
    """

    session_code: str
    participants: tuple[RankedParticipant, ...]
    deltas: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    sequence: int = 0
    emitted_at: float = field(default_factory=time.monotonic)

    def delta_for(self, participant_key: str) -> int:
        """Rank movement of a participant, 0 when unknown or new."""
        return self.deltas.get(participant_key, 0)


LeaderboardSubscriber = Callable[[LeaderboardUpdate], None]


class LeaderboardBroadcaster:
    """
    Throttled publish/subscribe hub for leaderboard updates.

    Subscribing and unsubscribing are O(1) and safe during dispatch:
    a subscriber added mid-dispatch is first called on the next emission,
    one removed mid-dispatch is skipped if it has not been reached yet.
    """

    def __init__(
        self,
        throttle: float = SessionConstants.LEADERBOARD_THROTTLE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            throttle: Minimum seconds between emissions of one session.
            clock: Monotonic clock, injectable for tests.
        """
        if throttle < 0:
            raise ValueError("throttle must not be negative")
        self._throttle = throttle
        self._clock = clock
        self._subscribers: dict[int, tuple[LeaderboardSubscriber, str | None]] = {}
        self._ids = itertools.count()
        self._feeds: dict[int, LeaderboardFeed] = {}
        self._latest: dict[str, LeaderboardUpdate] = {}

    @property
    def throttle(self) -> float:
        return self._throttle

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def feed_count(self) -> int:
        return len(self._feeds)

    def latest(self, session_code: str) -> LeaderboardUpdate | None:
        """Last emission for a session, kept after its feed closes."""
        return self._latest.get(session_code)

    def forget(self, session_code: str) -> bool:
        """
        Drop the retained last emission of a finished session.

        The hub outlives sessions, so callers forget a session once its
        final standings have been shown. Open feeds are not affected.

        Returns:
            True if an emission was retained for session_code.
        """
        return self._latest.pop(session_code, None) is not None

    def subscribe(
        self,
        callback: LeaderboardSubscriber,
        session_code: str | None = None,
    ) -> Subscription:
        """
        Register callback for emissions of one session, or all if None.

        The next update of every matching feed is emitted without waiting
        for the throttle window.
        """
        subscriber_id = next(self._ids)
        self._subscribers[subscriber_id] = (callback, session_code)
        for feed in list(self._feeds.values()):
            if session_code is None or feed.session_code == session_code:
                feed._expedite()
        return Subscription(lambda: self._subscribers.pop(subscriber_id, None))

    def open_feed(self, session_code: str, metrics: SessionMetrics | None = None) -> LeaderboardFeed:
        """Register a publishing source for one session."""
        feed = LeaderboardFeed(self, session_code, metrics=metrics)
        self._feeds[id(feed)] = feed
        logger.debug("Leaderboard feed opened", session_code=session_code)
        return feed

    def _release_feed(self, feed: LeaderboardFeed) -> None:
        self._feeds.pop(id(feed), None)

    def _dispatch(self, update: LeaderboardUpdate, metrics: SessionMetrics | None) -> int:
        """Call every matching subscriber once, in subscription order."""
        self._latest[update.session_code] = update
        delivered = 0
        for subscriber_id, (callback, session_code) in list(self._subscribers.items()):
            if subscriber_id not in self._subscribers:
                continue
            if session_code is not None and session_code != update.session_code:
                continue
            try:
                callback(update)
            except Exception:
                if metrics is not None:
                    metrics.leaderboard.subscriber_errors += 1
                logger.error(
                    "Leaderboard subscriber failed",
                    session_code=update.session_code,
                    exc_info=True,
                )
            delivered += 1
        return delivered


class LeaderboardFeed:
    """
    Publishing side of the broadcaster for one session client.

    Owned by exactly one SessionClient; closed when that client ends or
    disconnects.
    """

    def __init__(
        self,
        broadcaster: LeaderboardBroadcaster,
        session_code: str,
        metrics: SessionMetrics | None = None,
    ) -> None:
        self._broadcaster = broadcaster
        self._session_code = session_code
        self._metrics = metrics
        self._pending: tuple[RankedParticipant, ...] | None = None
        self._last_emitted: tuple[RankedParticipant, ...] = ()
        self._last_emit_at: float | None = None
        self._handle: asyncio.Handle | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._expedite_next = False
        self._sequence = 0
        self._closed = False

    @property
    def session_code(self) -> str:
        return self._session_code

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def publish(self, ranked: Sequence[RankedParticipant]) -> None:
        """
        Offer a new ranked snapshot. Must be called from the event loop.
        """
        if self._closed:
            logger.debug("Publish on closed leaderboard feed ignored", session_code=self._session_code)
            return

        self._pending = tuple(ranked)
        if self._metrics is not None:
            self._metrics.leaderboard.published += 1

        if self._handle is not None:
            # Emission already scheduled; it will carry this snapshot
            if self._metrics is not None:
                self._metrics.leaderboard.collapsed += 1
            return

        self._loop = asyncio.get_running_loop()
        self._schedule(self._delay())

    def flush(self) -> bool:
        """
        Emit the pending snapshot now, ignoring the window.

        Returns:
            True if something was emitted.
        """
        self._cancel_timer()
        return self._emit()

    def close(self) -> None:
        """Flush any pending snapshot, then stop publishing. Never raises."""
        if self._closed:
            return
        try:
            self.flush()
        finally:
            self._closed = True
            self._cancel_timer()
            self._broadcaster._release_feed(self)
            logger.debug("Leaderboard feed closed", session_code=self._session_code)

    def _delay(self) -> float:
        if self._expedite_next or self._last_emit_at is None:
            return 0.0
        elapsed = self._broadcaster._clock() - self._last_emit_at
        return max(0.0, self._broadcaster.throttle - elapsed)

    def _schedule(self, delay: float) -> None:
        if delay <= 0:
            self._handle = self._loop.call_soon(self._on_timer)
        else:
            self._handle = self._loop.call_later(delay, self._on_timer)

    def _expedite(self) -> None:
        """A subscriber joined: do not make it wait out the window."""
        self._expedite_next = True
        if self._handle is not None and self._loop is not None:
            self._handle.cancel()
            self._schedule(0.0)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _on_timer(self) -> None:
        self._handle = None
        self._emit()

    def _emit(self) -> bool:
        if self._pending is None:
            return False

        current, self._pending = self._pending, None
        self._sequence += 1
        update = LeaderboardUpdate(
            session_code=self._session_code,
            participants=current,
            deltas=MappingProxyType(rank_deltas(self._last_emitted, current)),
            sequence=self._sequence,
            emitted_at=self._broadcaster._clock(),
        )
        self._last_emitted = current
        self._last_emit_at = update.emitted_at
        self._expedite_next = False

        if self._metrics is not None:
            self._metrics.leaderboard.emitted += 1
        self._broadcaster._dispatch(update, self._metrics)
        return True
