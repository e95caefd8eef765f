"""
Typed publish/subscribe for session domain events.

Every registration returns a Subscription handle; calling unsubscribe()
on it is the only way to remove a handler, so component teardown can never
leak a listener by forgetting which callback it passed in.

Usage:
    bus = EventBus()
    sub = bus.subscribe(SessionEvent.NEXT_ACTIVITY, on_activity)
    ...
    sub.unsubscribe()
"""

from __future__ import annotations

import itertools
from enum import StrEnum
from typing import Any, Callable

from shared.config.logging import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any], None]


class SessionEvent(StrEnum):
    """Domain events raised by a SessionClient."""

    PARTICIPANTS_UPDATE = "participantsUpdate"  # tuple[Participant, ...]
    SESSION_START = "sessionStart"  # SessionSummary
    NEXT_ACTIVITY = "nextActivity"  # Activity
    SESSION_END = "sessionEnd"  # SessionSummary
    SESSION_SUMMARY = "sessionSummary"  # tuple[EndSessionSummary, ...]
    CONNECTION_STATUS = "connectionStatus"  # str
    ERROR = "error"  # LiveSessionError


class Subscription:
    """
    Handle returned by subscribe().

    unsubscribe() is idempotent and never raises, so it is safe in any
    teardown path, including from inside a handler during dispatch.
    """

    __slots__ = ("_cancel",)

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel: Callable[[], None] | None = cancel

    @property
    def active(self) -> bool:
        return self._cancel is not None

    def unsubscribe(self) -> None:
        cancel, self._cancel = self._cancel, None
        if cancel is not None:
            cancel()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()


class EventBus:
    """
    Synchronous event dispatcher.

    - Handlers for one event run in registration order.
    - A handler added during dispatch runs from the next publish on.
    - A handler removed during dispatch is skipped if not yet reached.
    - A failing handler is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[SessionEvent, dict[int, Handler]] = {}
        self._ids = itertools.count()

    def subscribe(self, event: SessionEvent, handler: Handler) -> Subscription:
        """Register handler for event. O(1)."""
        handlers = self._handlers.setdefault(event, {})
        handler_id = next(self._ids)
        handlers[handler_id] = handler
        return Subscription(lambda: handlers.pop(handler_id, None))

    def publish(self, event: SessionEvent, payload: Any) -> int:
        """
        Deliver payload to every handler registered for event.

        Returns:
            Number of handlers invoked.
        """
        handlers = self._handlers.get(event)
        if not handlers:
            return 0

        delivered = 0
        for handler_id, handler in list(handlers.items()):
            if handler_id not in handlers:
                continue
            try:
                handler(payload)
            except Exception:
                logger.error(
                    "Event handler failed",
                    event=event.value,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                    exc_info=True,
                )
            delivered += 1
        return delivered

    def handler_count(self, event: SessionEvent | None = None) -> int:
        if event is not None:
            return len(self._handlers.get(event, ()))
        return sum(len(h) for h in self._handlers.values())

    def clear(self) -> None:
        """Drop every handler. Outstanding Subscription handles become no-ops."""
        for handlers in self._handlers.values():
            handlers.clear()
