"""
Session Phase State Machine.

Declares the phases of a session protocol client and the legal
transitions between them. The client never assigns a phase directly;
it asks the machine to transition and the machine rejects anything the
table does not allow.

    DISCONNECTED -> CONNECTING -> CONNECTED -> JOINING -> ACTIVE -> ENDED
                                     \\________________/
                                       (host: first roster / sessionStart)

ERROR is reachable from every non-terminal phase. ENDED is terminal.
"""

from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType
from typing import Callable, Mapping

from shared.config.logging import get_logger
from live_session.components.core.exceptions import InvalidStateError

logger = get_logger(__name__)


class SessionPhase(StrEnum):
    """Phases of a session protocol client."""

    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    JOINING = "Joining"
    ACTIVE = "Active"
    ENDED = "Ended"
    ERROR = "Error"


_TRANSITIONS: Mapping[SessionPhase, frozenset[SessionPhase]] = MappingProxyType({
    SessionPhase.DISCONNECTED: frozenset({SessionPhase.CONNECTING}),
    SessionPhase.CONNECTING: frozenset({
        SessionPhase.CONNECTED,
        SessionPhase.DISCONNECTED,
        SessionPhase.ERROR,
    }),
    SessionPhase.CONNECTED: frozenset({
        SessionPhase.JOINING,
        SessionPhase.ACTIVE,
        SessionPhase.ENDED,
        SessionPhase.DISCONNECTED,
        SessionPhase.ERROR,
    }),
    SessionPhase.JOINING: frozenset({
        SessionPhase.ACTIVE,
        SessionPhase.CONNECTED,  # join window elapsed without a roster
        SessionPhase.ENDED,
        SessionPhase.DISCONNECTED,
        SessionPhase.ERROR,
    }),
    SessionPhase.ACTIVE: frozenset({
        SessionPhase.ENDED,
        SessionPhase.DISCONNECTED,
        SessionPhase.ERROR,
    }),
    SessionPhase.ENDED: frozenset(),
    SessionPhase.ERROR: frozenset({
        SessionPhase.CONNECTING,  # caller-driven retry
        SessionPhase.DISCONNECTED,
    }),
})

# Phases that accept session frames (roster, activities, start/end)
SESSION_FRAME_PHASES: frozenset[SessionPhase] = frozenset({
    SessionPhase.CONNECTED,
    SessionPhase.JOINING,
    SessionPhase.ACTIVE,
})

# Phases from which connect() is a no-op
CONNECTED_OR_LATER: frozenset[SessionPhase] = frozenset({
    SessionPhase.CONNECTED,
    SessionPhase.JOINING,
    SessionPhase.ACTIVE,
    SessionPhase.ENDED,
})


def can_transition(current: SessionPhase, target: SessionPhase) -> bool:
    """Whether the table allows current -> target."""
    return target in _TRANSITIONS[current]


class PhaseMachine:
    """
    Holds the current phase and validates every transition.

    Args:
        on_change: Called with (previous, current) after each transition.
    """

    def __init__(
        self,
        initial: SessionPhase = SessionPhase.DISCONNECTED,
        on_change: Callable[[SessionPhase, SessionPhase], None] | None = None,
    ) -> None:
        self._phase = initial
        self._on_change = on_change

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self._phase]

    def is_in(self, *phases: SessionPhase) -> bool:
        return self._phase in phases

    def require(self, action: str, *allowed: SessionPhase) -> None:
        """
        Raise InvalidStateError unless the current phase is one of allowed.
        """
        if self._phase not in allowed:
            raise InvalidStateError(action, current=self._phase, allowed=allowed)

    def transition(self, target: SessionPhase) -> bool:
        """
        Move to target.

        Returns:
            False if already in target (no-op), True if the phase changed.

        Raises:
            InvalidStateError: If the table does not allow the transition.
        """
        if target == self._phase:
            return False
        if not can_transition(self._phase, target):
            raise InvalidStateError(f"transition to {target.value}", current=self._phase)

        previous = self._phase
        self._phase = target
        logger.debug("Session phase changed", previous=previous.value, current=target.value)
        if self._on_change is not None:
            self._on_change(previous, target)
        return True
