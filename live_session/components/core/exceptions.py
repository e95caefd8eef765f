"""
Exception taxonomy for the live session client.

Usage:
    from live_session.components.core.exceptions import InvalidStateError

    raise InvalidStateError("submit_activity", current=phase, allowed=(SessionPhase.ACTIVE,))

Errors raised from explicit user actions (join, submit) propagate to the
awaiting caller. Errors from the transport itself are delivered through the
client's ERROR / CONNECTION_STATUS events since nobody is awaiting them.
"""

from __future__ import annotations

from typing import Any, Iterable


class LiveSessionError(Exception):
    """Base class for all live session errors."""


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(LiveSessionError):
    """The underlying connection failed or is unavailable."""


class TransportConnectError(TransportError):
    """Connecting to the session endpoint failed."""

    def __init__(self, url: str, reason: str | None = None):
        self.url = url
        self.reason = reason
        detail = f"Failed to connect to {url}"
        if reason:
            detail += f": {reason}"
        super().__init__(detail)


class ConnectTimeoutError(TransportConnectError):
    """Connecting did not complete within the configured window."""

    def __init__(self, url: str, timeout: float):
        self.timeout = timeout
        super().__init__(url, f"timed out after {timeout:.1f}s")


class DisconnectedError(TransportError):
    """The connection closed while an action was pending or requested."""

    def __init__(self, detail: str = "Disconnected from session", code: int | None = None):
        self.code = code
        super().__init__(detail)


# =============================================================================
# Protocol-State Errors
# =============================================================================


class InvalidStateError(LiveSessionError):
    """An action was invoked from a phase that does not allow it."""

    def __init__(
        self,
        action: str,
        current: Any,
        allowed: Iterable[Any] = (),
    ):
        self.action = action
        self.current = current
        self.allowed = tuple(allowed)
        detail = f"Cannot {action} while {_phase_name(current)}"
        if self.allowed:
            detail += f" (allowed: {', '.join(_phase_name(p) for p in self.allowed)})"
        super().__init__(detail)


class JoinTimeoutError(LiveSessionError):
    """No roster frame confirmed this client's join within the window."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Join was not confirmed within {timeout:.1f}s")


# =============================================================================
# Stale-Data Errors
# =============================================================================


class NoActiveActivityError(LiveSessionError):
    """An answer was submitted while no activity is current."""

    def __init__(self, detail: str = "No activity is currently active"):
        super().__init__(detail)


class StaleActivityError(NoActiveActivityError):
    """An answer was submitted for an activity that is no longer current."""

    def __init__(self, activity_id: str, current_activity_id: str | None, sequence: int):
        self.activity_id = activity_id
        self.current_activity_id = current_activity_id
        self.sequence = sequence
        super().__init__(
            f"Activity {activity_id} is stale "
            f"(current: {current_activity_id}, sequence {sequence})"
        )


# =============================================================================
# Frame Errors
# =============================================================================


class MalformedFrameError(LiveSessionError):
    """An inbound frame could not be decoded. The frame is dropped."""

    def __init__(self, reason: str, frame_type: str | None = None):
        self.reason = reason
        self.frame_type = frame_type
        prefix = f"Malformed {frame_type} frame" if frame_type else "Malformed frame"
        super().__init__(f"{prefix}: {reason}")


class ServerRejectedError(LiveSessionError):
    """The server reported an error for a previously sent frame."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


def _phase_name(phase: Any) -> str:
    return getattr(phase, "value", str(phase))
