"""
Reconnect backoff for session clients.

Exponential backoff with jitter so that a classroom of participants dropped
by the same network blip does not hammer the session server in lockstep
when reconnecting.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Final

from shared.config.settings import settings


# =============================================================================
# Constants
# =============================================================================


# Default jitter range: ±25% of calculated delay
DEFAULT_JITTER_FACTOR: Final[float] = 0.25

# Default exponential backoff base
DEFAULT_BACKOFF_BASE: Final[float] = 2.0

# Default initial delay in seconds
DEFAULT_INITIAL_DELAY: Final[float] = 1.0


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Configuration for reconnect behavior.

    Attributes:
        initial_delay: Base delay in seconds (default: 1.0).
        max_delay: Maximum delay cap in seconds (default: 30.0).
        backoff_base: Exponential backoff multiplier (default: 2.0).
        jitter_factor: Random jitter range as fraction (default: 0.25 = ±25%).
        max_attempts: Maximum connect attempts (default: 10).
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = 30.0
    backoff_base: float = DEFAULT_BACKOFF_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


# =============================================================================
# Backoff Functions
# =============================================================================


def calculate_delay_with_jitter(
    attempt: int,
    config: RetryConfig | None = None,
) -> float:
    """
    Calculate reconnect delay with exponential backoff and jitter.

    The delay is calculated as:
        base_delay = initial_delay * (backoff_base ^ attempt)
        capped_delay = min(base_delay, max_delay)
        final_delay = capped_delay * (1 ± jitter_factor)

    Args:
        attempt: Number of failed attempts so far (0-indexed).
        config: Retry configuration (uses defaults if None).

    Returns:
        Delay in seconds, never negative.

    Example:
        >>> config = RetryConfig(initial_delay=1.0, max_delay=30.0)
        >>> calculate_delay_with_jitter(0, config)  # ~1.0s ± 25%
        >>> calculate_delay_with_jitter(5, config)  # ~30.0s ± 25% (capped)
    """
    if config is None:
        config = RetryConfig()

    # Exponent overflow guard: past this the cap always applies anyway
    exponent = min(attempt, 64)
    base_delay = config.initial_delay * (config.backoff_base ** exponent)
    capped_delay = min(base_delay, config.max_delay)

    jitter_range = capped_delay * config.jitter_factor
    jitter = random.uniform(-jitter_range, jitter_range)

    return max(0.0, capped_delay + jitter)


def should_retry(attempt: int, max_attempts: int) -> bool:
    """
    Determine if another connect attempt should be made.

    Args:
        attempt: Attempts made so far (1-indexed).
        max_attempts: Maximum allowed attempts.
    """
    return attempt < max_attempts


# =============================================================================
# Factory Functions
# =============================================================================


def create_host_retry_config() -> RetryConfig:
    """
    Retry config for a host client.

    A host dropping out stalls the whole room, so it retries sooner and
    longer than a participant, with the configured cap.
    """
    return RetryConfig(
        initial_delay=min(0.5, settings.reconnect_initial_delay),
        max_delay=max(settings.reconnect_max_delay, settings.reconnect_initial_delay),
        backoff_base=2.0,
        jitter_factor=0.2,
        max_attempts=settings.reconnect_max_attempts * 2,
    )


def create_participant_retry_config() -> RetryConfig:
    """
    Retry config for a participant client.

    More jitter than the host: many participants reconnect at once after a
    shared network drop.
    """
    return RetryConfig(
        initial_delay=settings.reconnect_initial_delay,
        max_delay=max(settings.reconnect_max_delay, settings.reconnect_initial_delay),
        backoff_base=2.0,
        jitter_factor=0.3,
        max_attempts=settings.reconnect_max_attempts,
    )
