"""
Resilience: reconnect backoff policy.
"""

from live_session.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    should_retry,
    create_host_retry_config,
    create_participant_retry_config,
)

__all__ = [
    "RetryConfig",
    "calculate_delay_with_jitter",
    "should_retry",
    "create_host_retry_config",
    "create_participant_retry_config",
]
