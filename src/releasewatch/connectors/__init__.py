"""Connectors for external services (release source, metrics)."""

from releasewatch.connectors.backoff import (
    BackoffConfig,
    BackoffState,
    RateLimitError,
    RateLimitKind,
    compute_backoff_delay,
    handle_error_response,
    retry_after_from_headers,
)

__all__ = [
    "BackoffConfig",
    "BackoffState",
    "RateLimitError",
    "RateLimitKind",
    "compute_backoff_delay",
    "handle_error_response",
    "retry_after_from_headers",
]
