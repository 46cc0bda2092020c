"""
Backoff and rate limit handling for the GitHub REST API.

- 429, or 403 with an exhausted quota: rate limited, stop and surface the error
- 5xx and network errors: retry with exponential backoff and jitter
- Retry-After / x-ratelimit-reset are respected when present
"""

from __future__ import annotations

import random
import time
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum


class RateLimitKind(str, Enum):
    """Type of rate limit error."""

    PRIMARY = "PRIMARY"  # hourly quota exhausted (x-ratelimit-remaining: 0)
    SECONDARY = "SECONDARY"  # abuse/secondary limit, usually with Retry-After


class RateLimitError(Exception):
    """Raised when the API reports a rate limit."""

    def __init__(
        self,
        message: str,
        retry_after_ms: int | None = None,
        kind: RateLimitKind = RateLimitKind.PRIMARY,
    ) -> None:
        super().__init__(message)
        self.retry_after_ms = retry_after_ms
        self.kind = kind


@dataclass
class BackoffConfig:
    """Configuration for exponential backoff."""

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    multiplier: float = 2.0
    jitter_factor: float = 0.5  # 0.5 = ±50% jitter
    max_retries: int = 3


@dataclass
class BackoffState:
    """Mutable state for backoff tracking."""

    attempt: int = 0
    last_error_time_ms: int = 0
    consecutive_errors: int = 0

    def reset(self) -> None:
        """Reset after a successful request."""
        self.attempt = 0
        self.consecutive_errors = 0

    def record_error(self) -> None:
        self.attempt += 1
        self.consecutive_errors += 1
        self.last_error_time_ms = int(time.time() * 1000)


def compute_backoff_delay(
    config: BackoffConfig,
    state: BackoffState,
    retry_after_ms: int | None = None,
    *,
    rng: random.Random | None = None,
) -> int:
    """
    Compute backoff delay with exponential increase and jitter.

    Args:
        config: Backoff configuration.
        state: Current backoff state.
        retry_after_ms: Server-provided retry delay.
        rng: Optional seeded Random instance for deterministic jitter.

    Returns:
        Delay in milliseconds before next retry.
    """
    if state.attempt == 0:
        return 0

    delay = config.base_delay_ms * (config.multiplier ** (state.attempt - 1))

    jitter_min = 1.0 - config.jitter_factor
    jitter_max = 1.0 + config.jitter_factor
    source = rng if rng is not None else random
    delay = delay * source.uniform(jitter_min, jitter_max)

    delay = min(delay, config.max_delay_ms)

    # Server knows best
    if retry_after_ms is not None and retry_after_ms > 0:
        delay = max(delay, retry_after_ms)

    return int(delay)


def retry_after_from_headers(
    headers: Mapping[str, str],
    *,
    now_s: float | None = None,
) -> int | None:
    """
    Extract a retry delay in milliseconds from GitHub response headers.

    Retry-After (seconds) wins over x-ratelimit-reset (epoch seconds).
    """
    retry_after = headers.get("Retry-After")
    if retry_after is not None:
        try:
            return max(int(float(retry_after) * 1000), 0)
        except ValueError:
            pass

    reset = headers.get("x-ratelimit-reset")
    if reset is not None:
        try:
            now = time.time() if now_s is None else now_s
            return max(int((int(reset) - now) * 1000), 0)
        except ValueError:
            pass

    return None


def handle_error_response(
    status_code: int,
    headers: Mapping[str, str],
) -> RateLimitError | None:
    """
    Classify a GitHub error response.

    Returns:
        RateLimitError if rate limiting detected, None otherwise.
    """
    retry_after_ms = retry_after_from_headers(headers)

    if status_code in (403, 429) and headers.get("x-ratelimit-remaining") == "0":
        return RateLimitError(
            f"API rate limit exhausted ({status_code})",
            retry_after_ms=retry_after_ms,
            kind=RateLimitKind.PRIMARY,
        )

    if status_code == 429 or (status_code == 403 and "Retry-After" in headers):
        return RateLimitError(
            f"Secondary rate limit hit ({status_code})",
            retry_after_ms=retry_after_ms,
            kind=RateLimitKind.SECONDARY,
        )

    return None
