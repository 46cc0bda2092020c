"""
Delivery ledger.

Process-local record of which releases have a posted message:
- At most one message per release identity while it is tracked
- Create / update / skip decision per observed release
- Entries expire after the retention window; a release seen again after
  expiry is treated as new

State is deliberately not persisted: a restart starts cold.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from releasewatch.contracts import Release
    from releasewatch.delivery.formatter import RenderResult

DEFAULT_RETENTION_S = 24 * 60 * 60
DEFAULT_REFRESH_RETENTION_S = 3 * 24 * 60 * 60


class DeliveryAction(str, Enum):
    """What to do with an observed release."""

    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True)
class Decision:
    """Ledger decision for one release."""

    action: DeliveryAction
    message_id: str | None = None


@dataclass
class LedgerEntry:
    """Tracked message for one release identity."""

    message_id: str
    serialized: bytes
    touched_at: datetime
    needs_refresh: bool = False


@dataclass
class LedgerMetrics:
    """Counters for ledger activity."""

    decisions: dict[str, int] = field(default_factory=dict)
    recorded: int = 0
    expired: int = 0


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class DeliveryLedger:
    """
    Tracks delivered messages per release and the poll watermark.

    Decision table:
    1. No entry, published after the watermark -> CREATE
    2. No entry, published at/before the watermark -> SKIP
    3. Entry present -> UPDATE with its message id, regardless of watermark

    Entries waiting for an enrichment retry (needs_refresh) outlive the
    normal retention window up to refresh_retention_s.
    """

    def __init__(
        self,
        retention_s: float = DEFAULT_RETENTION_S,
        refresh_retention_s: float = DEFAULT_REFRESH_RETENTION_S,
        *,
        watermark: datetime | None = None,
        time_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self._retention = timedelta(seconds=retention_s)
        self._refresh_retention = timedelta(seconds=max(refresh_retention_s, retention_s))
        self._time_fn = time_fn or _utc_now
        self._watermark = watermark or self._time_fn()
        self._entries: dict[str, LedgerEntry] = {}
        self._metrics = LedgerMetrics()

    @property
    def watermark(self) -> datetime:
        """Start of the last completed poll cycle."""
        return self._watermark

    @property
    def metrics(self) -> LedgerMetrics:
        return self._metrics

    def now(self) -> datetime:
        return self._time_fn()

    def advance(self, to: datetime) -> None:
        """Move the watermark forward; it never moves backwards."""
        if to > self._watermark:
            self._watermark = to

    def get(self, release: Release) -> LedgerEntry | None:
        return self._entries.get(release.identity)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def published_at(self, release: Release, now: datetime | None = None) -> datetime:
        """Publish time, with a missing timestamp treated as now."""
        if release.published_at is not None:
            return release.published_at
        return now if now is not None else self._time_fn()

    def is_eligible(self, release: Release, now: datetime | None = None) -> bool:
        """New since the watermark, or still tracked."""
        if release.identity in self._entries:
            return True
        return self.published_at(release, now) > self._watermark

    def decide(self, release: Release, *, ignore_watermark: bool = False) -> Decision:
        """
        Decide create/update/skip for a release.

        Args:
            release: Observed release.
            ignore_watermark: Create untracked releases even if they are old.
        """
        entry = self._entries.get(release.identity)
        if entry is not None:
            decision = Decision(DeliveryAction.UPDATE, entry.message_id)
        elif ignore_watermark or self.published_at(release) > self._watermark:
            decision = Decision(DeliveryAction.CREATE)
        else:
            decision = Decision(DeliveryAction.SKIP)

        key = decision.action.value
        self._metrics.decisions[key] = self._metrics.decisions.get(key, 0) + 1
        return decision

    def is_unchanged(self, release: Release, serialized: bytes) -> bool:
        """True if the stored payload is byte-identical to serialized."""
        entry = self._entries.get(release.identity)
        return entry is not None and entry.serialized == serialized

    def record(self, release: Release, message_id: str, render: RenderResult) -> LedgerEntry:
        """Record a successful delivery, replacing any previous entry."""
        entry = LedgerEntry(
            message_id=message_id,
            serialized=render.serialized,
            touched_at=self._time_fn(),
            needs_refresh=render.needs_retry,
        )
        self._entries[release.identity] = entry
        self._metrics.recorded += 1
        return entry

    def touch(self, release: Release, render: RenderResult) -> None:
        """
        Refresh the enrichment flag of an unchanged entry.

        The timestamp is left alone so unchanged releases still expire.
        """
        entry = self._entries.get(release.identity)
        if entry is not None:
            entry.needs_refresh = render.needs_retry

    def sweep(self, now: datetime | None = None) -> int:
        """
        Drop entries older than the retention window.

        Returns:
            Number of entries removed.
        """
        now = now or self._time_fn()
        expired = [
            identity
            for identity, entry in self._entries.items()
            if now - entry.touched_at
            > (self._refresh_retention if entry.needs_refresh else self._retention)
        ]
        for identity in expired:
            del self._entries[identity]
        self._metrics.expired += len(expired)
        return len(expired)

    def reset(self) -> None:
        """Reset all state (for testing)."""
        self._entries.clear()
        self._watermark = self._time_fn()
        self._metrics = LedgerMetrics()
