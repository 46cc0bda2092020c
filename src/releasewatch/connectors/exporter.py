"""
Prometheus metrics exporter for the release watcher.

Low-cardinality only: no release tag, URL, or message id labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from datetime import datetime

    from releasewatch.delivery.reconciler import CycleReport


class MetricsExporter:
    """
    Prometheus metrics for poll cycles and deliveries.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.record_cycle(report, ledger_size=3, watermark=ledger.watermark)
        # generate_latest(registry) -> bytes for /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._cycles = Counter(
            "releasewatch_cycles",
            "Poll cycles started",
            registry=self._registry,
        )
        self._cycle_failures = Counter(
            "releasewatch_cycle_failures",
            "Poll cycles aborted because the release list could not be fetched",
            registry=self._registry,
        )
        self._messages_created = Counter(
            "releasewatch_messages_created",
            "Release messages posted",
            registry=self._registry,
        )
        self._messages_updated = Counter(
            "releasewatch_messages_updated",
            "Release messages edited after an upstream change",
            registry=self._registry,
        )
        self._messages_unchanged = Counter(
            "releasewatch_messages_unchanged",
            "Tracked releases whose rendered message did not change",
            registry=self._registry,
        )
        self._delivery_failures = Counter(
            "releasewatch_delivery_failures",
            "Create/update calls that failed and will be retried next cycle",
            registry=self._registry,
        )
        self._releases_deferred = Counter(
            "releasewatch_releases_deferred",
            "Eligible releases pushed to the next cycle by the per-cycle cap",
            registry=self._registry,
        )
        self._ledger_entries = Gauge(
            "releasewatch_ledger_entries",
            "Releases currently tracked for edits",
            registry=self._registry,
        )
        self._watermark = Gauge(
            "releasewatch_watermark_timestamp_seconds",
            "Start of the last completed poll cycle (unix seconds)",
            registry=self._registry,
        )
        self._last_cycle_duration = Gauge(
            "releasewatch_last_cycle_duration_seconds",
            "Wall time of the most recent poll cycle",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_cycle(
        self,
        report: CycleReport,
        *,
        ledger_size: int,
        watermark: datetime,
    ) -> None:
        """Fold one cycle report into the exported metrics."""
        self._cycles.inc()
        if not report.ok:
            self._cycle_failures.inc()
        self._messages_created.inc(report.created)
        self._messages_updated.inc(report.updated)
        self._messages_unchanged.inc(report.unchanged)
        self._delivery_failures.inc(report.failed)
        self._releases_deferred.inc(report.deferred)
        self._ledger_entries.set(ledger_size)
        self._watermark.set(watermark.timestamp())
        self._last_cycle_duration.set(report.duration_s)
