"""
Poll-and-reconcile loop.

One cycle:
1. Fetch the newest page of releases
2. Keep releases eligible per the ledger (new since the watermark, or tracked)
3. Sort them oldest-published-first
4. Decide, render, deliver and record each release in order, one at a
   time, until the per-cycle cap on create/update calls is reached
5. Advance the watermark and sweep the ledger

A failed delivery is logged and not recorded, so it is retried next cycle.
A failed listing fetch aborts the cycle and leaves the ledger untouched.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol

import aiohttp

from releasewatch.config import WatcherConfig  # noqa: TC001
from releasewatch.connectors.backoff import RateLimitError
from releasewatch.delivery.ledger import DeliveryAction, DeliveryLedger
from releasewatch.delivery.sinks.base import DeliveryResult, MessageSink

if TYPE_CHECKING:
    from releasewatch.contracts import Release
    from releasewatch.delivery.formatter import ReleaseRenderer, RenderResult

logger = logging.getLogger(__name__)

# Keeps the watermark strictly before a release that must be seen again
_WATERMARK_EPSILON = timedelta(microseconds=1)


class ReleaseSource(Protocol):
    """Listing API consumed by the loop (most-recent-first)."""

    async def list_releases(
        self,
        owner: str,
        repo: str,
        page: int = 1,
        per_page: int | None = None,
    ) -> list[Release]: ...

    async def close(self) -> None: ...


class CycleMetricsSink(Protocol):
    """Anything that can absorb a finished cycle (e.g. MetricsExporter)."""

    def record_cycle(
        self,
        report: CycleReport,
        *,
        ledger_size: int,
        watermark: datetime,
    ) -> None: ...


@dataclass
class CycleReport:
    """Outcome of one check_once() call."""

    started_at: datetime
    ok: bool = True
    error: str | None = None
    fetched: int = 0
    eligible: int = 0
    deferred: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    expired: int = 0
    duration_s: float = 0.0
    delivered_tags: list[str] = field(default_factory=list)


def oldest_first(release: Release, now: datetime) -> datetime:
    """Sort key: publish time ascending, unknown timestamps sort as now."""
    return release.published_at if release.published_at is not None else now


class ReleaseReconciler:
    """
    Mirrors the release list into a chat channel.

    The ledger and watermark are owned state passed in at construction;
    nothing is persisted. Cycles never overlap: a call made while another
    cycle is running returns immediately.
    """

    def __init__(
        self,
        config: WatcherConfig,
        source: ReleaseSource,
        sink: MessageSink,
        renderer: ReleaseRenderer,
        ledger: DeliveryLedger,
        metrics: CycleMetricsSink | None = None,
    ) -> None:
        self._config = config
        self._source = source
        self._sink = sink
        self._renderer = renderer
        self._ledger = ledger
        self._metrics = metrics
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._dry_run_ids = itertools.count(1)
        self._last_report: CycleReport | None = None

    @property
    def ledger(self) -> DeliveryLedger:
        return self._ledger

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    async def check_once(self) -> CycleReport | None:
        """
        Run one poll cycle.

        Returns:
            The cycle report, or None if a cycle was already in progress.
        """
        if self._lock.locked():
            logger.warning("Previous cycle still running, skipping")
            return None

        async with self._lock:
            started = time.monotonic()
            report = CycleReport(started_at=self._ledger.now())
            try:
                await self._run_cycle(report)
            finally:
                report.duration_s = time.monotonic() - started
                self._last_report = report
                if self._metrics is not None:
                    self._metrics.record_cycle(
                        report,
                        ledger_size=len(self._ledger),
                        watermark=self._ledger.watermark,
                    )
            return report

    async def _run_cycle(self, report: CycleReport) -> None:
        now = report.started_at
        gh = self._config.github

        try:
            releases = await self._source.list_releases(
                gh.owner, gh.repo, per_page=gh.page_size
            )
        except (RateLimitError, aiohttp.ClientError, TimeoutError, ValueError) as e:
            report.ok = False
            report.error = str(e)
            logger.error(
                "Release listing failed, cycle aborted",
                extra={"repo": gh.full_name, "error": str(e)},
            )
            return

        report.fetched = len(releases)

        if self._config.dev_mode:
            candidates = self._newest(releases, now)
        else:
            candidates = [r for r in releases if self._ledger.is_eligible(r, now)]

        candidates.sort(key=lambda r: oldest_first(r, now))
        report.eligible = len(candidates)

        # Caps transport calls; unchanged releases do not count
        cap = self._config.max_items_per_cycle
        retry_floor: list[datetime] = []
        for index, release in enumerate(candidates):
            if cap and report.created + report.updated + report.failed >= cap:
                deferred = candidates[index:]
                report.deferred = len(deferred)
                retry_floor.extend(oldest_first(r, now) for r in deferred)
                logger.info(
                    "Per-cycle cap reached, deferring newest releases",
                    extra={"cap": cap, "deferred": len(deferred)},
                )
                break
            ok = await self._reconcile(release, report)
            if not ok and release.identity not in self._ledger:
                retry_floor.append(oldest_first(release, now))

        # Hold the watermark below anything that must be offered again
        watermark = now
        if retry_floor:
            watermark = min(watermark, min(retry_floor) - _WATERMARK_EPSILON)
        self._ledger.advance(watermark)
        report.expired = self._ledger.sweep(now)

        logger.info(
            "Cycle complete",
            extra={
                "fetched": report.fetched,
                "eligible": report.eligible,
                "created": report.created,
                "updated": report.updated,
                "unchanged": report.unchanged,
                "failed": report.failed,
                "deferred": report.deferred,
                "expired": report.expired,
            },
        )

    def _newest(self, releases: list[Release], now: datetime) -> list[Release]:
        if not releases:
            return []
        return [max(releases, key=lambda r: oldest_first(r, now))]

    async def _reconcile(self, release: Release, report: CycleReport) -> bool:
        """Decide, deliver and record one release. Returns False on failure."""
        decision = self._ledger.decide(release, ignore_watermark=self._config.dev_mode)
        if decision.action is DeliveryAction.SKIP:
            report.skipped += 1
            return True

        render = await self._renderer.render(release)

        if decision.action is DeliveryAction.UPDATE and self._ledger.is_unchanged(
            release, render.serialized
        ):
            self._ledger.touch(release, render)
            report.unchanged += 1
            logger.debug("Release unchanged", extra={"tag": release.tag_name})
            return True

        result = await self._deliver(release, decision.action, decision.message_id, render)
        if not result.success or result.message_id is None:
            report.failed += 1
            logger.error(
                "Release delivery failed",
                extra={
                    "tag": release.tag_name,
                    "action": decision.action.value,
                    "sink": result.sink_name,
                    "status": result.status_code,
                    "error": result.error,
                },
            )
            return False

        self._ledger.record(release, result.message_id, render)
        if decision.action is DeliveryAction.CREATE:
            report.created += 1
        else:
            report.updated += 1
        report.delivered_tags.append(release.tag_name)
        logger.info(
            "Release delivered",
            extra={
                "tag": release.tag_name,
                "action": decision.action.value,
                "message_id": result.message_id,
                "needs_retry": render.needs_retry,
            },
        )
        return True

    async def _deliver(
        self,
        release: Release,
        action: DeliveryAction,
        message_id: str | None,
        render: RenderResult,
    ) -> DeliveryResult:
        if self._config.dry_run:
            fake_id = message_id or f"dry-run-{next(self._dry_run_ids)}"
            logger.info(
                "Dry run delivery",
                extra={
                    "tag": release.tag_name,
                    "action": action.value,
                    "text": render.payload.content[:200],
                },
            )
            return DeliveryResult(success=True, sink_name="dry_run", message_id=fake_id)

        try:
            if action is DeliveryAction.CREATE or message_id is None:
                return await self._sink.create_message(render.payload)
            return await self._sink.update_message(message_id, render.payload)
        except Exception as e:
            logger.error(
                "Sink send error",
                extra={"sink": self._sink.name, "error": str(e)},
            )
            return DeliveryResult(success=False, sink_name=self._sink.name, error=str(e))

    async def run_forever(self, interval_s: float | None = None) -> None:
        """Run cycles every interval_s seconds until stop() is called."""
        interval = interval_s if interval_s is not None else self._config.poll_interval_s
        logger.info(
            "Watching releases",
            extra={"repo": self._config.github.full_name, "interval_s": interval},
        )
        while not self._stop_event.is_set():
            try:
                await self.check_once()
            except Exception as e:
                logger.exception("Unexpected cycle error", extra={"error": str(e)})
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except TimeoutError:
                pass

    def stop(self) -> None:
        """Ask run_forever() to return after the current cycle."""
        self._stop_event.set()

    async def close(self) -> None:
        """Stop the loop and release source, sink and renderer resources."""
        self.stop()
        closers = (
            ("source", self._source.close),
            ("sink", self._sink.close),
            ("renderer", self._renderer.close),
        )
        for name, closer in closers:
            try:
                await closer()
            except Exception as e:
                logger.error("Error closing component", extra={"component": name, "error": str(e)})
