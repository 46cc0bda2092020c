#!/usr/bin/env python3
"""
Release watcher.

Polls the configured repository's releases and mirrors them into Discord:
GitHubRestClient -> ReleaseReconciler (ledger + renderer) -> Discord sink.

Configuration comes from the environment (REPO_OWNER, REPO_NAME,
DISCORD_WEBHOOK or RELEASE_CHANNEL_ID + DISCORD_TOKEN, ...); flags below
override the loop settings.

Usage:
    python -m scripts.run_watcher
    python -m scripts.run_watcher --once --dry-run
    python -m scripts.run_watcher --dev --verbose  # post the newest release now

Exit codes:
    0  clean shutdown
    1  unexpected failure
    2  invalid configuration
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import signal
import sys

from releasewatch.config import WatcherConfig
from releasewatch.connectors.exporter import MetricsExporter
from releasewatch.connectors.github import GitHubRestClient
from releasewatch.connectors.metrics_server import (
    cycle_health,
    start_metrics_server,
    stop_metrics_server,
)
from releasewatch.delivery.enrichment import AnnouncementFetcher
from releasewatch.delivery.formatter import ReleaseFormatter, ReleaseRenderer
from releasewatch.delivery.ledger import DeliveryLedger
from releasewatch.delivery.reconciler import ReleaseReconciler
from releasewatch.delivery.sinks import build_sink
from releasewatch.logging_config import get_logger, setup_logging

logger = get_logger("releasewatch.run_watcher")


def build_reconciler(
    config: WatcherConfig,
    exporter: MetricsExporter | None = None,
) -> ReleaseReconciler:
    """Wire source, renderer, ledger and sink for one process."""
    formatter = ReleaseFormatter(
        config.github.repo_url,
        config.render,
        release_role_id=config.discord.release_role_id,
        prerelease_role_id=config.discord.prerelease_role_id,
    )
    fetcher = None
    if config.render.enrichment_enabled:
        fetcher = AnnouncementFetcher(timeout_s=config.render.enrichment_timeout_s)
    renderer = ReleaseRenderer(formatter, config.render, config.github.full_name, fetcher)

    return ReleaseReconciler(
        config=config,
        source=GitHubRestClient(config.github),
        sink=build_sink(config.discord),
        renderer=renderer,
        ledger=DeliveryLedger(config.retention_s, config.refresh_retention_s),
        metrics=exporter,
    )


def setup_signal_handlers(reconciler: ReleaseReconciler) -> None:
    """Stop the loop after the current cycle on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()

    def handle(sig: signal.Signals) -> None:
        logger.info("Received signal %s, initiating shutdown", sig.name)
        reconciler.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle, sig)


async def run_watcher(config: WatcherConfig, *, once: bool = False) -> int:
    """
    Run the watcher until a signal arrives (or for one cycle with once=True).

    Returns:
        Exit code (0 = success).
    """
    exporter: MetricsExporter | None = None
    if config.metrics_port > 0:
        exporter = MetricsExporter()

    reconciler = build_reconciler(config, exporter)

    metrics_runner = None
    if exporter is not None:
        metrics_runner = await start_metrics_server(
            exporter.registry,
            port=config.metrics_port,
            health_fn=lambda: cycle_health(reconciler.last_report),
        )

    try:
        if once:
            report = await reconciler.check_once()
            return 0 if report is not None and report.ok else 1
        setup_signal_handlers(reconciler)
        await reconciler.run_forever(config.poll_interval_s)
        return 0
    except Exception as e:
        logger.exception("Watcher failed: %s", e)
        return 1
    finally:
        await reconciler.close()
        if metrics_runner is not None:
            await stop_metrics_server(metrics_runner)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Mirror GitHub releases into a Discord channel.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--interval-s",
        type=float,
        default=None,
        help="Seconds between polls (default: POLL_INTERVAL_S or 60)",
    )
    parser.add_argument(
        "--max-items",
        type=int,
        default=None,
        help="Max releases delivered per cycle, 0 = unlimited (default: MAX_ITEMS_PER_CYCLE or 0)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log messages instead of sending them",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Post the newest release even if it predates startup",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines",
    )

    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.verbose else "INFO", json_format=args.json_logs)

    try:
        config = WatcherConfig.from_env()
        overrides: dict[str, object] = {}
        if args.interval_s is not None:
            overrides["poll_interval_s"] = args.interval_s
        if args.max_items is not None:
            overrides["max_items_per_cycle"] = args.max_items
        if args.dry_run:
            overrides["dry_run"] = True
        if args.dev:
            overrides["dev_mode"] = True
        if overrides:
            config = dataclasses.replace(config, **overrides)  # type: ignore[arg-type]
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logger.info("Starting release watcher")
    logger.info("  Repository: %s", config.github.full_name)
    logger.info("  Destination: %s", "webhook" if config.discord.uses_webhook else "channel")
    logger.info("  Interval: %ss", config.poll_interval_s)
    logger.info("  Style: %s", config.render.style.value)
    logger.info("  Dry run: %s, dev mode: %s", config.dry_run, config.dev_mode)

    return asyncio.run(run_watcher(config, once=args.once))


if __name__ == "__main__":
    sys.exit(main())
