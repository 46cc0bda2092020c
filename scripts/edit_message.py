#!/usr/bin/env python3
"""
Re-render a release and patch an already posted message.

Useful after changing the render style or fixing a release note by hand:
the watcher only edits messages it posted itself during this process's
lifetime.

Usage:
    python -m scripts.edit_message --tag v1.2.0 --message-id 1234567890
    python -m scripts.edit_message --tag v1.2.0 --message-id 1234567890 --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import aiohttp

from releasewatch.config import WatcherConfig
from releasewatch.connectors.backoff import RateLimitError
from releasewatch.connectors.github import GitHubRestClient
from releasewatch.delivery.enrichment import AnnouncementFetcher
from releasewatch.delivery.formatter import ReleaseFormatter, ReleaseRenderer
from releasewatch.delivery.sinks import build_sink
from releasewatch.logging_config import get_logger, setup_logging

logger = get_logger("releasewatch.edit_message")


async def edit_message(
    config: WatcherConfig,
    tag: str,
    message_id: str,
    *,
    dry_run: bool = False,
) -> int:
    """
    Fetch release `tag`, render it, and PATCH message `message_id`.

    Returns:
        Exit code (0 = success).
    """
    source = GitHubRestClient(config.github)
    fetcher = None
    if config.render.enrichment_enabled:
        fetcher = AnnouncementFetcher(timeout_s=config.render.enrichment_timeout_s)
    renderer = ReleaseRenderer(
        ReleaseFormatter(
            config.github.repo_url,
            config.render,
            release_role_id=config.discord.release_role_id,
            prerelease_role_id=config.discord.prerelease_role_id,
        ),
        config.render,
        config.github.full_name,
        fetcher,
    )
    sink = build_sink(config.discord)

    try:
        try:
            release = await source.get_release_by_tag(
                config.github.owner, config.github.repo, tag
            )
        except (RateLimitError, aiohttp.ClientError, TimeoutError) as e:
            logger.error("Could not fetch release %s: %s", tag, e)
            return 1

        render = await renderer.render(release)
        if render.needs_retry:
            logger.warning("Announcement unavailable, sending changelog only")

        if dry_run:
            sys.stdout.write(render.serialized.decode() + "\n")
            return 0

        result = await sink.update_message(message_id, render.payload)
        if not result.success:
            logger.error(
                "Edit failed: %s (status=%s)", result.error, result.status_code
            )
            return 1

        logger.info("Edited message %s for %s", result.message_id, tag)
        return 0
    finally:
        await source.close()
        await renderer.close()
        await sink.close()


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Re-render a release and edit its Discord message.",
    )
    parser.add_argument("--tag", required=True, help="Release tag to render")
    parser.add_argument("--message-id", required=True, help="Discord message id to edit")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the rendered payload instead of sending it",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.verbose else "INFO", json_format=False)

    try:
        config = WatcherConfig.from_env()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    return asyncio.run(edit_message(config, args.tag, args.message_id, dry_run=args.dry_run))


if __name__ == "__main__":
    sys.exit(main())
