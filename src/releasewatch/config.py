"""
Watcher configuration.

Process configuration for the release source, the Discord destination,
rendering, and the poll loop. Values are validated at construction time so
that a broken deployment fails before the loop starts.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

# Env vars that must never be logged
REDACTED_ENV_VARS = frozenset({
    "GITHUB_TOKEN",
    "DISCORD_TOKEN",
    "DISCORD_WEBHOOK",
})

_SNOWFLAKE_PATTERN = re.compile(r"^\d{1,20}$")
_PROJECT_PATTERN = re.compile(r"^[\w.-]+/[\w.-]+$")


class RenderStyle(str, Enum):
    """Renderer variant selected per deployment."""

    EMBED = "embed"  # plain truncation
    RICH = "rich"  # credits-preserving fallback, link button, announcement image


@dataclass
class GitHubConfig:
    """Release source configuration."""

    owner: str = ""
    repo: str = ""
    token: str = ""  # From GITHUB_TOKEN env var, optional
    page_size: int = 10
    timeout_s: float = 10.0
    base_url: str = "https://api.github.com"

    def __post_init__(self) -> None:
        if not self.owner:
            raise ValueError("REPO_OWNER required")
        if not self.repo:
            raise ValueError("REPO_NAME required")
        if not 1 <= self.page_size <= 100:
            raise ValueError(f"page_size must be 1..100, got {self.page_size}")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")
        self.base_url = self.base_url.rstrip("/")

    @property
    def repo_url(self) -> str:
        """Public web URL of the watched repository."""
        return f"https://github.com/{self.owner}/{self.repo}"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass
class DiscordConfig:
    """
    Destination configuration.

    Either a webhook URL, or a channel id plus bot token. The webhook wins
    when both are set.
    """

    webhook_url: str = ""
    channel_id: str = ""
    bot_token: str = ""
    release_role_id: str = ""
    prerelease_role_id: str = ""
    timeout_s: float = 10.0
    max_retries: int = 2
    api_base_url: str = "https://discord.com/api/v10"

    def __post_init__(self) -> None:
        if not self.webhook_url and not (self.channel_id and self.bot_token):
            raise ValueError(
                "DISCORD_WEBHOOK or both RELEASE_CHANNEL_ID and DISCORD_TOKEN required"
            )
        if self.channel_id and not _SNOWFLAKE_PATTERN.match(self.channel_id):
            raise ValueError(f"Invalid channel id: {self.channel_id!r}")
        for label, role_id in (
            ("release_role_id", self.release_role_id),
            ("prerelease_role_id", self.prerelease_role_id),
        ):
            if role_id and not _SNOWFLAKE_PATTERN.match(role_id):
                raise ValueError(f"Invalid {label}: {role_id!r}")
        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        self.webhook_url = self.webhook_url.rstrip("/")
        self.api_base_url = self.api_base_url.rstrip("/")

    @property
    def uses_webhook(self) -> bool:
        return bool(self.webhook_url)


@dataclass
class RenderConfig:
    """Rendering configuration."""

    style: RenderStyle = RenderStyle.EMBED
    credits_marker: str = "Huge thanks to"

    # Announcement enrichment: only for this owner/repo, empty disables it
    announcement_project: str = ""
    # Filled with {major} and {minor} of a patch-zero stable release
    announcement_url_template: str = ""
    enrichment_timeout_s: float = 5.0

    def __post_init__(self) -> None:
        if isinstance(self.style, str):
            try:
                self.style = RenderStyle(self.style.lower())
            except ValueError:
                raise ValueError(f"Invalid render style: {self.style!r}") from None
        if not self.credits_marker:
            raise ValueError("credits_marker must not be empty")
        if self.announcement_project:
            if not _PROJECT_PATTERN.match(self.announcement_project):
                raise ValueError(
                    f"announcement_project must be owner/repo, got {self.announcement_project!r}"
                )
            if not self.announcement_url_template:
                raise ValueError(
                    "announcement_url_template required when announcement_project is set"
                )
        if self.enrichment_timeout_s <= 0:
            raise ValueError(
                f"enrichment_timeout_s must be > 0, got {self.enrichment_timeout_s}"
            )

    @property
    def enrichment_enabled(self) -> bool:
        return bool(self.announcement_project and self.announcement_url_template)


@dataclass
class WatcherConfig:
    """Top-level configuration for the poll-and-reconcile loop."""

    github: GitHubConfig
    discord: DiscordConfig
    render: RenderConfig = field(default_factory=RenderConfig)

    poll_interval_s: float = 60.0
    # 0 = no cap; newest eligible releases are deferred when capped
    max_items_per_cycle: int = 0

    # Tracked messages stay updatable for this long
    retention_s: float = 24 * 60 * 60
    # Entries still waiting for announcement enrichment are kept this long
    refresh_retention_s: float = 3 * 24 * 60 * 60

    metrics_port: int = 0  # 0 = disabled
    dry_run: bool = False
    # Process only the newest release, even if it predates startup
    dev_mode: bool = False

    def __post_init__(self) -> None:
        if self.poll_interval_s < 1:
            raise ValueError(f"poll_interval_s must be >= 1, got {self.poll_interval_s}")
        if self.max_items_per_cycle < 0:
            raise ValueError(
                f"max_items_per_cycle must be >= 0, got {self.max_items_per_cycle}"
            )
        if self.retention_s <= 0:
            raise ValueError(f"retention_s must be > 0, got {self.retention_s}")
        if self.refresh_retention_s < self.retention_s:
            raise ValueError(
                "refresh_retention_s must be >= retention_s, "
                f"got {self.refresh_retention_s} < {self.retention_s}"
            )
        if not 0 <= self.metrics_port <= 65535:
            raise ValueError(f"metrics_port must be 0..65535, got {self.metrics_port}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> WatcherConfig:
        """
        Build configuration from environment variables.

        Raises:
            ValueError: If a required identifier is missing or a value is invalid.
        """
        env = os.environ if environ is None else environ

        github = GitHubConfig(
            owner=env.get("REPO_OWNER", ""),
            repo=env.get("REPO_NAME", ""),
            token=env.get("GITHUB_TOKEN", ""),
            page_size=_int_env(env, "RELEASE_PAGE_SIZE", 10),
        )
        discord = DiscordConfig(
            webhook_url=env.get("DISCORD_WEBHOOK", ""),
            channel_id=env.get("RELEASE_CHANNEL_ID", ""),
            bot_token=env.get("DISCORD_TOKEN", ""),
            release_role_id=env.get("RELEASE_PING_ROLE_ID", ""),
            prerelease_role_id=env.get("PRERELEASE_PING_ROLE_ID", ""),
        )
        render = RenderConfig(
            style=env.get("RENDER_STYLE") or RenderStyle.EMBED,  # type: ignore[arg-type]
            credits_marker=env.get("CREDITS_MARKER", "Huge thanks to"),
            announcement_project=env.get("ANNOUNCEMENT_PROJECT", ""),
            announcement_url_template=env.get("ANNOUNCEMENT_URL_TEMPLATE", ""),
        )
        return cls(
            github=github,
            discord=discord,
            render=render,
            poll_interval_s=_float_env(env, "POLL_INTERVAL_S", 60.0),
            max_items_per_cycle=_int_env(env, "MAX_ITEMS_PER_CYCLE", 0),
            metrics_port=_int_env(env, "METRICS_PORT", 0),
            dry_run=_bool_env(env, "DRY_RUN"),
            dev_mode=_bool_env(env, "DEV_MODE"),
        )


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _bool_env(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in {"1", "true", "yes", "on"}
