"""
Config validation tests.

Tests __post_init__ validation and environment loading: required
identifiers, destination choice, snowflake ids, render style, and loop
bounds.
"""

from __future__ import annotations

import pytest

from releasewatch.config import (
    REDACTED_ENV_VARS,
    DiscordConfig,
    GitHubConfig,
    RenderConfig,
    RenderStyle,
    WatcherConfig,
)

WEBHOOK = "https://discord.com/api/webhooks/1/token"


def minimal_env(**overrides: str) -> dict[str, str]:
    env = {
        "REPO_OWNER": "acme",
        "REPO_NAME": "widget",
        "DISCORD_WEBHOOK": WEBHOOK,
    }
    env.update(overrides)
    return env


def make_watcher(**overrides: object) -> WatcherConfig:
    return WatcherConfig(
        github=GitHubConfig(owner="acme", repo="widget"),
        discord=DiscordConfig(webhook_url=WEBHOOK),
        **overrides,  # type: ignore[arg-type]
    )


class TestGitHubConfig:
    def test_valid(self) -> None:
        config = GitHubConfig(owner="acme", repo="widget")
        assert config.repo_url == "https://github.com/acme/widget"
        assert config.full_name == "acme/widget"
        assert config.page_size == 10

    def test_owner_required(self) -> None:
        with pytest.raises(ValueError, match="REPO_OWNER"):
            GitHubConfig(repo="widget")

    def test_repo_required(self) -> None:
        with pytest.raises(ValueError, match="REPO_NAME"):
            GitHubConfig(owner="acme")

    @pytest.mark.parametrize("page_size", [0, 101])
    def test_page_size_bounds(self, page_size: int) -> None:
        with pytest.raises(ValueError, match="page_size"):
            GitHubConfig(owner="acme", repo="widget", page_size=page_size)

    def test_base_url_trailing_slash(self) -> None:
        config = GitHubConfig(owner="a", repo="b", base_url="https://ghe.example/api/v3/")
        assert config.base_url == "https://ghe.example/api/v3"


class TestDiscordConfig:
    def test_webhook_only(self) -> None:
        config = DiscordConfig(webhook_url=WEBHOOK + "/")
        assert config.uses_webhook
        assert config.webhook_url == WEBHOOK

    def test_channel_and_token(self) -> None:
        config = DiscordConfig(channel_id="123456789012345678", bot_token="t")
        assert not config.uses_webhook

    def test_destination_required(self) -> None:
        with pytest.raises(ValueError, match="DISCORD_WEBHOOK"):
            DiscordConfig()

    def test_channel_without_token(self) -> None:
        with pytest.raises(ValueError):
            DiscordConfig(channel_id="123")

    def test_invalid_channel_id(self) -> None:
        with pytest.raises(ValueError, match="channel id"):
            DiscordConfig(channel_id="general", bot_token="t")

    def test_invalid_role_id(self) -> None:
        with pytest.raises(ValueError, match="release_role_id"):
            DiscordConfig(webhook_url=WEBHOOK, release_role_id="@everyone")

    def test_negative_retries(self) -> None:
        with pytest.raises(ValueError, match="max_retries"):
            DiscordConfig(webhook_url=WEBHOOK, max_retries=-1)


class TestRenderConfig:
    def test_defaults(self) -> None:
        config = RenderConfig()
        assert config.style is RenderStyle.EMBED
        assert config.credits_marker == "Huge thanks to"
        assert not config.enrichment_enabled

    def test_style_from_string(self) -> None:
        assert RenderConfig(style="RICH").style is RenderStyle.RICH  # type: ignore[arg-type]

    def test_invalid_style(self) -> None:
        with pytest.raises(ValueError, match="render style"):
            RenderConfig(style="fancy")  # type: ignore[arg-type]

    def test_project_format(self) -> None:
        with pytest.raises(ValueError, match="owner/repo"):
            RenderConfig(announcement_project="widget", announcement_url_template="x")

    def test_template_required_with_project(self) -> None:
        with pytest.raises(ValueError, match="announcement_url_template"):
            RenderConfig(announcement_project="acme/widget")

    def test_enrichment_enabled(self) -> None:
        config = RenderConfig(
            announcement_project="acme/widget",
            announcement_url_template="https://blog.example/{major}-{minor}",
        )
        assert config.enrichment_enabled


class TestWatcherConfig:
    def test_defaults(self) -> None:
        config = make_watcher()
        assert config.poll_interval_s == 60.0
        assert config.max_items_per_cycle == 0
        assert config.retention_s == 86400
        assert config.metrics_port == 0
        assert not config.dry_run

    def test_interval_too_low(self) -> None:
        with pytest.raises(ValueError, match="poll_interval_s"):
            make_watcher(poll_interval_s=0.5)

    def test_negative_cap(self) -> None:
        with pytest.raises(ValueError, match="max_items_per_cycle"):
            make_watcher(max_items_per_cycle=-1)

    def test_refresh_retention_below_retention(self) -> None:
        with pytest.raises(ValueError, match="refresh_retention_s"):
            make_watcher(retention_s=100, refresh_retention_s=50)

    @pytest.mark.parametrize("port", [-1, 70000])
    def test_metrics_port_range(self, port: int) -> None:
        with pytest.raises(ValueError, match="metrics_port"):
            make_watcher(metrics_port=port)


class TestFromEnv:
    def test_minimal(self) -> None:
        config = WatcherConfig.from_env(minimal_env())

        assert config.github.full_name == "acme/widget"
        assert config.discord.uses_webhook
        assert config.render.style is RenderStyle.EMBED

    def test_all_values(self) -> None:
        env = minimal_env(
            GITHUB_TOKEN="ghp_x",
            RELEASE_PING_ROLE_ID="111",
            PRERELEASE_PING_ROLE_ID="222",
            POLL_INTERVAL_S="30",
            MAX_ITEMS_PER_CYCLE="5",
            RENDER_STYLE="rich",
            CREDITS_MARKER="Thanks to",
            ANNOUNCEMENT_PROJECT="acme/widget",
            ANNOUNCEMENT_URL_TEMPLATE="https://blog.example/{major}-{minor}",
            METRICS_PORT="9100",
            DRY_RUN="true",
            DEV_MODE="1",
        )
        config = WatcherConfig.from_env(env)

        assert config.github.token == "ghp_x"
        assert config.discord.release_role_id == "111"
        assert config.discord.prerelease_role_id == "222"
        assert config.poll_interval_s == 30.0
        assert config.max_items_per_cycle == 5
        assert config.render.style is RenderStyle.RICH
        assert config.render.credits_marker == "Thanks to"
        assert config.render.enrichment_enabled
        assert config.metrics_port == 9100
        assert config.dry_run is True
        assert config.dev_mode is True

    def test_channel_destination(self) -> None:
        env = {
            "REPO_OWNER": "acme",
            "REPO_NAME": "widget",
            "RELEASE_CHANNEL_ID": "123456789012345678",
            "DISCORD_TOKEN": "bot-token",
        }
        config = WatcherConfig.from_env(env)
        assert config.discord.channel_id == "123456789012345678"
        assert not config.discord.uses_webhook

    def test_missing_owner(self) -> None:
        env = minimal_env()
        del env["REPO_OWNER"]
        with pytest.raises(ValueError, match="REPO_OWNER"):
            WatcherConfig.from_env(env)

    def test_missing_destination(self) -> None:
        env = minimal_env()
        del env["DISCORD_WEBHOOK"]
        with pytest.raises(ValueError, match="DISCORD_WEBHOOK"):
            WatcherConfig.from_env(env)

    def test_non_numeric_interval(self) -> None:
        with pytest.raises(ValueError, match="POLL_INTERVAL_S"):
            WatcherConfig.from_env(minimal_env(POLL_INTERVAL_S="soon"))

    def test_bool_false_values(self) -> None:
        config = WatcherConfig.from_env(minimal_env(DRY_RUN="no", DEV_MODE=""))
        assert config.dry_run is False
        assert config.dev_mode is False

    def test_secrets_listed_for_redaction(self) -> None:
        assert {"GITHUB_TOKEN", "DISCORD_TOKEN", "DISCORD_WEBHOOK"} <= REDACTED_ENV_VARS
