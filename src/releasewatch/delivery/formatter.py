"""
Release formatter.

Turns a Release into a Discord message payload: ping line, embed with the
rewritten release notes, and (rich style) a link button. Rendering is
deterministic: the same Release always yields the same serialized payload,
which is what change detection in the ledger relies on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING

from releasewatch.config import RenderConfig, RenderStyle
from releasewatch.contracts import (
    ActionRow,
    Embed,
    EmbedFooter,
    EmbedImage,
    LinkButton,
    MessagePayload,
)
from releasewatch.contracts.message import (
    CONTENT_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
    EMBED_TOTAL_MAX_LENGTH,
    FOOTER_MAX_LENGTH,
    TITLE_MAX_LENGTH,
)
from releasewatch.delivery.enrichment import announcement_url_for
from releasewatch.delivery.markdown import (
    BODY_PLACEHOLDER,
    count_contributors,
    split_credits,
    transform_body,
    truncate_markdown,
)

if TYPE_CHECKING:
    from releasewatch.contracts import Release
    from releasewatch.delivery.enrichment import Announcement, AnnouncementFetcher

logger = logging.getLogger(__name__)

STABLE_COLOUR = 0x0072F7
PRERELEASE_COLOUR = 0xFFB11A

STABLE_ICON = "\U0001f4e6"  # package
PRERELEASE_ICON = "\U0001f6a7"  # construction sign

# Embed footers don't support links, so the link goes at the end of the body
RELEASE_LINK = "\n\n**[View the release note on GitHub]({url})**"
ANNOUNCEMENT_LINK = "**[Read the announcement]({url})**"
TOO_LONG_NOTICE = "The release note is too long to display here, see the full changelog on GitHub."
BUTTON_LABEL = "View on GitHub"


@dataclass(frozen=True)
class RenderResult:
    """
    Rendered message plus enrichment status.

    needs_retry is set when the announcement lookup should have produced
    content but did not; the ledger keeps such entries around so a later
    cycle can replace the fallback body.
    """

    payload: MessagePayload
    needs_retry: bool = False

    @cached_property
    def serialized(self) -> bytes:
        return self.payload.serialize()


class ReleaseFormatter:
    """
    Deterministic formatter for Release objects.

    Never raises: missing fields degrade to placeholder text and an
    unexpected error falls back to a minimal payload.
    """

    def __init__(
        self,
        repo_url: str,
        config: RenderConfig | None = None,
        *,
        release_role_id: str = "",
        prerelease_role_id: str = "",
    ) -> None:
        self._repo_url = repo_url.rstrip("/")
        self._config = config or RenderConfig()
        self._release_role_id = release_role_id
        self._prerelease_role_id = prerelease_role_id

    @property
    def style(self) -> RenderStyle:
        return self._config.style

    def format(
        self,
        release: Release,
        announcement: Announcement | None = None,
        *,
        needs_retry: bool = False,
    ) -> RenderResult:
        """Format a Release into a message payload."""
        try:
            payload = self._build_payload(release, announcement)
        except Exception as e:
            logger.error(
                "Release render failed, using minimal payload",
                extra={"tag": release.tag_name, "error": str(e)},
            )
            payload = self._minimal_payload(release)
        return RenderResult(payload=payload, needs_retry=needs_retry)

    def message_content(self, release: Release) -> str:
        """Ping line: role mention if configured for this release class."""
        if release.prerelease:
            role_id, label = self._prerelease_role_id, "New prerelease"
        else:
            role_id, label = self._release_role_id, "New release"
        content = f"<@&{role_id}> {release.tag_name}" if role_id else f"{label}: {release.tag_name}"
        return content[:CONTENT_MAX_LENGTH]

    def embed_title(self, release: Release) -> str:
        icon = PRERELEASE_ICON if release.prerelease else STABLE_ICON
        return truncate_markdown(f"{icon} {release.tag_name}", TITLE_MAX_LENGTH)

    def embed_body(
        self,
        release: Release,
        announcement: Announcement | None = None,
        *,
        reserved: int = 0,
    ) -> str:
        """
        Rewritten release notes with the release link appended.

        Args:
            release: Release to render.
            announcement: Optional enrichment shown above the changelog.
            reserved: Characters already used by other embed text fields.
        """
        link = RELEASE_LINK.format(url=release.html_url) if release.html_url else ""
        budget = min(DESCRIPTION_MAX_LENGTH, EMBED_TOTAL_MAX_LENGTH - reserved) - len(link)

        markdown = transform_body(release.body, self._repo_url, self._config.credits_marker)
        if announcement is not None and announcement.description:
            intro = f"> {announcement.description}\n{ANNOUNCEMENT_LINK.format(url=announcement.url)}"
            markdown = f"{intro}\n{markdown}"

        return self._fit_body(markdown, budget, release) + link

    def _fit_body(self, markdown: str, budget: int, release: Release) -> str:
        if len(markdown) <= budget:
            return markdown
        if self._config.style is not RenderStyle.RICH:
            return truncate_markdown(markdown, budget)

        truncated = truncate_markdown(markdown, budget)
        notes, credits = split_credits(markdown, self._config.credits_marker)
        if credits is None:
            return truncated
        # Plain truncation is fine while at least one credited user survives the cut
        kept = truncated[len(notes):]
        if count_contributors(credits) == 0:
            if len(kept) > len(self._config.credits_marker):
                return truncated
        elif count_contributors(kept) > 0:
            return truncated

        with_credits = f"{TOO_LONG_NOTICE}\n{credits}"
        if len(with_credits) <= budget:
            return with_credits

        count = release.contributor_count
        if count is None:
            count = count_contributors(credits)
        noun = "contributor" if count == 1 else "contributors"
        summary = f"{TOO_LONG_NOTICE}\n{self._config.credits_marker} {count} {noun}!"
        return truncate_markdown(summary, budget)

    def _footer(self, release: Release) -> EmbedFooter | None:
        if not release.author_login:
            return None
        text = truncate_markdown(f"Released by @{release.author_login}", FOOTER_MAX_LENGTH)
        return EmbedFooter(text=text, icon_url=release.author_avatar_url or None)

    def _build_payload(
        self,
        release: Release,
        announcement: Announcement | None,
    ) -> MessagePayload:
        title = self.embed_title(release)
        footer = self._footer(release)
        reserved = len(title) + (len(footer.text) if footer is not None else 0)

        image = None
        if announcement is not None and announcement.image_url:
            image = EmbedImage(url=announcement.image_url)

        embed = Embed(
            title=title,
            description=self.embed_body(release, announcement, reserved=reserved),
            url=release.html_url or None,
            color=PRERELEASE_COLOUR if release.prerelease else STABLE_COLOUR,
            timestamp=release.published_at,
            footer=footer,
            image=image,
        )

        components: list[ActionRow] = []
        if self._config.style is RenderStyle.RICH and release.html_url:
            components.append(
                ActionRow(components=[LinkButton(label=BUTTON_LABEL, url=release.html_url)])
            )

        return MessagePayload(
            content=self.message_content(release),
            embeds=[embed],
            components=components,
        )

    def _minimal_payload(self, release: Release) -> MessagePayload:
        return MessagePayload(
            content=self.message_content(release),
            embeds=[
                Embed(
                    title=self.embed_title(release),
                    description=BODY_PLACEHOLDER,
                    color=PRERELEASE_COLOUR if release.prerelease else STABLE_COLOUR,
                )
            ],
        )


class ReleaseRenderer:
    """
    Release -> RenderResult, with the optional announcement lookup.

    The formatter stays pure; this wrapper owns the single I/O call.
    """

    def __init__(
        self,
        formatter: ReleaseFormatter,
        config: RenderConfig,
        project: str,
        fetcher: AnnouncementFetcher | None = None,
    ) -> None:
        self._formatter = formatter
        self._config = config
        self._project = project
        self._fetcher = fetcher

    async def render(self, release: Release) -> RenderResult:
        if self._fetcher is None:
            return self._formatter.format(release)
        url = announcement_url_for(release, self._config, self._project)
        if url is None:
            return self._formatter.format(release)

        announcement = await self._fetcher.fetch(url)
        if announcement is None or not announcement.has_content:
            logger.info(
                "Announcement not available, rendering changelog",
                extra={"tag": release.tag_name},
            )
            return self._formatter.format(release, needs_retry=True)

        return self._formatter.format(release, announcement)

    async def close(self) -> None:
        if self._fetcher is not None:
            await self._fetcher.close()
