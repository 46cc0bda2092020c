"""
Announcement enrichment.

Minor and major releases of the configured project usually come with a blog
post. When one is published, its summary and preview image are shown in
place of the raw changelog intro. The lookup is best-effort: any failure
falls back to the plain changelog render.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import aiohttp
from bs4 import BeautifulSoup, Tag

if TYPE_CHECKING:
    from releasewatch.config import RenderConfig
    from releasewatch.contracts import Release

logger = logging.getLogger(__name__)

_VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:[-+].*)?$")

IMAGE_META_KEYS = ("og:image", "twitter:image")
DESCRIPTION_META_KEYS = ("og:description", "description", "twitter:description")

# Only the head of the page is needed for meta tags
MAX_PAGE_BYTES = 512 * 1024
_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True)
class Announcement:
    """Metadata pulled from an announcement page."""

    url: str
    description: str | None = None
    image_url: str | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.description or self.image_url)


def parse_version(tag: str) -> tuple[int, int, int] | None:
    """v13.5.0 -> (13, 5, 0); None for tags that are not semver."""
    match = _VERSION_PATTERN.match(tag.strip())
    if match is None:
        return None
    major, minor, patch = match.groups()
    return int(major), int(minor), int(patch)


def announcement_url_for(
    release: Release,
    config: RenderConfig,
    project: str,
) -> str | None:
    """
    Announcement page URL for a release, or None if it should not be enriched.

    Only stable patch-zero releases of the configured project qualify.
    """
    if not config.enrichment_enabled:
        return None
    if project.lower() != config.announcement_project.lower():
        return None
    if release.prerelease:
        return None
    version = parse_version(release.tag_name)
    if version is None or version[2] != 0:
        return None

    major, minor, patch = version
    try:
        return config.announcement_url_template.format(major=major, minor=minor, patch=patch)
    except (KeyError, IndexError, ValueError):
        logger.warning(
            "Invalid announcement URL template",
            extra={"tag": release.tag_name},
        )
        return None


def extract_meta(page: str) -> dict[str, str]:
    """Map of meta property/name -> content for every meta tag on the page."""
    soup = BeautifulSoup(page, "lxml")
    meta: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        if not isinstance(tag, Tag):
            continue
        key = tag.get("property") or tag.get("name")
        content = tag.get("content")
        if not isinstance(key, str) or not isinstance(content, str):
            continue
        key = key.strip().lower()
        if key and content.strip() and key not in meta:
            meta[key] = content.strip()
    return meta


def extract_announcement(page: str, url: str) -> Announcement:
    """Pull the preview image and summary out of an announcement page."""
    meta = extract_meta(page)
    image_url = next((meta[k] for k in IMAGE_META_KEYS if meta.get(k)), None)
    description = next((meta[k] for k in DESCRIPTION_META_KEYS if meta.get(k)), None)
    if image_url is not None and not image_url.startswith(("http://", "https://")):
        image_url = None
    return Announcement(url=url, description=description, image_url=image_url)


class AnnouncementFetcher:
    """Best-effort announcement page fetcher."""

    def __init__(self, timeout_s: float = 5.0) -> None:
        self._timeout_s = timeout_s
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def fetch(self, url: str) -> Announcement | None:
        """
        Fetch and parse an announcement page.

        Returns:
            Announcement, or None if the page could not be fetched.
        """
        try:
            session = await self._get_session()
            async with session.get(url) as resp:
                if resp.status != 200:
                    logger.info(
                        "Announcement page unavailable",
                        extra={"status": resp.status, "url": url},
                    )
                    return None
                raw = bytearray()
                async for chunk in resp.content.iter_chunked(_CHUNK_BYTES):
                    raw.extend(chunk)
                    if len(raw) >= MAX_PAGE_BYTES:
                        break
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning(
                "Announcement fetch failed",
                extra={"error": str(e), "url": url},
            )
            return None

        return extract_announcement(raw.decode("utf-8", errors="replace"), url)

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
