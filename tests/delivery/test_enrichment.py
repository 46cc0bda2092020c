"""
Tests for announcement enrichment.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from releasewatch.config import RenderConfig
from releasewatch.contracts import Release
from releasewatch.delivery.enrichment import (
    Announcement,
    AnnouncementFetcher,
    announcement_url_for,
    extract_announcement,
    extract_meta,
    parse_version,
)

PAGE = """
<html><head>
<meta property="og:title" content="Widget 13.5">
<meta property="og:image" content="https://blog.example/13-5/cover.png" />
<meta name="description" content="Plain description">
<meta content="Faster builds &amp; smaller bundles" property="og:description">
</head><body>...</body></html>
"""


@pytest.fixture
def config() -> RenderConfig:
    return RenderConfig(
        announcement_project="acme/widget",
        announcement_url_template="https://blog.example/{major}-{minor}",
    )


class TestParseVersion:
    @pytest.mark.parametrize(
        ("tag", "expected"),
        [
            ("v13.5.0", (13, 5, 0)),
            ("1.2.3", (1, 2, 3)),
            ("v2.0.0-rc.1", (2, 0, 0)),
            ("release-2024", None),
            ("v1.2", None),
        ],
    )
    def test_parse(self, tag: str, expected: tuple[int, int, int] | None) -> None:
        assert parse_version(tag) == expected


class TestAnnouncementUrl:
    def test_patch_zero_stable(self, config: RenderConfig) -> None:
        release = Release(tag_name="v13.5.0")
        assert announcement_url_for(release, config, "acme/widget") == "https://blog.example/13-5"

    def test_project_match_is_case_insensitive(self, config: RenderConfig) -> None:
        release = Release(tag_name="v13.5.0")
        assert announcement_url_for(release, config, "Acme/Widget") is not None

    def test_patch_release_skipped(self, config: RenderConfig) -> None:
        assert announcement_url_for(Release(tag_name="v13.5.1"), config, "acme/widget") is None

    def test_prerelease_skipped(self, config: RenderConfig) -> None:
        release = Release(tag_name="v14.0.0", prerelease=True)
        assert announcement_url_for(release, config, "acme/widget") is None

    def test_other_project_skipped(self, config: RenderConfig) -> None:
        assert announcement_url_for(Release(tag_name="v13.5.0"), config, "acme/other") is None

    def test_disabled(self) -> None:
        release = Release(tag_name="v13.5.0")
        assert announcement_url_for(release, RenderConfig(), "acme/widget") is None

    def test_bad_template(self) -> None:
        config = RenderConfig(
            announcement_project="acme/widget",
            announcement_url_template="https://blog.example/{release}",
        )
        assert announcement_url_for(Release(tag_name="v13.5.0"), config, "acme/widget") is None


class TestExtract:
    def test_meta_map(self) -> None:
        meta = extract_meta(PAGE)
        assert meta["og:title"] == "Widget 13.5"
        assert meta["og:description"] == "Faster builds & smaller bundles"

    def test_og_wins_over_plain_description(self) -> None:
        announcement = extract_announcement(PAGE, "https://blog.example/13-5")

        assert announcement.description == "Faster builds & smaller bundles"
        assert announcement.image_url == "https://blog.example/13-5/cover.png"
        assert announcement.has_content

    def test_unquoted_attributes(self) -> None:
        page = "<meta property=og:image content=https://x.example/a.png>"
        assert extract_announcement(page, "u").image_url == "https://x.example/a.png"

    def test_meta_keys_case_insensitive(self) -> None:
        page = '<meta property="OG:Description" content=" Big release ">'
        assert extract_meta(page) == {"og:description": "Big release"}

    def test_relative_image_dropped(self) -> None:
        page = '<meta property="og:image" content="/cover.png">'
        assert extract_announcement(page, "u").image_url is None

    def test_no_metadata(self) -> None:
        announcement = extract_announcement("<html></html>", "u")
        assert announcement == Announcement(url="u")
        assert not announcement.has_content


def mock_session_with(response: AsyncMock) -> AsyncMock:
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    session = AsyncMock()
    session.get = MagicMock(return_value=response)
    session.closed = False
    return session


async def page_handler(request: web.Request) -> web.Response:
    return web.Response(text=PAGE, content_type="text/html")


async def slow_head_handler(request: web.Request) -> web.StreamResponse:
    """Sends a padded head, pauses, then the meta tags in a later chunk."""
    response = web.StreamResponse()
    response.content_type = "text/html"
    await response.prepare(request)
    await response.write(b"<html><head><!--" + b"x" * 2048 + b"-->")
    await asyncio.sleep(0.2)
    await response.write(
        b'<meta property="og:description" content="Later chunk">'
        b'<meta property="og:image" content="https://blog.example/late.png">'
        b"</head></html>"
    )
    await response.write_eof()
    return response


def blog_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/13-5", page_handler)
    app.router.add_get("/slow", slow_head_handler)
    return app


class TestAnnouncementFetcher:
    @pytest.mark.asyncio
    async def test_fetch_success(self) -> None:
        async with TestServer(blog_app()) as server:
            url = str(server.make_url("/13-5"))
            fetcher = AnnouncementFetcher()

            announcement = await fetcher.fetch(url)

            assert announcement is not None
            assert announcement.url == url
            assert announcement.description == "Faster builds & smaller bundles"
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_meta_in_later_chunk(self) -> None:
        async with TestServer(blog_app()) as server:
            fetcher = AnnouncementFetcher()

            announcement = await fetcher.fetch(str(server.make_url("/slow")))

            assert announcement is not None
            assert announcement.description == "Later chunk"
            assert announcement.image_url == "https://blog.example/late.png"
            await fetcher.close()

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        response = AsyncMock()
        response.status = 404

        fetcher = AnnouncementFetcher()
        fetcher._session = mock_session_with(response)

        assert await fetcher.fetch("https://blog.example/13-5") is None
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        session = AsyncMock()
        session.get = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        session.closed = False

        fetcher = AnnouncementFetcher()
        fetcher._session = session

        assert await fetcher.fetch("https://blog.example/13-5") is None
        await fetcher.close()

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        session = AsyncMock()
        session.get = MagicMock(side_effect=TimeoutError())
        session.closed = False

        fetcher = AnnouncementFetcher()
        fetcher._session = session

        assert await fetcher.fetch("https://blog.example/13-5") is None
        await fetcher.close()
