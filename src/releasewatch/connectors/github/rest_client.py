"""
REST client for the GitHub releases API.

Pull-based: the watcher lists the newest page of releases on every cycle.
Unauthenticated access works but is limited to 60 requests per hour, so a
token is recommended for short poll intervals.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aiohttp
from pydantic import ValidationError

from releasewatch.connectors.backoff import (
    BackoffConfig,
    BackoffState,
    RateLimitError,
    compute_backoff_delay,
    handle_error_response,
)
from releasewatch.contracts import Release

if TYPE_CHECKING:
    from releasewatch.config import GitHubConfig

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"


class GitHubRestClient:
    """
    Async REST client for repository releases.

    Retries server errors and network failures with exponential backoff.
    Rate limits are raised immediately as RateLimitError; the caller skips
    the cycle instead of fighting the limiter.
    """

    def __init__(
        self,
        config: GitHubConfig,
        backoff_config: BackoffConfig | None = None,
    ) -> None:
        self._config = config
        self._backoff_config = backoff_config or BackoffConfig()
        self._backoff_state = BackoffState()
        self._session: aiohttp.ClientSession | None = None

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": "releasewatch",
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=self._headers())
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
    ) -> Any:
        """
        Make an HTTP request with retry logic.

        Returns:
            Decoded JSON response.

        Raises:
            RateLimitError: If the API reports a rate limit.
            aiohttp.ClientResponseError: On non-retryable 4xx responses.
            aiohttp.ClientError | TimeoutError: When retries are exhausted.
        """
        url = f"{self._config.base_url}{path}"
        self._backoff_state.reset()

        while True:
            delay_ms = compute_backoff_delay(self._backoff_config, self._backoff_state)
            if delay_ms > 0:
                logger.debug(
                    "Backing off before request",
                    extra={"delay_ms": delay_ms, "attempt": self._backoff_state.attempt},
                )
                await asyncio.sleep(delay_ms / 1000)

            try:
                session = await self._get_session()
                async with session.request(method, url, params=params) as response:
                    if response.status < 400:
                        try:
                            data = await response.json(content_type=None)
                        except ValueError as e:
                            # Proxy error pages and truncated bodies
                            raise aiohttp.ClientPayloadError(f"Invalid JSON body: {e}") from e
                        self._backoff_state.reset()
                        return data

                    rate_limit_error = handle_error_response(response.status, response.headers)
                    if rate_limit_error is not None:
                        logger.warning(
                            "GitHub rate limit hit",
                            extra={
                                "status": response.status,
                                "kind": rate_limit_error.kind.value,
                                "retry_after_ms": rate_limit_error.retry_after_ms,
                            },
                        )
                        raise rate_limit_error

                    text = await response.text()
                    logger.error(
                        "GitHub HTTP error",
                        extra={"status": response.status, "path": path, "error": text[:500]},
                    )
                    error = aiohttp.ClientResponseError(
                        response.request_info,
                        response.history,
                        status=response.status,
                        message=text[:200],
                    )
                    if response.status < 500:
                        # Client error, don't retry
                        raise error

            except RateLimitError:
                raise
            except aiohttp.ClientResponseError as e:
                if e.status < 500:
                    raise
                error = e
            except (aiohttp.ClientError, TimeoutError) as e:
                logger.warning(
                    "GitHub request failed",
                    extra={"error": str(e), "attempt": self._backoff_state.attempt},
                )
                error = e

            self._backoff_state.record_error()
            if self._backoff_state.attempt > self._backoff_config.max_retries:
                raise error

    async def list_releases(
        self,
        owner: str,
        repo: str,
        page: int = 1,
        per_page: int | None = None,
    ) -> list[Release]:
        """
        List one page of releases, most recent first.

        Releases that fail to parse are logged and skipped.
        """
        per_page = per_page or self._config.page_size
        data = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/releases",
            params={"page": str(page), "per_page": str(per_page)},
        )
        if not isinstance(data, list):
            logger.warning("Unexpected response type from releases endpoint")
            return []

        releases: list[Release] = []
        for raw in data:
            if not isinstance(raw, dict):
                continue
            # Drafts are only visible with push access and are not published yet
            if raw.get("draft"):
                continue
            try:
                releases.append(Release.from_github(raw))
            except (KeyError, ValidationError) as e:
                logger.warning(
                    "Failed to parse release",
                    extra={"tag": raw.get("tag_name"), "error": str(e)},
                )

        logger.debug("Fetched releases", extra={"count": len(releases), "page": page})
        return releases

    async def get_release_by_tag(self, owner: str, repo: str, tag: str) -> Release:
        """Fetch a single release by its tag."""
        data = await self._request("GET", f"/repos/{owner}/{repo}/releases/tags/{tag}")
        return Release.from_github(data)
