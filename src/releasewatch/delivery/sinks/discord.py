"""
Discord sinks.

Two ways to reach a channel:
- Webhook: POST <webhook>?wait=true, PATCH <webhook>/messages/<id>
- Bot: POST /channels/<id>/messages, PATCH /channels/<id>/messages/<mid>

Both return the message object, whose id is what the ledger tracks.
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Literal

import aiohttp

from releasewatch.delivery.sinks.base import DeliveryResult, MessageSink

if TYPE_CHECKING:
    from releasewatch.config import DiscordConfig
    from releasewatch.contracts import MessagePayload

logger = logging.getLogger(__name__)

# Cap on how long a single rate-limited call waits before retrying
MAX_RATE_LIMIT_SLEEP_S = 5.0


class _DiscordSink(MessageSink):
    """Shared HTTP plumbing and retry loop for Discord sinks."""

    def __init__(self, config: DiscordConfig) -> None:
        self._config = config
        self._session: aiohttp.ClientSession | None = None

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    @abstractmethod
    def _create_url(self) -> str: ...

    @abstractmethod
    def _update_url(self, message_id: str) -> str: ...

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def create_message(self, payload: MessagePayload) -> DeliveryResult:
        return await self._send("POST", self._create_url(), payload)

    async def update_message(self, message_id: str, payload: MessagePayload) -> DeliveryResult:
        return await self._send("PATCH", self._update_url(message_id), payload)

    async def _send(self, method: str, url: str, payload: MessagePayload) -> DeliveryResult:
        body = payload.to_dict()
        headers = self._headers()

        for attempt in range(self._config.max_retries + 1):
            try:
                session = await self._get_session()
                async with session.request(method, url, json=body, headers=headers) as resp:
                    status = resp.status

                    if 200 <= status < 300:
                        data: dict[str, Any] = await resp.json()
                        message_id = data.get("id")
                        if not message_id:
                            return DeliveryResult(
                                success=False,
                                sink_name=self.name,
                                error="Response carried no message id",
                                status_code=status,
                            )
                        return DeliveryResult(
                            success=True,
                            sink_name=self.name,
                            message_id=str(message_id),
                            status_code=status,
                        )

                    # Rate limited
                    if status == 429:
                        retry_after_s = await self._retry_after(resp)
                        logger.warning(
                            "Discord rate limited",
                            extra={"retry_after": retry_after_s, "attempt": attempt},
                        )
                        if attempt < self._config.max_retries:
                            await asyncio.sleep(min(retry_after_s, MAX_RATE_LIMIT_SLEEP_S))
                            continue
                        return DeliveryResult(
                            success=False,
                            sink_name=self.name,
                            error=f"Rate limited (retry_after={retry_after_s})",
                            status_code=status,
                            retry_after_s=retry_after_s,
                        )

                    error_text = await resp.text()
                    logger.error(
                        "Discord request failed",
                        extra={
                            "method": method,
                            "status": status,
                            "error": error_text[:500],
                            "attempt": attempt,
                        },
                    )
                    # 4xx other than 429 won't succeed on retry
                    if status >= 500 and attempt < self._config.max_retries:
                        await asyncio.sleep(1)
                        continue
                    return DeliveryResult(
                        success=False,
                        sink_name=self.name,
                        error=f"HTTP {status}: {error_text[:200]}",
                        status_code=status,
                    )

            except (aiohttp.ClientError, TimeoutError) as e:
                logger.error(
                    "Discord connection error",
                    extra={"method": method, "error": str(e), "attempt": attempt},
                )
                if attempt < self._config.max_retries:
                    await asyncio.sleep(1)
                    continue
                return DeliveryResult(
                    success=False,
                    sink_name=self.name,
                    error=f"Connection error: {e}",
                )

        return DeliveryResult(
            success=False,
            sink_name=self.name,
            error="Max retries exceeded",
        )

    @staticmethod
    async def _retry_after(resp: aiohttp.ClientResponse) -> float:
        """Seconds to wait, from the JSON body or the Retry-After header."""
        try:
            data = await resp.json()
            return float(data.get("retry_after", 1.0))
        except (aiohttp.ContentTypeError, ValueError, TypeError, AttributeError):
            pass
        try:
            return float(resp.headers.get("Retry-After", "1"))
        except ValueError:
            return 1.0

    async def close(self) -> None:
        """Close aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class DiscordWebhookSink(_DiscordSink):
    """Delivers through an incoming webhook."""

    @property
    def name(self) -> str:
        # Don't expose the webhook token in the name
        return "discord:webhook"

    @property
    def sink_type(self) -> Literal["discord_webhook", "discord_channel"]:
        return "discord_webhook"

    def _create_url(self) -> str:
        # wait=true makes Discord return the created message (and its id)
        return f"{self._config.webhook_url}?wait=true&with_components=true"

    def _update_url(self, message_id: str) -> str:
        return f"{self._config.webhook_url}/messages/{message_id}?with_components=true"


class DiscordChannelSink(_DiscordSink):
    """Delivers as a bot user into a channel."""

    @property
    def name(self) -> str:
        return f"discord:channel:{self._config.channel_id}"

    @property
    def sink_type(self) -> Literal["discord_webhook", "discord_channel"]:
        return "discord_channel"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bot {self._config.bot_token}"
        return headers

    def _create_url(self) -> str:
        return f"{self._config.api_base_url}/channels/{self._config.channel_id}/messages"

    def _update_url(self, message_id: str) -> str:
        return f"{self._create_url()}/{message_id}"


def build_sink(config: DiscordConfig) -> MessageSink:
    """Webhook sink if a webhook URL is configured, channel sink otherwise."""
    if config.uses_webhook:
        logger.info("Discord webhook sink enabled")
        return DiscordWebhookSink(config)
    logger.info("Discord channel sink enabled", extra={"channel_id": config.channel_id})
    return DiscordChannelSink(config)
