"""
Base message sink.

Abstract transport that can create a message and later edit it in place.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from releasewatch.contracts import MessagePayload


@dataclass
class DeliveryResult:
    """Result of a create/update attempt."""

    success: bool
    sink_name: str
    message_id: str | None = None
    error: str | None = None
    status_code: int | None = None
    retry_after_s: float | None = None  # For rate limit responses


class MessageSink(ABC):
    """Abstract base class for message transports."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this sink (no secrets)."""
        ...

    @property
    @abstractmethod
    def sink_type(self) -> Literal["discord_webhook", "discord_channel"]:
        ...

    @abstractmethod
    async def create_message(self, payload: MessagePayload) -> DeliveryResult:
        """
        Post a new message.

        Returns:
            DeliveryResult carrying the new message id on success.
        """
        ...

    @abstractmethod
    async def update_message(self, message_id: str, payload: MessagePayload) -> DeliveryResult:
        """
        Replace the content of a previously posted message.

        Returns:
            DeliveryResult carrying the (unchanged) message id on success.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any resources held by this sink."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
