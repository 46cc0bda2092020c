"""
Message sinks.

Transports that create and edit release notification messages.
"""

from __future__ import annotations

from releasewatch.delivery.sinks.base import DeliveryResult, MessageSink
from releasewatch.delivery.sinks.discord import (
    DiscordChannelSink,
    DiscordWebhookSink,
    build_sink,
)

__all__ = [
    "DeliveryResult",
    "DiscordChannelSink",
    "DiscordWebhookSink",
    "MessageSink",
    "build_sink",
]
