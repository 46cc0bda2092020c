"""
Data contracts for releasewatch.

Release is the read-only input from the listing API; MessagePayload is the
rendered chat message handed to the transport.
"""

from __future__ import annotations

from releasewatch.contracts.message import (
    ActionRow,
    Embed,
    EmbedFooter,
    EmbedImage,
    LinkButton,
    MessagePayload,
)
from releasewatch.contracts.release import Release

__all__ = [
    "ActionRow",
    "Embed",
    "EmbedFooter",
    "EmbedImage",
    "LinkButton",
    "MessagePayload",
    "Release",
]
