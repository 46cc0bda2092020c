"""
Chat message contract.

Mirrors the subset of the Discord message schema used for release
notifications: a content line, one embed, and an optional row of link
buttons. Serialization is deterministic so two renders of the same release
compare byte-for-byte.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

import orjson
from pydantic import BaseModel, ConfigDict, Field

# Discord message limits
CONTENT_MAX_LENGTH = 2000
TITLE_MAX_LENGTH = 256
DESCRIPTION_MAX_LENGTH = 4096
FOOTER_MAX_LENGTH = 2048
EMBED_TOTAL_MAX_LENGTH = 6000
BUTTON_LABEL_MAX_LENGTH = 80


class EmbedFooter(BaseModel):
    """Embed footer line."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    text: str = Field(..., max_length=FOOTER_MAX_LENGTH)
    icon_url: str | None = None


class EmbedImage(BaseModel):
    """Embed image reference."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = Field(..., min_length=1)


class Embed(BaseModel):
    """Rich embed element."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str = Field(..., max_length=TITLE_MAX_LENGTH)
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)
    url: str | None = None
    color: int = Field(default=0, ge=0, le=0xFFFFFF)
    timestamp: datetime | None = None
    footer: EmbedFooter | None = None
    image: EmbedImage | None = None

    def text_length(self) -> int:
        """Characters counted towards the embed total limit."""
        total = len(self.title) + len(self.description)
        if self.footer is not None:
            total += len(self.footer.text)
        return total


class LinkButton(BaseModel):
    """Non-interactive link button (component type 2, style 5)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal[2] = 2
    style: Literal[5] = 5
    label: str = Field(..., min_length=1, max_length=BUTTON_LABEL_MAX_LENGTH)
    url: str = Field(..., min_length=1)


class ActionRow(BaseModel):
    """Row of action elements (component type 1)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal[1] = 1
    components: list[LinkButton] = Field(default_factory=list, max_length=5)


class MessagePayload(BaseModel):
    """Complete create/update request body."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    content: str = Field(default="", max_length=CONTENT_MAX_LENGTH)
    embeds: list[Embed] = Field(default_factory=list, max_length=1)
    components: list[ActionRow] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Request body as sent to the transport (None fields dropped)."""
        return self.model_dump(mode="json", exclude_none=True)

    def serialize(self) -> bytes:
        """Deterministic serialization used for change detection."""
        return orjson.dumps(self.to_dict(), option=orjson.OPT_SORT_KEYS)
