"""
Release contract.

Canonical, read-only view of an upstream repository release. A fresh value is
built from the listing API on every poll; an upstream edit shows up as a new
value with the same identity.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Release(BaseModel):
    """
    Repository release as seen by the poller.

    Attributes:
        tag_name: Release tag; the stable identity of the release.
        name: Display name (falls back to tag_name when empty).
        published_at: Publish time, None if the API did not report one.
        html_url: Canonical release page.
        body: Markdown release notes, possibly empty.
        prerelease: Whether the release is flagged as a prerelease.
        author_login: Publishing user login.
        author_avatar_url: Publishing user avatar.
        contributor_count: Number of users mentioned in the notes, if known.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tag_name: str = Field(..., min_length=1, description="Release tag (identity)")
    name: str = Field(default="", description="Display name")
    published_at: datetime | None = Field(default=None, description="Publish timestamp")
    html_url: str = Field(default="", description="Release page URL")
    body: str = Field(default="", description="Markdown release notes")
    prerelease: bool = Field(default=False, description="Prerelease flag")
    author_login: str | None = Field(default=None, description="Author login")
    author_avatar_url: str | None = Field(default=None, description="Author avatar URL")
    contributor_count: int | None = Field(default=None, ge=0, description="Mentioned users")

    @field_validator("body", mode="before")
    @classmethod
    def validate_body(cls, v: Any) -> str:
        """Null bodies become empty strings."""
        return v if isinstance(v, str) else ""

    @field_validator("published_at")
    @classmethod
    def validate_published_at(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps are taken as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def identity(self) -> str:
        """Stable identity used for ledger lookups."""
        return self.tag_name

    @classmethod
    def from_github(cls, raw: dict[str, Any]) -> Release:
        """
        Build a Release from a GitHub REST release object.

        Raises:
            KeyError: If the object has no tag_name.
            pydantic.ValidationError: If a field has an unusable type.
        """
        author = raw.get("author") or {}
        return cls(
            tag_name=raw["tag_name"],
            name=raw.get("name") or "",
            published_at=raw.get("published_at"),
            html_url=raw.get("html_url") or "",
            body=raw.get("body"),
            prerelease=bool(raw.get("prerelease", False)),
            author_login=author.get("login"),
            author_avatar_url=author.get("avatar_url"),
            contributor_count=raw.get("mentions_count"),
        )

    def to_json(self) -> bytes:
        """Serialize to JSON bytes using orjson."""
        return orjson.dumps(self.model_dump(mode="json"))

    @classmethod
    def from_json(cls, data: bytes | str) -> Release:
        """Deserialize from JSON."""
        if isinstance(data, str):
            data = data.encode()
        return cls.model_validate(orjson.loads(data))
