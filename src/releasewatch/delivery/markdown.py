"""
Release-note markdown rewriting for chat embeds.

GitHub renders some release-note syntax (callouts, #123 references, @user
mentions, bare commit hashes) that Discord shows as plain text. The
rewrites run in a fixed order; each later pattern is written so that it
does not match text produced by an earlier one.
"""

from __future__ import annotations

import re

ELLIPSIS = "…"
BODY_PLACEHOLDER = "Release body not provided"

# Callout marker -> emoji; unknown markers are bolded without one
CALLOUT_EMOJIS = {
    "NOTE": "\u2139\ufe0f",  # information
    "TIP": "\U0001f4a1",  # light bulb
    "IMPORTANT": "\u2757",  # exclamation mark
    "WARNING": "\u26a0\ufe0f",  # warning
    "CAUTION": "\U0001f6d1",  # stop sign
}

_CALLOUT_PATTERN = re.compile(r"\[!([A-Za-z]+)\]")
_PR_REF_PATTERN = re.compile(r"(?<![\w/&\[])#(\d+)\b")
_MENTION_PATTERN = re.compile(r"(?<![\w/\[`])@([A-Za-z0-9](?:[A-Za-z0-9-]{0,38}))\b")
_COMMIT_PATTERN = re.compile(r"(?<![\w/])([a-f0-9]{40})(?!\w)")
_NEWLINES_PATTERN = re.compile(r"(?:\r\n|\r|\n)+")
_LINK_PATTERN = re.compile(r"!?\[[^\]\n]*\]\([^)\s]*\)")
_CONTRIBUTOR_PATTERN = re.compile(r"@([A-Za-z0-9](?:[A-Za-z0-9-]{0,38}))")


def rewrite_callouts(text: str) -> str:
    """[!WARNING] -> **<warning emoji> Warning**"""

    def _replace(match: re.Match[str]) -> str:
        kind = match.group(1).upper()
        label = kind.capitalize()
        emoji = CALLOUT_EMOJIS.get(kind)
        return f"**{emoji} {label}**" if emoji else f"**{label}**"

    return _CALLOUT_PATTERN.sub(_replace, text)


def rewrite_pr_references(text: str, repo_url: str) -> str:
    """#123 -> [#123](<repo>/pull/123)"""
    return _PR_REF_PATTERN.sub(lambda m: f"[#{m.group(1)}]({repo_url}/pull/{m.group(1)})", text)


def rewrite_mentions(text: str, credits_marker: str) -> str:
    """
    @user -> [@user](https://github.com/user), only after the credits marker.

    Prose above the credits section often uses @ for decorators, npm scopes
    and the like, so it is left untouched.
    """
    head, sep, tail = text.partition(credits_marker)
    if not sep:
        return text
    tail = _MENTION_PATTERN.sub(lambda m: f"[@{m.group(1)}](https://github.com/{m.group(1)})", tail)
    return f"{head}{sep}{tail}"


def rewrite_commit_hashes(text: str, repo_url: str) -> str:
    """Full 40-char hash -> [abc1234](<repo>/commit/<hash>)"""
    return _COMMIT_PATTERN.sub(
        lambda m: f"[{m.group(1)[:7]}]({repo_url}/commit/{m.group(1)})", text
    )


def collapse_blank_lines(text: str) -> str:
    return _NEWLINES_PATTERN.sub("\n", text).strip()


def transform_body(body: str | None, repo_url: str, credits_marker: str) -> str:
    """
    Apply the full rewrite pipeline to a release body.

    Order: callouts, PR references, credit mentions, commit hashes, blank
    lines. Empty bodies become the placeholder text.
    """
    if not body or not body.strip():
        return BODY_PLACEHOLDER

    text = rewrite_callouts(body)
    text = rewrite_pr_references(text, repo_url)
    text = rewrite_mentions(text, credits_marker)
    text = rewrite_commit_hashes(text, repo_url)
    text = collapse_blank_lines(text)
    return text or BODY_PLACEHOLDER


def truncate_markdown(text: str, max_length: int) -> str:
    """
    Truncate text to at most max_length characters, ending in an ellipsis.

    The cut lands at max_length - 1 unless that would split a markdown link,
    in which case the whole link is dropped.
    """
    if len(text) <= max_length:
        return text
    if max_length <= 0:
        return ""

    cut = max_length - 1
    for match in _LINK_PATTERN.finditer(text):
        if match.start() >= cut:
            break
        if match.end() > cut:
            cut = match.start()
            break

    return f"{text[:cut]}{ELLIPSIS}"


def split_credits(text: str, credits_marker: str) -> tuple[str, str | None]:
    """Split text into (notes, credits section including the marker)."""
    index = text.find(credits_marker)
    if index < 0:
        return text, None
    return text[:index], text[index:]


def count_contributors(credits: str) -> int:
    """Number of distinct users mentioned in a credits section."""
    return len({name.lower() for name in _CONTRIBUTOR_PATTERN.findall(credits)})
