"""
Tests for release-note markdown rewriting.
"""

from __future__ import annotations

import pytest

from releasewatch.delivery.markdown import (
    BODY_PLACEHOLDER,
    CALLOUT_EMOJIS,
    ELLIPSIS,
    collapse_blank_lines,
    count_contributors,
    rewrite_callouts,
    rewrite_commit_hashes,
    rewrite_mentions,
    rewrite_pr_references,
    split_credits,
    transform_body,
    truncate_markdown,
)

REPO = "https://github.com/acme/widget"
MARKER = "Huge thanks to"
HASH = "0123456789abcdef0123456789abcdef01234567"


class TestCallouts:
    def test_known_marker(self) -> None:
        assert rewrite_callouts("> [!WARNING]\n> careful") == (
            f"> **{CALLOUT_EMOJIS['WARNING']} Warning**\n> careful"
        )

    @pytest.mark.parametrize("kind", sorted(CALLOUT_EMOJIS))
    def test_every_known_marker_has_emoji(self, kind: str) -> None:
        result = rewrite_callouts(f"[!{kind}]")
        assert result == f"**{CALLOUT_EMOJIS[kind]} {kind.capitalize()}**"

    def test_unknown_marker_bold_only(self) -> None:
        assert rewrite_callouts("[!DANGER]") == "**Danger**"

    def test_lowercase_marker(self) -> None:
        assert rewrite_callouts("[!note]") == f"**{CALLOUT_EMOJIS['NOTE']} Note**"


class TestPullRequestReferences:
    def test_rewrites_reference(self) -> None:
        assert rewrite_pr_references("fixed #12.", REPO) == f"fixed [#12]({REPO}/pull/12)."

    def test_leaves_anchors_and_entities(self) -> None:
        text = "see docs/page#12 and &#39; and issue#5"
        assert rewrite_pr_references(text, REPO) == text

    def test_leaves_heading_markers(self) -> None:
        assert rewrite_pr_references("## Fixes", REPO) == "## Fixes"


class TestMentions:
    def test_only_after_marker(self) -> None:
        text = f"use @decorator here\n{MARKER} @alice and @bob-smith"
        result = rewrite_mentions(text, MARKER)

        assert "use @decorator here" in result
        assert "[@alice](https://github.com/alice)" in result
        assert "[@bob-smith](https://github.com/bob-smith)" in result

    def test_no_marker_no_rewrite(self) -> None:
        assert rewrite_mentions("thanks @alice", MARKER) == "thanks @alice"

    def test_emails_untouched(self) -> None:
        text = f"{MARKER} dev@example.com"
        assert rewrite_mentions(text, MARKER) == text


class TestCommitHashes:
    def test_full_hash_shortened(self) -> None:
        assert rewrite_commit_hashes(f"in {HASH}", REPO) == (
            f"in [{HASH[:7]}]({REPO}/commit/{HASH})"
        )

    def test_hash_in_url_untouched(self) -> None:
        text = f"{REPO}/commit/{HASH}"
        assert rewrite_commit_hashes(text, REPO) == text

    def test_short_hash_untouched(self) -> None:
        assert rewrite_commit_hashes("in abc1234", REPO) == "in abc1234"


class TestTransformBody:
    def test_empty_body_placeholder(self) -> None:
        assert transform_body("", REPO, MARKER) == BODY_PLACEHOLDER
        assert transform_body(None, REPO, MARKER) == BODY_PLACEHOLDER
        assert transform_body(" \n\n ", REPO, MARKER) == BODY_PLACEHOLDER

    def test_rewrites_do_not_corrupt_each_other(self) -> None:
        body = f"## Changes\n\n{MARKER}: fixed #12, thanks @alice for {HASH}"
        result = transform_body(body, REPO, MARKER)

        assert f"[#12]({REPO}/pull/12)" in result
        assert "[@alice](https://github.com/alice)" in result
        assert f"[{HASH[:7]}]({REPO}/commit/{HASH})" in result

    def test_blank_lines_collapsed_and_trimmed(self) -> None:
        assert transform_body("\n\na\n\n\n\nb\n\n", REPO, MARKER) == "a\nb"

    def test_deterministic(self) -> None:
        body = f"[!TIP] #1\n\n{MARKER} @a {HASH}"
        assert transform_body(body, REPO, MARKER) == transform_body(body, REPO, MARKER)

    def test_collapse_handles_crlf(self) -> None:
        assert collapse_blank_lines("a\r\n\r\nb") == "a\nb"


class TestTruncateMarkdown:
    def test_short_text_unchanged(self) -> None:
        assert truncate_markdown("hello", 5) == "hello"

    def test_one_over_boundary(self) -> None:
        max_length = 100
        text = "x" * (max_length + 1)
        result = truncate_markdown(text, max_length)

        assert len(result) == max_length
        assert result == "x" * (max_length - 1) + ELLIPSIS

    def test_does_not_split_link(self) -> None:
        link = f"[#12]({REPO}/pull/12)"
        text = "abc " + link + " tail"
        result = truncate_markdown(text, 10)

        assert result == "abc " + ELLIPSIS
        assert len(result) <= 10

    def test_link_before_cut_kept(self) -> None:
        link = "[a](u)"
        text = link + "y" * 50
        result = truncate_markdown(text, 20)

        assert result.startswith(link)
        assert len(result) == 20

    def test_zero_length(self) -> None:
        assert truncate_markdown("abc", 0) == ""


class TestCredits:
    def test_split(self) -> None:
        notes, credits = split_credits(f"notes\n{MARKER} @a", MARKER)
        assert notes == "notes\n"
        assert credits == f"{MARKER} @a"

    def test_split_without_marker(self) -> None:
        assert split_credits("notes", MARKER) == ("notes", None)

    def test_count_distinct(self) -> None:
        credits = f"{MARKER} [@alice](https://github.com/alice), @Bob, @bob and @carol"
        assert count_contributors(credits) == 3
