"""Unit tests for the content toggle and commit message rotation."""

from __future__ import annotations

import datetime as dt

import pytest

from commithabit.orchestrator.toggle import (
    COMMIT_MESSAGES,
    ZERO_WIDTH_SPACE,
    commit_message_for,
    toggle_content,
)

SAMPLES = [
    "",
    "# reef\n",
    "# reef\n" + ZERO_WIDTH_SPACE,
    "# reef\n" + ZERO_WIDTH_SPACE * 2,
    "# reef\n" + ZERO_WIDTH_SPACE * 3,
    ZERO_WIDTH_SPACE,
    "no trailing newline",
    "emoji \U0001f41f and accents é",
]


class TestToggleContent:
    """toggle_content is a content-changing involution."""

    @pytest.mark.parametrize("content", SAMPLES)
    def test_toggle_twice_restores_content(self, content: str) -> None:
        """Applying the toggle twice yields the original string."""
        assert toggle_content(toggle_content(content)) == content, (
            f"toggle should be an involution for {content!r}"
        )

    @pytest.mark.parametrize("content", SAMPLES)
    def test_toggle_always_changes_content(self, content: str) -> None:
        """A single toggle never returns the input unchanged."""
        assert toggle_content(content) != content, (
            f"toggle should change {content!r}"
        )

    def test_even_run_gains_marker(self) -> None:
        """Content without a trailing marker gains one."""
        assert toggle_content("# reef\n") == "# reef\n" + ZERO_WIDTH_SPACE, (
            "expected one appended marker"
        )

    def test_odd_run_loses_marker(self) -> None:
        """Content ending in one marker loses it."""
        assert toggle_content("# reef\n" + ZERO_WIDTH_SPACE) == "# reef\n", (
            "expected the marker to be stripped"
        )

    def test_custom_marker(self) -> None:
        """Any non-empty marker can be toggled."""
        assert toggle_content("abc", "\u2060") == "abc\u2060", (
            "expected custom marker appended"
        )

    def test_empty_marker_rejected(self) -> None:
        """An empty marker would make the toggle a no-op."""
        with pytest.raises(ValueError, match="non-empty"):
            toggle_content("abc", "")


class TestCommitMessageFor:
    """Commit messages rotate by weekday."""

    def test_message_is_from_pool(self) -> None:
        """Every weekday maps onto the message pool."""
        start = dt.date(2026, 3, 2)
        for offset in range(7):
            message = commit_message_for(start + dt.timedelta(days=offset))
            assert message in COMMIT_MESSAGES, f"unexpected message {message!r}"

    def test_same_day_same_message(self) -> None:
        """The choice is deterministic for a given day."""
        day = dt.datetime(2026, 3, 4, 23, 59, tzinfo=dt.UTC)
        assert commit_message_for(day) == commit_message_for(day.date()), (
            "message should depend only on the weekday"
        )

    def test_consecutive_weekdays_differ(self) -> None:
        """Monday and Tuesday get different messages."""
        monday = dt.date(2026, 3, 2)
        assert commit_message_for(monday) != commit_message_for(
            monday + dt.timedelta(days=1)
        ), "adjacent weekdays should rotate"
