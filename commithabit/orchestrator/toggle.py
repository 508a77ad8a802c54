"""Render-neutral content toggle and commit message rotation."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt

ZERO_WIDTH_SPACE = "\u200b"

COMMIT_MESSAGES: tuple[str, ...] = (
    "fix: normalize whitespace in README",
    "chore: format README.md",
    "style: clean up README formatting",
    "docs: fix trailing whitespace in README",
    "fix: remove extra blank lines in README",
)


def _trailing_run(content: str, marker: str) -> int:
    count = 0
    end = len(content)
    while end >= len(marker) and content.endswith(marker, 0, end):
        count += 1
        end -= len(marker)
    return count


def toggle_content(content: str, marker: str = ZERO_WIDTH_SPACE) -> str:
    """Flip the trailing invisible marker of *content*.

    An even-length trailing run of markers gains one, an odd-length run
    loses one, so ``toggle_content(toggle_content(x)) == x`` for every
    string and a single application always changes the content.

    Raises
    ------
    ValueError
        If *marker* is empty.

    """
    if not marker:
        msg = "marker must be a non-empty string"
        raise ValueError(msg)
    if _trailing_run(content, marker) % 2:
        return content[: -len(marker)]
    return content + marker


def commit_message_for(day: dt.date) -> str:
    """Return the commit message used on *day* (rotates by weekday)."""
    return COMMIT_MESSAGES[day.weekday() % len(COMMIT_MESSAGES)]
