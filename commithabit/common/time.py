"""Common time utilities."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def utc_day_start(moment: dt.datetime) -> dt.datetime:
    """Return midnight UTC of the calendar day containing *moment*.

    Raises
    ------
    ValueError
        If *moment* is naive.

    """
    if moment.tzinfo is None:
        msg = "moment must be timezone-aware"
        raise ValueError(msg)
    utc = moment.astimezone(dt.UTC)
    return utc.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_iso_datetime(value: str) -> dt.datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into aware UTC.

    Raises
    ------
    ValueError
        If the value is not ISO-8601 or carries no offset.

    """
    parsed = dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        msg = f"timestamp must include a UTC offset: {value!r}"
        raise ValueError(msg)
    return parsed.astimezone(dt.UTC)
