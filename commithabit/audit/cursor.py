"""Opaque keyset cursors for audit pagination.

A cursor encodes the ``(created_at, id)`` sort key of the last entry on a
page. The next page starts strictly after that key in descending order, so
entries inserted concurrently never shift or duplicate results.
"""

from __future__ import annotations

import base64
import binascii
import typing as typ

import msgspec

from commithabit.common.time import parse_iso_datetime
from commithabit.errors import ValidationError

if typ.TYPE_CHECKING:
    import datetime as dt


class _CursorPayload(msgspec.Struct, frozen=True):
    t: str
    id: str


def encode_cursor(created_at: dt.datetime, entry_id: str) -> str:
    """Return the opaque cursor for an entry's sort key."""
    raw = msgspec.json.encode(_CursorPayload(t=created_at.isoformat(), id=entry_id))
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> tuple[dt.datetime, str]:
    """Return the ``(created_at, id)`` pair encoded in *cursor*.

    Raises
    ------
    ValidationError
        If the cursor was not produced by :func:`encode_cursor`.

    """
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = msgspec.json.decode(raw, type=_CursorPayload)
        return (parse_iso_datetime(payload.t), payload.id)
    except (binascii.Error, UnicodeEncodeError, msgspec.DecodeError, ValueError) as exc:
        raise ValidationError.invalid_input("malformed cursor", field="cursor") from exc
