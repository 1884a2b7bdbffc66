"""
Opaque cursor tokens for keyset pagination.

A token is base64url (unpadded) JSON: {"id": ..., "createdAt": ISO-8601}.
Clients must treat it as opaque. A bare identifier is still accepted as a
degraded cursor; the caller then has to look the timestamp up itself.
"""
import base64
import binascii
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement

from parley.utils.datetime_utils import ensure_utc, parse_iso_utc, to_iso_utc

_BARE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


@dataclass(frozen=True)
class Cursor:
    """Last-seen position: row id plus its ordering timestamp (None when degraded)."""

    id: str
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is not None:
            object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    @property
    def is_degraded(self) -> bool:
        return self.timestamp is None


def _b64url_encode(raw: str) -> str:
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def _b64url_decode(token: str) -> Optional[str]:
    pad = len(token) % 4
    if pad == 1:
        return None
    padded = token + "=" * ((4 - pad) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None


def encode_cursor(cursor: Cursor) -> str:
    """
    Encode a cursor as an opaque token.

    Raises:
        ValueError: if the cursor has no timestamp
    """
    if not cursor.id or cursor.timestamp is None:
        raise ValueError("encode_cursor requires both id and timestamp")
    payload = json.dumps(
        {"id": cursor.id, "createdAt": to_iso_utc(cursor.timestamp)},
        separators=(",", ":"),
    )
    return _b64url_encode(payload)


def decode_cursor(token: Optional[str]) -> Optional[Cursor]:
    """
    Decode a token produced by encode_cursor.

    Returns None for empty or malformed tokens instead of raising. A token
    that is not base64 JSON but looks like an identifier comes back as a
    degraded Cursor without timestamp.
    """
    if not token or not isinstance(token, str):
        return None

    decoded = _b64url_decode(token)
    if decoded is not None:
        try:
            payload = json.loads(decoded)
        except ValueError:
            payload = None
        if payload is not None:
            if not isinstance(payload, dict):
                return None
            cursor_id = payload.get("id")
            created_at = payload.get("createdAt")
            if not isinstance(cursor_id, str) or not cursor_id:
                return None
            if created_at is None:
                return Cursor(id=cursor_id)
            if not isinstance(created_at, str):
                return None
            try:
                return Cursor(id=cursor_id, timestamp=parse_iso_utc(created_at))
            except ValueError:
                return None

    if _BARE_ID_RE.match(token):
        return Cursor(id=token)
    return None


def older_than(cursor: Cursor, timestamp_column, id_column) -> ColumnElement[bool]:
    """
    Keyset predicate selecting rows strictly after `cursor` in
    descending (timestamp, id) order.
    """
    if cursor.timestamp is None:
        return id_column < cursor.id
    return or_(
        timestamp_column < cursor.timestamp,
        and_(timestamp_column == cursor.timestamp, id_column < cursor.id),
    )


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    """Clamp a client-supplied page size into [1, maximum]."""
    if limit is None:
        return default
    return max(1, min(limit, maximum))
