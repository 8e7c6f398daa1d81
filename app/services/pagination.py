"""Opaque cursor encoding for keyset-paginated lists."""

import base64
import json
from datetime import UTC, datetime

from app.core.exceptions import AppException


def _encode(payload: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def _decode(cursor: str) -> dict:
    data = json.loads(base64.urlsafe_b64decode(cursor.encode()))
    if not isinstance(data, dict):
        raise ValueError("cursor payload is not an object")
    return data


def _invalid(exc: Exception) -> AppException:
    return AppException(
        message=f"Invalid cursor: {exc}",
        code="INVALID_CURSOR",
        status_code=400,
    )


def encode_cursor(activity_at: datetime, chat_id: int) -> str:
    """Encode a chat list position as base64url JSON."""
    return _encode({"u": activity_at.isoformat(), "i": chat_id})


def decode_cursor(cursor: str) -> tuple[datetime, int]:
    """Decode a chat list cursor. Raises AppException on invalid input."""
    try:
        data = _decode(cursor)
        activity_at = datetime.fromisoformat(data["u"])
        if activity_at.tzinfo is None:
            activity_at = activity_at.replace(tzinfo=UTC)
        return activity_at, int(data["i"])
    except Exception as exc:
        raise _invalid(exc) from exc


def encode_id_cursor(message_id: int) -> str:
    """Encode a message list position (everything older than this id)."""
    return _encode({"i": message_id})


def decode_id_cursor(cursor: str) -> int:
    """Decode a message list cursor. Raises AppException on invalid input."""
    try:
        return int(_decode(cursor)["i"])
    except Exception as exc:
        raise _invalid(exc) from exc
