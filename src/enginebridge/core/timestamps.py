"""
UTC timestamp and identifier helpers (stdlib-only).

Job and artifact records store timezone-aware UTC datetimes; the API layer
serializes them with :func:`to_iso8601`.  Identifiers are opaque 32-char hex
tokens.
"""

import re
import uuid
from datetime import UTC, datetime

_INVALID_SEGMENT_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Opaque unique token used for job and artifact ids."""
    return uuid.uuid4().hex


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()


def sanitize_segment(value: str | None, fallback: str = "_") -> str:
    """Make *value* safe to use as a single file or folder name."""
    text = (value or "").strip()
    if not text:
        return fallback
    cleaned = _INVALID_SEGMENT_CHARS.sub("_", text)
    if cleaned in {".", ".."}:
        return fallback
    return cleaned
