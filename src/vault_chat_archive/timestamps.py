"""Timestamp formatting and tolerant parsing for conversation documents."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone

_LOG = logging.getLogger(__name__)

# "2025/08/07 01:27:20", written by older versions in local time
_LOCALE_RE = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def utc_now() -> datetime:
    """Current UTC time, truncated to the millisecond precision documents store."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def format_iso(dt: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a ``Z`` suffix.

    Naive datetimes are taken to be local time.
    """
    utc = dt.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def format_for_filename(dt: datetime) -> str:
    """Local time as ``YYYY-MM-DD_HH-MM-SS``, safe for file names."""
    return dt.astimezone().strftime("%Y-%m-%d_%H-%M-%S")


def _parse_locale(text: str) -> datetime | None:
    m = _LOCALE_RE.match(text)
    if not m:
        return None
    year, month, day, hour, minute, second = (int(g) if g else 0 for g in m.groups())
    try:
        # Build from local components, then attach the local offset.
        return datetime(year, month, day, hour, minute, second).astimezone()
    except ValueError:
        return None


def parse_timestamp(value: object) -> datetime | None:
    """Parse a header or role-line timestamp into an aware datetime.

    Accepts ISO-8601 strings (with or without offset or ``Z``), the legacy
    ``YYYY/MM/DD HH:MM:SS`` local form, and datetimes already produced by the
    YAML loader. Returns None when nothing matches.
    """
    if isinstance(value, datetime):
        # YAML timestamps without an offset are UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    parsed = _parse_locale(text)
    if parsed is not None:
        return parsed

    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        _LOG.warning("Unrecognized timestamp %r", text)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed
