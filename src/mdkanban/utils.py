"""Provide helpers for timestamps, task ids and human-readable durations."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_ID_SEPARATOR_RE = re.compile(r"[\W_]+")

_DURATION_UNITS: tuple[tuple[str, float], ...] = (
    ("year", 365.25 * 86400),
    ("month", 30.4375 * 86400),
    ("week", 7 * 86400),
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
)


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def parse_date(value: Any) -> Optional[datetime]:
    """Coerce a datetime, date or ISO-8601 string into an aware UTC datetime.

    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    # A naive timestamp is assumed to be UTC.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_date(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return start_of_day(value) + timedelta(days=1) - timedelta(microseconds=1)


def task_id_from_name(name: str) -> str:
    """Derive a task id slug: lower-case, non-alphanumeric runs become one hyphen."""
    return _ID_SEPARATOR_RE.sub("-", name.strip().lower()).strip("-")


def humanize_duration(seconds: float, largest: int = 3) -> str:
    """Render a duration using at most ``largest`` units, rounding the last one.

    ``humanize_duration(93784)`` -> ``"1 day, 2 hours, 3 minutes"``.
    """
    remaining = abs(seconds)
    pieces: list[tuple[int, str]] = []
    for name, size in _DURATION_UNITS:
        if len(pieces) == largest - 1 or size == 1:
            count = int(remaining / size + 0.5)
            if count:
                pieces.append((count, name))
            break
        count = int(remaining // size)
        if count:
            pieces.append((count, name))
            remaining -= count * size
    if not pieces:
        return "0 seconds"
    return ", ".join(f"{count} {name}{'' if count == 1 else 's'}" for count, name in pieces)
