from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from tripseal.core.config import get_settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; treat every stored value as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    # Accept datetimes, ISO-8601 strings (with trailing Z) and epoch milliseconds.
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def isoformat_z(value: datetime | None) -> str | None:
    resolved = as_utc(value)
    if resolved is None:
        return None
    return resolved.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_timestamp_exact(value: Any) -> str:
    """Render a timestamp as ``Jan 15, 2024 14:30:22`` (UTC); empty input renders as "N/A"."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return "N/A"
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year} {parsed.strftime('%H:%M:%S')}"


def is_poisoned(value: datetime | None) -> bool:
    # Compare at second precision against the configured placeholder dates.
    if value is None:
        return False
    resolved = as_utc(value).replace(microsecond=0)
    for raw in get_settings().poisoned_timestamps:
        sentinel = parse_timestamp(raw)
        if sentinel is not None and sentinel.replace(microsecond=0) == resolved:
            return True
    return False
