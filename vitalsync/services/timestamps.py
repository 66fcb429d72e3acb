"""
Timestamp normalization for device telemetry and alerts.

The backend mixes ISO-8601 strings with a sentinel encoding,
``YYYY-MM-DD_HH-MM-SS``, used for reading keys and alert timestamps.
Everything here fails soft: a bad timestamp is never a fatal error.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

NO_DATA_LABEL = "No data available"
INVALID_DATE_LABEL = "Invalid date"
DISPLAY_FORMAT = "%b %d, %Y, %I:%M:%S %p"


def _parse_sentinel(raw: str) -> Optional[datetime]:
    date_part, _, time_part = raw.partition('_')
    date_fields = date_part.split('-')
    time_fields = time_part.split('-')

    if len(date_fields) != 3 or not 2 <= len(time_fields) <= 3:
        return None
    if len(time_fields) == 2 or not time_fields[2]:
        time_fields = time_fields[:2] + ['0']

    try:
        year, month, day = (int(f) for f in date_fields)
        hour, minute, second = (int(f) for f in time_fields)
        return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
    except (ValueError, OverflowError):
        return None


def _parse_iso(raw: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(raw.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """
    Parse a timestamp in either backend encoding.

    Returns a timezone-aware datetime, or None when the input is empty or
    cannot be parsed. Naive values are taken to be UTC.
    """
    if isinstance(raw, datetime):
        return raw if raw.tzinfo is not None else raw.replace(tzinfo=timezone.utc)
    if not isinstance(raw, str) or not raw.strip():
        return None

    if '_' in raw:
        return _parse_sentinel(raw)
    return _parse_iso(raw)


def reference_time(now: Optional[datetime] = None) -> datetime:
    """``now`` as an aware instant (current UTC time if omitted). Naive values are taken to be UTC."""
    if now is None:
        return datetime.now(timezone.utc)
    return now if now.tzinfo is not None else now.replace(tzinfo=timezone.utc)


def normalize(raw: Any, now: Optional[datetime] = None) -> datetime:
    """
    Normalize ``raw`` to a comparable instant for merge and sort purposes.

    Never raises. Empty or unparseable input yields ``now`` (current UTC
    wall-clock time by default; a naive ``now`` is taken to be UTC).
    """
    parsed = parse_timestamp(raw)
    if parsed is not None:
        return parsed

    if raw:
        logger.debug(f"Unparseable timestamp {raw!r}, substituting current time")
    return reference_time(now)


def format_timestamp(raw: Any) -> str:
    """Display rendering with the "No data available" / "Invalid date" sentinels."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return NO_DATA_LABEL

    parsed = parse_timestamp(raw)
    if parsed is None:
        logger.debug(f"Invalid date created from timestamp {raw!r}")
        return INVALID_DATE_LABEL
    return parsed.strftime(DISPLAY_FORMAT)


def to_sentinel(instant: datetime) -> str:
    """Encode an instant in the backend's sentinel format."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.strftime("%Y-%m-%d_%H-%M-%S")


def sort_key(raw: Any, now: Optional[datetime] = None) -> datetime:
    return normalize(raw, now=now)
