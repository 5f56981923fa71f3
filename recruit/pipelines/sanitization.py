"""Field sanitization applied to candidate records before every write.

Date-bearing values are parsed into timestamps; anything that cannot be parsed
is dropped from the record rather than nulled, so the storage layer leaves the
previous value untouched.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DATE_FIELDS: tuple[str, ...] = (
    "created_at",
    "updated_at",
    "linkedin_last_active",
    "enrichment_date",
    "last_enriched",
    "processing_date",
    "selection_date",
)

NESTED_RECORD_FIELD = "enriched_data"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a date-like value into a timezone-aware ``datetime``.

    Accepts ``datetime``/``date`` objects, POSIX timestamps (seconds) and
    ISO-8601 strings, including a trailing ``Z``. Naive values are taken as UTC.

    Returns:
        The parsed timestamp, or None when the value is not a valid calendar
        timestamp.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text[-1] in "Zz":
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def looks_like_timestamp(value: str) -> bool:
    """Heuristic ISO-8601 sniffing: any ``T`` or ``Z`` in the string.

    Over-broad on purpose (``"CTO"`` matches). Values that match and do not
    parse are stripped by :func:`sanitize`.
    """
    return "T" in value or "Z" in value


def sanitize(record: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``record`` that is safe to persist.

    - Known date fields are parsed; invalid ones are removed.
    - ``enriched_data`` (one level deep) gets the same treatment.
    - Mapping elements of list-valued fields are sanitized recursively.
    - Remaining strings that look like timestamps but do not parse are removed.

    Never raises.
    """
    return _sanitize(record, nested=False)


def _sanitize(record: Mapping[str, Any], *, nested: bool) -> dict[str, Any]:
    sanitized = dict(record)

    for field in DATE_FIELDS:
        value = sanitized.get(field)
        if value is None:
            continue
        parsed = parse_timestamp(value)
        if parsed is None:
            logger.warning(f"Dropping invalid date for field {field}: {value!r}")
            del sanitized[field]
        else:
            # Nested values end up in JSON columns
            sanitized[field] = parsed.isoformat() if nested else parsed

    if not nested and isinstance(sanitized.get(NESTED_RECORD_FIELD), Mapping):
        sanitized[NESTED_RECORD_FIELD] = _sanitize(sanitized[NESTED_RECORD_FIELD], nested=True)

    for key, value in list(sanitized.items()):
        if isinstance(value, (list, tuple)):
            sanitized[key] = [
                _sanitize(item, nested=True) if isinstance(item, Mapping) else item
                for item in value
            ]

    for key, value in list(sanitized.items()):
        if isinstance(value, str) and looks_like_timestamp(value) and parse_timestamp(value) is None:
            logger.warning(f"Dropping invalid date string for field {key}: {value!r}")
            del sanitized[key]

    return sanitized
