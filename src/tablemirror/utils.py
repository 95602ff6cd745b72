"""Utility functions for tablemirror."""

import re
import time
from datetime import datetime, timezone
from typing import Any, Optional

# Identity field present on every cached payload
ID_FIELD = "id"

# A value "looks like a date" when it starts with YYYY-MM-DD
DATE_PREFIX_RE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}")

# Same pattern expressed as a SQLite GLOB (SQLite ships without REGEXP)
DATE_PREFIX_GLOB = "[0-9][0-9][0-9][0-9]-[0-9][0-9]-[0-9][0-9]*"

_UNSAFE_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize_identifier(name: Any) -> str:
    """Strip everything but ASCII letters, digits and underscore.

    Field names are supplied by callers and end up inside generated SQL,
    so this allow-list is the only thing standing between a filter and an
    injected predicate.

    Args:
        name: Raw identifier (anything with a string form)

    Returns:
        Sanitized identifier (possibly empty)

    Examples:
        >>> sanitize_identifier("status")
        'status'
        >>> sanitize_identifier("x'); DROP TABLE cache_records; --")
        'xDROPTABLEcache_records'
    """
    if name is None:
        return ""
    return _UNSAFE_IDENTIFIER_CHARS.sub("", str(name))


def date_prefix(value: Any) -> Optional[str]:
    """Return the leading YYYY-MM-DD of a value, or None if it has none.

    Examples:
        >>> date_prefix("2024-06-24T00:00:00Z")
        '2024-06-24'
        >>> date_prefix("not-a-date") is None
        True
    """
    if not isinstance(value, str):
        return None
    match = DATE_PREFIX_RE.match(value)
    return match.group(0) if match else None


def now_timestamp() -> float:
    """Current wall-clock time as a Unix timestamp."""
    return time.time()


def timestamp_to_iso(ts: Optional[float]) -> Optional[str]:
    """Convert a Unix timestamp into an ISO 8601 UTC string."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def dumps_json(data: Any) -> str:
    """Serialize a payload to compact JSON text."""
    import orjson

    return orjson.dumps(data).decode("utf-8")


def loads_json(text: Any) -> Any:
    """Parse JSON text (str or bytes) into Python objects."""
    import orjson

    return orjson.loads(text)


def format_duration(seconds: Optional[float]) -> str:
    """Format a number of seconds for humans.

    Examples:
        >>> format_duration(45)
        '45s'
        >>> format_duration(3720)
        '1h 2m'
        >>> format_duration(None)
        '-'
    """
    if seconds is None:
        return "-"
    seconds = int(max(seconds, 0))
    if seconds < 60:
        return f"{seconds}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h" if hours else f"{days}d"
