"""Display formatting for cache status and query results.

This module turns the coordinator's status summary and query results into
human-readable text, including per-category row counts, time until expiry,
and truncated payload values.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from tablemirror.utils import format_duration


class StatusFormatter:
    """Formatter for ``CacheCoordinator.status()`` summaries."""

    def __init__(self, status: Dict[str, Any]):
        """Initialize StatusFormatter.

        Args:
            status: Summary dict as returned by ``CacheCoordinator.status()``
        """
        self._status = status

    def describe(self, show_empty: bool = False) -> str:
        """Generate a human-readable description of the mirror.

        Args:
            show_empty: If True, list categories with no cached rows

        Returns:
            The description as a string

        Examples:
            >>> print(StatusFormatter(coordinator.status()).describe())
            Cache: /home/me/.tablemirror_cache/mirror.sqlite3
            ==================================================
            Checked: Today at 2:34 PM UTC
            TTL: records 12h, metadata 7d
            <BLANKLINE>
            Categories:
              • records: 120 rows (120 live, 2 scopes), next expiry in 11h 58m
        """
        status = self._status
        lines = []
        lines.append(f"Cache: {status.get('db_path', '')}")
        lines.append("=" * len(lines[0]))
        if status.get("timestamp"):
            lines.append(f"Checked: {self._format_timestamp(status['timestamp'])}")
        lines.append(
            f"TTL: records {format_duration(status.get('records_ttl'))}, "
            f"metadata {format_duration(status.get('metadata_ttl'))}"
        )
        lines.append("")

        categories = [
            c for c in status.get("categories", []) if show_empty or c.get("rows")
        ]
        if not categories:
            lines.append("Categories: (empty)")
        else:
            lines.append("Categories:")
            now = self.checked_at()
            for entry in categories:
                lines.append(f"  • {self._format_category(entry, now)}")

        requests = status.get("requests")
        if requests and (requests.get("hits") or requests.get("misses")):
            lines.append("")
            lines.append(
                f"Requests: {requests.get('hits', 0)} hits, "
                f"{requests.get('misses', 0)} misses"
            )

        return "\n".join(lines)

    def checked_at(self) -> Optional[float]:
        """Unix time the status was taken, or None."""
        iso = self._status.get("timestamp")
        if not iso:
            return None
        try:
            return datetime.fromisoformat(iso.replace("Z", "+00:00")).timestamp()
        except (ValueError, AttributeError):
            return None

    def _format_category(self, entry: Dict[str, Any], now: Optional[float]) -> str:
        text = (
            f"{entry['category']}: {entry.get('rows', 0)} rows "
            f"({entry.get('valid_rows', 0)} live, {entry.get('scopes', 0)} scopes)"
        )
        next_expiry = entry.get("next_expiry")
        if next_expiry is not None and now is not None:
            text += f", next expiry in {format_duration(next_expiry - now)}"
        return text

    def _format_timestamp(self, iso_timestamp: str) -> str:
        """Format an ISO timestamp into a human-readable string using local timezone.

        Examples:
            >>> self._format_timestamp("2024-01-15T14:34:56.789+00:00")
            'January 15, 2024 at 2:34 PM UTC'
        """
        try:
            dt = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
            dt_local = dt.astimezone()
            now = datetime.now().astimezone()

            time_str = dt_local.strftime("%I:%M %p %Z").lstrip("0")

            if dt_local.date() == now.date():
                return f"Today at {time_str}"
            elif (now.date() - dt_local.date()).days == 1:
                return f"Yesterday at {time_str}"
            else:
                return f"{dt_local.strftime('%B %d, %Y')} at {time_str}"

        except (ValueError, AttributeError):
            return iso_timestamp


def format_value(value: Any, max_length: int = 40) -> str:
    """Format a payload value for a table cell with smart truncation.

    Select-like objects show their ``value`` (or ``label``), lists show up to
    three elements, and long strings are cut with a count of what was dropped.

    Examples:
        >>> format_value({"value": "Active", "label": "Active"})
        'Active'
        >>> format_value(["a", "b", "c", "d", "e"])
        'a, b, c, ... (2 more)'
        >>> format_value(None)
        ''
    """
    if value is None:
        return ""

    if isinstance(value, dict):
        for key in ("value", "label", "date", "to_date"):
            inner = value.get(key)
            if isinstance(inner, (str, int, float)):
                return format_value(inner, max_length)
            if isinstance(inner, dict):
                return format_value(inner, max_length)
        value = str(value)

    if isinstance(value, list):
        items = [format_value(v, max_length) for v in value[:3]]
        text = ", ".join(items)
        if len(value) > 3:
            text += f", ... ({len(value) - 3} more)"
        return text

    text = str(value)
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}... ({len(text) - max_length} more chars)"


def result_columns(records: Sequence[Dict[str, Any]], fields: Optional[List[str]] = None) -> List[str]:
    """Columns to display for a result set: the requested fields, or every key seen."""
    if fields:
        return ["id"] + [f.partition(".")[0] for f in fields if f and f != "id"]
    columns: Dict[str, None] = {}
    for record in records:
        for key in record:
            columns.setdefault(key, None)
    return list(columns)
