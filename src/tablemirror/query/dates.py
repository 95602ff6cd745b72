"""Resolution of relative date modes to concrete dates.

Date filters may name a dynamic mode (``{"date_mode": "today"}``) instead of
a date. Modes are resolved to ``YYYY-MM-DD`` strings before compilation, so
the compiler only ever sees concrete dates.
"""

import calendar
from datetime import date, timedelta
from typing import Any, Callable, Optional

SUPPORTED_MODES = (
    "today",
    "yesterday",
    "tomorrow",
    "one_week_ago",
    "one_week_from_now",
    "one_month_ago",
    "one_month_from_now",
    "start_of_week",
    "end_of_week",
    "start_of_month",
    "end_of_month",
)


def _shift_months(day: date, months: int) -> date:
    """Move by whole months, clamping to the last day of the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


class DateModeResolver:
    """Turn date modes into ``YYYY-MM-DD`` strings.

    Args:
        today: Callable returning the current date (injectable for tests)

    Examples:
        >>> resolver = DateModeResolver(today=lambda: date(2025, 12, 13))
        >>> resolver.resolve("yesterday")
        '2025-12-12'
        >>> resolver.extract_date_value({"date_mode": "today"})
        '2025-12-13'
        >>> resolver.extract_date_value({"date_mode_value": "2025-01-15"})
        '2025-01-15'
    """

    def __init__(self, today: Optional[Callable[[], date]] = None):
        self.today = today or date.today

    def resolve(self, date_mode: Optional[str]) -> Optional[str]:
        """Resolve a date mode; unknown modes are returned unchanged."""
        if date_mode is None:
            return None

        today = self.today()
        mode = str(date_mode).lower()
        # Weeks start on Sunday
        days_since_sunday = (today.weekday() + 1) % 7

        if mode == "today":
            result = today
        elif mode == "yesterday":
            result = today - timedelta(days=1)
        elif mode == "tomorrow":
            result = today + timedelta(days=1)
        elif mode == "one_week_ago":
            result = today - timedelta(days=7)
        elif mode == "one_week_from_now":
            result = today + timedelta(days=7)
        elif mode == "one_month_ago":
            result = _shift_months(today, -1)
        elif mode == "one_month_from_now":
            result = _shift_months(today, 1)
        elif mode == "start_of_week":
            result = today - timedelta(days=days_since_sunday)
        elif mode == "end_of_week":
            result = today + timedelta(days=6 - days_since_sunday)
        elif mode == "start_of_month":
            result = today.replace(day=1)
        elif mode == "end_of_month":
            result = today.replace(day=calendar.monthrange(today.year, today.month)[1])
        else:
            return str(date_mode)

        return result.isoformat()

    def extract_date_value(self, value: Any) -> Optional[str]:
        """Pull a date string out of a filter value.

        Dict values are read with priority ``date_mode_value`` > ``date`` >
        ``date_mode``; anything else is converted to a string.
        """
        if value is None:
            return None
        if isinstance(value, dict):
            if value.get("date_mode_value"):
                return str(value["date_mode_value"])
            if value.get("date"):
                return str(value["date"])
            return self.resolve(value.get("date_mode"))
        if isinstance(value, date):
            return value.isoformat()
        return str(value)

    @staticmethod
    def is_dynamic_mode(date_mode: Any) -> bool:
        return str(date_mode).lower() in SUPPORTED_MODES
