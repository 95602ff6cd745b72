"""Accessor for date, date-range and due-date fields."""

from typing import List, Tuple

from tablemirror.base.accessor import PAYLOAD_COLUMN, FieldAccessor, FieldPath
from tablemirror.utils import DATE_PREFIX_GLOB

DATE_FIELD_TYPES = (
    "datefield",
    "daterangefield",
    "duedatefield",
    "firstcreatedfield",
    "lastupdatedfield",
)

# Sides of a range wrapper; a bare field reference reads the end side
RANGE_SIDES = ("from_date", "to_date")
DEFAULT_RANGE_SIDE = "to_date"


class DateMultiformatAccessor(FieldAccessor):
    """Extract a ``YYYY-MM-DD`` value from any of the stored date shapes.

    Candidates, tried in order:

    1. range wrapper with an inner date: ``{"to_date": {"date": "2024-06-24T00:00:00Z"}}``
    2. due-date wrapper holding a string: ``{"to_date": "2024-06-24"}``
    3. a plain date string: ``"2024-06-24"``
    4. a plain date object: ``{"date": "2024-06-24T10:00:00Z"}``

    A candidate is accepted only if it is a string starting with
    ``YYYY-MM-DD``; the result is that 10-character prefix. If no candidate
    matches the expression is NULL.

    A ``from_date`` or ``to_date`` sub-field picks the side of the range.
    """

    @property
    def strategy(self) -> str:
        return "date_multiformat"

    @property
    def field_types(self) -> Tuple[str, ...]:
        return DATE_FIELD_TYPES

    @staticmethod
    def side(path: FieldPath) -> str:
        return path.sub if path.sub in RANGE_SIDES else DEFAULT_RANGE_SIDE

    def candidate_paths(self, path: FieldPath) -> List[str]:
        """JSON path literals of every candidate, in priority order."""
        side = self.side(path)
        return [
            path.json_path(side, "date"),
            path.json_path(side),
            path.json_path(),
            path.json_path("date"),
        ]

    def extract_sql(self, path: FieldPath) -> str:
        candidates = [
            f"CASE WHEN json_type({PAYLOAD_COLUMN}, {p}) = 'text' "
            f"AND json_extract({PAYLOAD_COLUMN}, {p}) GLOB '{DATE_PREFIX_GLOB}' "
            f"THEN substr(json_extract({PAYLOAD_COLUMN}, {p}), 1, 10) END"
            for p in self.candidate_paths(path)
        ]
        return "COALESCE(" + ", ".join(candidates) + ")"

    def raw_sql(self, path: FieldPath) -> str:
        return f"json_extract({PAYLOAD_COLUMN}, {path.json_path()})"

    def type_sql(self, path: FieldPath) -> str:
        return f"json_type({PAYLOAD_COLUMN}, {path.json_path()})"

    def overdue_sql(self, path: FieldPath) -> str:
        """SQL expression yielding the due-date wrapper's ``is_overdue`` flag."""
        return f"json_extract({PAYLOAD_COLUMN}, {path.json_path('is_overdue')})"
