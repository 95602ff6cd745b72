"""Base accessor interface for field value extraction.

An accessor turns a field reference into a SQL expression that reads the
field's value out of a cached JSON payload. Remote tables encode one logical
value in several physical shapes (plain scalars, ``{"value": ...}`` wrappers
for select/status fields, nested ``from_date``/``to_date`` wrappers for date
ranges, arrays for multi-valued fields), so each shape gets its own accessor.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple

from tablemirror.utils import sanitize_identifier

# Column holding the JSON document in every cache table
PAYLOAD_COLUMN = "payload"


@dataclass(frozen=True)
class FieldPath:
    """Sanitized reference to a payload field, with an optional sub-field.

    ``"due_date.from_date"`` addresses the ``from_date`` side of a date range.
    Both parts are reduced to ``[A-Za-z0-9_]`` before they reach SQL.

    Examples:
        >>> FieldPath.parse("due_date.from_date")
        FieldPath(field='due_date', sub='from_date')
        >>> print(FieldPath.parse("status").json_path("value"))
        '$."status"."value"'
    """

    field: str
    sub: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "field", sanitize_identifier(self.field))
        if self.sub is not None:
            object.__setattr__(self, "sub", sanitize_identifier(self.sub) or None)

    @classmethod
    def parse(cls, name: str) -> "FieldPath":
        """Split ``field[.sub]`` and sanitize both parts."""
        text = str(name) if name is not None else ""
        field, _, sub = text.partition(".")
        return cls(field, sub or None)

    @property
    def is_valid(self) -> bool:
        """False when sanitization left nothing of the field name."""
        return bool(self.field)

    def json_path(self, *keys: str) -> str:
        """Build a quoted JSON path literal rooted at this field.

        Keys are sanitized as well, so the result can be inlined in SQL.
        """
        parts = [self.field, *(sanitize_identifier(k) for k in keys)]
        return "'$" + "".join(f'."{p}"' for p in parts if p) + "'"

    def __str__(self) -> str:
        return f"{self.field}.{self.sub}" if self.sub else self.field


class FieldAccessor(ABC):
    """Abstract base class for field value accessors.

    Each accessor declares a unique ``strategy`` name and the remote field
    types it handles. The registry maps a field's declared type to the
    accessor that understands its encoding.

    Examples:
        Create a custom accessor:
        >>> class UpperText(FieldAccessor):
        ...     @property
        ...     def strategy(self) -> str:
        ...         return "upper_text"
        ...
        ...     def extract_sql(self, path: FieldPath) -> str:
        ...         return f"upper(json_extract(payload, {path.json_path()}))"
    """

    @property
    @abstractmethod
    def strategy(self) -> str:
        """Unique identifier for this extraction strategy.

        Returns:
            Strategy name (e.g., 'plain_text', 'select_or_status')
        """
        pass

    @property
    def field_types(self) -> Tuple[str, ...]:
        """Remote field types this accessor handles by default."""
        return ()

    def can_handle(self, field_type: Optional[str]) -> bool:
        """Check if this accessor is the default for a field type.

        Args:
            field_type: Declared remote field type (e.g., 'statusfield')

        Returns:
            True if field_type is one of this accessor's field_types
        """
        if not field_type:
            return False
        return field_type.lower() in self.field_types

    @abstractmethod
    def extract_sql(self, path: FieldPath) -> str:
        """SQL expression yielding the field's scalar value.

        Must evaluate to NULL when the field has no value in this encoding.

        Args:
            path: Sanitized field reference

        Returns:
            SQL expression over the ``payload`` column
        """
        pass

    def raw_sql(self, path: FieldPath) -> str:
        """SQL expression yielding the field exactly as stored."""
        return f"json_extract({PAYLOAD_COLUMN}, {path.json_path(*self._sub_keys(path))})"

    def type_sql(self, path: FieldPath) -> str:
        """SQL expression yielding the JSON type of the stored field."""
        return f"json_type({PAYLOAD_COLUMN}, {path.json_path(*self._sub_keys(path))})"

    @staticmethod
    def _sub_keys(path: FieldPath) -> Tuple[str, ...]:
        return (path.sub,) if path.sub else ()
