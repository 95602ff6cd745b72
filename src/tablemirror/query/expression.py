"""Filter expression model and parsing.

A filter arrives as nested JSON::

    {
        "operator": "and",
        "fields": [
            {"field": "status", "comparison": "is", "value": "Active"},
            {"operator": "or", "fields": [...]},
        ],
    }

and is decoded once, here, into immutable ``FilterGroup`` / ``FilterLeaf``
trees whose values are tagged ``FilterValue`` variants. Nothing downstream
inspects raw JSON values again.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from tablemirror.query.dates import DateModeResolver
from tablemirror.remote import DateResolver
from tablemirror.utils import sanitize_identifier

logger = logging.getLogger(__name__)


class FilterValidationError(ValueError):
    """Raised when a filter expression is malformed."""

    pass


class Comparison(Enum):
    """Closed set of supported comparisons."""

    IS = "is"
    IS_NOT = "is_not"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    IS_GREATER_THAN = "is_greater_than"
    IS_LESS_THAN = "is_less_than"
    IS_EQUAL_OR_GREATER_THAN = "is_equal_or_greater_than"
    IS_EQUAL_OR_LESS_THAN = "is_equal_or_less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    HAS_ANY_OF = "has_any_of"
    HAS_ALL_OF = "has_all_of"
    HAS_NONE_OF = "has_none_of"
    IS_EXACTLY = "is_exactly"
    IS_ANY_OF = "is_any_of"
    IS_NONE_OF = "is_none_of"
    IS_BEFORE = "is_before"
    IS_AFTER = "is_after"
    IS_ON_OR_BEFORE = "is_on_or_before"
    IS_ON_OR_AFTER = "is_on_or_after"
    FILE_NAME_CONTAINS = "file_name_contains"
    FILE_TYPE_IS = "file_type_is"
    IS_OVERDUE = "is_overdue"
    IS_NOT_OVERDUE = "is_not_overdue"
    # Anything else; compiled as plain equality
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, name: Any) -> "Comparison":
        """Map a comparison name (or alias) to a member.

        Examples:
            >>> Comparison.parse("is_equal_to")
            <Comparison.IS: 'is'>
            >>> Comparison.parse("starts_with")
            <Comparison.UNRECOGNIZED: 'unrecognized'>
        """
        normalized = str(name).strip().lower()
        normalized = COMPARISON_ALIASES.get(normalized, normalized)
        if normalized == cls.UNRECOGNIZED.value:
            return cls.UNRECOGNIZED
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNRECOGNIZED


COMPARISON_ALIASES = {
    "is_equal_to": "is",
    "is_not_equal_to": "is_not",
    "does_not_contain": "not_contains",
}

# Comparisons that take no value
VALUELESS_COMPARISONS = frozenset(
    [
        Comparison.IS_EMPTY,
        Comparison.IS_NOT_EMPTY,
        Comparison.IS_OVERDUE,
        Comparison.IS_NOT_OVERDUE,
    ]
)

# Comparisons whose value is always a list (scalars are wrapped)
LIST_COMPARISONS = frozenset(
    [
        Comparison.HAS_ANY_OF,
        Comparison.HAS_ALL_OF,
        Comparison.HAS_NONE_OF,
        Comparison.IS_EXACTLY,
        Comparison.IS_ANY_OF,
        Comparison.IS_NONE_OF,
    ]
)

DATE_COMPARISONS = frozenset(
    [
        Comparison.IS_BEFORE,
        Comparison.IS_AFTER,
        Comparison.IS_ON_OR_BEFORE,
        Comparison.IS_ON_OR_AFTER,
    ]
)

NUMERIC_COMPARISONS = frozenset(
    [
        Comparison.IS_GREATER_THAN,
        Comparison.IS_LESS_THAN,
        Comparison.IS_EQUAL_OR_GREATER_THAN,
        Comparison.IS_EQUAL_OR_LESS_THAN,
    ]
)

# Comparisons that search for a single piece of text
TEXT_COMPARISONS = frozenset(
    [
        Comparison.CONTAINS,
        Comparison.NOT_CONTAINS,
        Comparison.FILE_NAME_CONTAINS,
        Comparison.FILE_TYPE_IS,
    ]
)

# Keys that mark a dict value as a date value
_DATE_VALUE_KEYS = ("date_mode", "date_mode_value", "date")


@dataclass(frozen=True)
class Scalar:
    """A single text, boolean or null value."""

    value: Union[str, bool, None]


@dataclass(frozen=True)
class Number:
    value: Union[int, float]


@dataclass(frozen=True)
class ValueList:
    values: Tuple[Any, ...] = ()

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class Range:
    """Inclusive range; either bound may be None."""

    min: Any = None
    max: Any = None


FilterValue = Union[Scalar, Number, ValueList, Range]


class LogicalOperator(Enum):
    AND = "and"
    OR = "or"


@dataclass(frozen=True)
class FilterLeaf:
    """A single ``field comparison value`` condition.

    Attributes:
        field: Field reference as given (``slug`` or ``slug.from_date``)
        comparison: Parsed comparison
        value: Decoded value
        raw_comparison: Comparison name as given, kept for diagnostics
    """

    field: str
    comparison: Comparison
    value: FilterValue = Scalar(None)
    raw_comparison: Optional[str] = None


@dataclass(frozen=True)
class FilterGroup:
    """Logical combination of leaves and nested groups."""

    operator: LogicalOperator = LogicalOperator.AND
    children: Tuple[Union["FilterGroup", FilterLeaf], ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.children


FilterExpression = Union[FilterGroup, FilterLeaf]


def _decode_scalar(raw: Any, where: str) -> Union[Scalar, Number]:
    # bool is an int subclass; keep it a Scalar
    if raw is None or isinstance(raw, (str, bool)):
        return Scalar(raw)
    if isinstance(raw, (int, float)):
        return Number(raw)
    raise FilterValidationError(f"{where}: unsupported value {raw!r}")


def _decode_list_item(raw: Any, where: str) -> Any:
    if isinstance(raw, dict) and "value" in raw:
        raw = raw["value"]
    if raw is None or isinstance(raw, (str, bool, int, float)):
        return raw
    raise FilterValidationError(f"{where}: list items must be scalars, got {raw!r}")


def decode_value(
    comparison: Comparison,
    raw: Any,
    resolver: Optional[DateResolver] = None,
    where: str = "value",
) -> FilterValue:
    """Decode a raw JSON value into a FilterValue for a comparison.

    Args:
        comparison: Comparison the value belongs to
        raw: Value as received
        resolver: Date-mode resolver used for date values
        where: Location of the value, used in error messages

    Returns:
        Decoded FilterValue

    Raises:
        FilterValidationError: If the value cannot be decoded
    """
    resolver = resolver or DateModeResolver()

    if comparison in VALUELESS_COMPARISONS:
        return Scalar(None)

    if comparison in LIST_COMPARISONS:
        if raw is None:
            return ValueList(())
        items = raw if isinstance(raw, (list, tuple)) else [raw]
        return ValueList(tuple(_decode_list_item(item, where) for item in items))

    if comparison in DATE_COMPARISONS:
        if isinstance(raw, (list, tuple)):
            raise FilterValidationError(f"{where}: expected a date, got a list")
        return Scalar(resolver.extract_date_value(raw))

    if comparison in TEXT_COMPARISONS:
        if isinstance(raw, (list, tuple)):
            raise FilterValidationError(f"{where}: expected text, got a list")
        if isinstance(raw, dict) and ("min" in raw or "max" in raw):
            raise FilterValidationError(f"{where}: expected text, got a range")

    if isinstance(raw, dict):
        if "min" in raw or "max" in raw:
            low, high = raw.get("min"), raw.get("max")
            if isinstance(low, dict):
                low = resolver.extract_date_value(low)
            if isinstance(high, dict):
                high = resolver.extract_date_value(high)
            return Range(low, high)
        if any(key in raw for key in _DATE_VALUE_KEYS):
            return Scalar(resolver.extract_date_value(raw))
        raise FilterValidationError(f"{where}: unsupported object value {raw!r}")

    if isinstance(raw, (list, tuple)):
        return ValueList(tuple(_decode_list_item(item, where) for item in raw))

    return _decode_scalar(raw, where)


def parse_filter(
    data: Any,
    resolver: Optional[DateResolver] = None,
    _path: str = "filter",
) -> Optional[FilterExpression]:
    """Decode a JSON filter into an expression tree.

    Groups use ``operator`` plus ``fields`` (or ``children``); leaves use
    ``field``, ``comparison`` and ``value``. Empty input means "no filter".

    Args:
        data: Parsed JSON filter
        resolver: Date-mode resolver for date values

    Returns:
        FilterGroup or FilterLeaf, or None for an empty filter

    Raises:
        FilterValidationError: If the structure is malformed

    Examples:
        >>> expr = parse_filter({"field": "priority", "comparison": "is_greater_than", "value": 3})
        >>> expr.value
        Number(value=3)
    """
    if data is None or (isinstance(data, dict) and not data):
        return None
    if isinstance(data, (FilterGroup, FilterLeaf)):
        return data
    if not isinstance(data, dict):
        raise FilterValidationError(
            f"{_path}: expected an object, got {type(data).__name__}"
        )

    if "field" in data:
        return _parse_leaf(data, resolver, _path)

    children_raw = data.get("fields", data.get("children"))
    if children_raw is None:
        raise FilterValidationError(
            f"{_path}: object has neither 'field' nor 'fields'/'children'"
        )
    if not isinstance(children_raw, (list, tuple)):
        raise FilterValidationError(f"{_path}: 'fields' must be a list")

    operator_raw = str(data.get("operator") or "and").strip().lower()
    try:
        operator = LogicalOperator(operator_raw)
    except ValueError:
        raise FilterValidationError(
            f"{_path}: unknown logical operator '{data.get('operator')}'"
        ) from None

    children = []
    for index, child in enumerate(children_raw):
        parsed = parse_filter(child, resolver, f"{_path}.fields[{index}]")
        if parsed is not None:
            children.append(parsed)
    return FilterGroup(operator, tuple(children))


def _parse_leaf(
    data: Dict[str, Any], resolver: Optional[DateResolver], path: str
) -> FilterLeaf:
    field_name = data.get("field")
    if not isinstance(field_name, str) or not sanitize_identifier(field_name.partition(".")[0]):
        raise FilterValidationError(f"{path}: invalid field name {field_name!r}")

    raw_comparison = data.get("comparison")
    if raw_comparison is None or not str(raw_comparison).strip():
        raise FilterValidationError(f"{path}: missing 'comparison' for field '{field_name}'")

    comparison = Comparison.parse(raw_comparison)
    value = decode_value(comparison, data.get("value"), resolver, f"{path}.value")
    return FilterLeaf(field_name, comparison, value, str(raw_comparison))
