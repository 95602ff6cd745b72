"""Compile filter expressions into SQLite predicates.

The compiler walks a FilterGroup/FilterLeaf tree and emits a SQL predicate
over the ``payload`` column together with its bound parameters. Field names
only reach SQL through sanitized accessors; values are always bound.

Placeholders are numbered (``?NNN``) starting after a caller-supplied
offset, so compiled fragments can be appended to statements that already
bind parameters of their own.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Tuple

import tablemirror.accessors  # noqa: F401
from tablemirror.accessors.arrays import ArrayContainmentAccessor
from tablemirror.accessors.dates import DateMultiformatAccessor
from tablemirror.base.accessor import PAYLOAD_COLUMN, FieldAccessor, FieldPath
from tablemirror.base.registry import AccessorRegistry, get_registry
from tablemirror.query.expression import (
    Comparison,
    FilterExpression,
    FilterLeaf,
    FilterValidationError,
    FilterValue,
    Number,
    Range,
    Scalar,
    ValueList,
    parse_filter,
)
from tablemirror.query.validator import check_operator
from tablemirror.utils import ID_FIELD, date_prefix

if TYPE_CHECKING:
    from tablemirror.schema import TableSchema

logger = logging.getLogger(__name__)

ALWAYS_TRUE = "1 = 1"
ALWAYS_FALSE = "0 = 1"


@dataclass(frozen=True)
class CompiledFilter:
    """Result of compiling a filter expression.

    Attributes:
        sql: Predicate text ('' means no constraint)
        params: Values for the predicate's numbered placeholders, in order
        warnings: Diagnostics produced while compiling
    """

    sql: str = ""
    params: Tuple[Any, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.sql


@dataclass
class _CompileState:
    offset: int
    schema: Optional["TableSchema"]
    params: List[Any] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    aliases: int = 0

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f"?{self.offset + len(self.params)}"

    def bind_all(self, values: Sequence[Any]) -> str:
        return ", ".join(self.bind(v) for v in values)

    def alias(self) -> str:
        self.aliases += 1
        return f"elem{self.aliases}"

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def _as_text(value: Any) -> Any:
    """Text form used when comparing against stored values cast to TEXT."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _distinct(values: Sequence[Any]) -> List[Any]:
    seen = []
    for value in values:
        text = _as_text(value)
        if text is not None and text not in seen:
            seen.append(text)
    return seen


def _numeric_guard(expr: str) -> str:
    """True when an expression holds a number or numeric-looking text."""
    return (
        f"(typeof({expr}) IN ('integer', 'real') OR "
        f"(typeof({expr}) = 'text' AND trim({expr}) GLOB '*[0-9]*' "
        f"AND trim({expr}) NOT GLOB '*[^0-9.eE+-]*'))"
    )


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


class FilterCompiler:
    """Translate filter expressions into parameterized SQL.

    Args:
        registry: Accessor registry (defaults to the global one)
        strict_operators: Reject unknown comparisons instead of compiling
            them as equality

    Examples:
        >>> compiler = FilterCompiler()
        >>> compiled = compiler.compile(
        ...     {"field": "status", "comparison": "is", "value": "Active"}, offset=2
        ... )
        >>> compiled.params
        ('Active',)
    """

    def __init__(
        self,
        registry: Optional[AccessorRegistry] = None,
        strict_operators: bool = False,
    ):
        self.registry = registry or get_registry()
        self.strict_operators = strict_operators
        self._handlers: Dict[Comparison, Callable[..., str]] = {
            Comparison.IS: self._compile_is,
            Comparison.IS_NOT: self._compile_is_not,
            Comparison.CONTAINS: self._compile_contains,
            Comparison.NOT_CONTAINS: self._compile_not_contains,
            Comparison.IS_GREATER_THAN: self._compile_numeric,
            Comparison.IS_LESS_THAN: self._compile_numeric,
            Comparison.IS_EQUAL_OR_GREATER_THAN: self._compile_numeric,
            Comparison.IS_EQUAL_OR_LESS_THAN: self._compile_numeric,
            Comparison.IS_EMPTY: self._compile_is_empty,
            Comparison.IS_NOT_EMPTY: self._compile_is_not_empty,
            Comparison.HAS_ANY_OF: self._compile_has_any_of,
            Comparison.HAS_ALL_OF: self._compile_has_all_of,
            Comparison.HAS_NONE_OF: self._compile_has_none_of,
            Comparison.IS_EXACTLY: self._compile_is_exactly,
            Comparison.IS_ANY_OF: self._compile_is_any_of,
            Comparison.IS_NONE_OF: self._compile_is_none_of,
            Comparison.IS_BEFORE: self._compile_date,
            Comparison.IS_AFTER: self._compile_date,
            Comparison.IS_ON_OR_BEFORE: self._compile_date,
            Comparison.IS_ON_OR_AFTER: self._compile_date,
            Comparison.FILE_NAME_CONTAINS: self._compile_file_name_contains,
            Comparison.FILE_TYPE_IS: self._compile_file_type_is,
            Comparison.IS_OVERDUE: self._compile_is_overdue,
            Comparison.IS_NOT_OVERDUE: self._compile_is_not_overdue,
            Comparison.UNRECOGNIZED: self._compile_unrecognized,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def compile(
        self,
        expression: Any,
        schema: Optional["TableSchema"] = None,
        offset: int = 0,
    ) -> CompiledFilter:
        """Compile an expression (or raw JSON filter) into a predicate.

        Args:
            expression: FilterGroup, FilterLeaf, raw filter dict, or None
            schema: Table schema used for accessor selection and unknown-field
                detection; without one every field is treated as plain text
            offset: Number of placeholders already bound by the caller

        Returns:
            CompiledFilter whose first placeholder is ``?{offset + 1}``

        Raises:
            FilterValidationError: If the expression is malformed, or an
                unknown comparison is used with strict_operators
        """
        if offset < 0:
            raise ValueError(f"Parameter offset must be non-negative, got {offset}")
        expression = parse_filter(expression)
        if expression is None:
            return CompiledFilter()

        state = _CompileState(offset=offset, schema=schema)
        sql = self._compile_node(state, expression)
        logger.debug(f"Compiled filter: {sql} | params={state.params}")
        return CompiledFilter(sql, tuple(state.params), tuple(state.warnings))

    def order_expression(
        self, field_name: str, schema: Optional["TableSchema"] = None
    ) -> str:
        """Accessor-aware SQL expression to sort a field by."""
        path = FieldPath.parse(field_name)
        if not path.is_valid:
            raise FilterValidationError(f"Invalid sort field {field_name!r}")
        return self._accessor_for(path, schema).extract_sql(path)

    # ------------------------------------------------------------------
    # Tree walking
    # ------------------------------------------------------------------

    def _compile_node(self, state: _CompileState, node: FilterExpression) -> str:
        if isinstance(node, FilterLeaf):
            return self._compile_leaf(state, node)

        parts = [self._compile_node(state, child) for child in node.children]
        parts = [p for p in parts if p]
        if not parts:
            return ""
        if len(parts) == 1:
            return parts[0]
        joiner = f" {node.operator.value.upper()} "
        return "(" + joiner.join(f"({p})" for p in parts) + ")"

    def _field_type(
        self, path: FieldPath, schema: Optional["TableSchema"]
    ) -> Optional[str]:
        if schema is None:
            return None
        return schema.field_type(path.field)

    def _accessor_for(
        self, path: FieldPath, schema: Optional["TableSchema"]
    ) -> FieldAccessor:
        return self.registry.resolve(self._field_type(path, schema))

    def _compile_leaf(self, state: _CompileState, leaf: FilterLeaf) -> str:
        path = FieldPath.parse(leaf.field)
        if not path.is_valid:
            raise FilterValidationError(f"Invalid field name {leaf.field!r}")

        schema = state.schema
        if schema is not None and path.field != ID_FIELD and not schema.has_field(path.field):
            state.warn(
                f"Unknown field '{path.field}' in table '{schema.table_id}'; "
                "condition matches no records"
            )
            return ALWAYS_FALSE

        field_type = self._field_type(path, schema)
        comparison = leaf.comparison
        raw_name = (leaf.raw_comparison or comparison.value).lower()

        if comparison is Comparison.UNRECOGNIZED:
            if self.strict_operators:
                raise FilterValidationError(
                    f"Unsupported comparison '{leaf.raw_comparison}' for field '{path}'"
                )
            state.warn(
                f"Unsupported comparison '{leaf.raw_comparison}' for field '{path}'; "
                "falling back to equality"
            )
        else:
            mismatch = check_operator(str(path), raw_name, field_type)
            if mismatch:
                state.warnings.append(mismatch)

        handler = self._handlers[comparison]
        return handler(state, path, field_type, leaf.value, comparison)

    # ------------------------------------------------------------------
    # Accessor helpers
    # ------------------------------------------------------------------

    def _is_date_type(self, field_type: Optional[str]) -> bool:
        return isinstance(self.registry.resolve(field_type), DateMultiformatAccessor)

    def _date_accessor(self) -> DateMultiformatAccessor:
        return self.registry.get("date_multiformat")

    def _array_accessor(self) -> ArrayContainmentAccessor:
        return self.registry.get("array_containment")

    def _scalar_sql(self, path: FieldPath, field_type: Optional[str]) -> str:
        """Scalar accessor for equality and membership comparisons."""
        if self._is_date_type(field_type):
            return self._date_accessor().extract_sql(path)
        return self.registry.get("select_or_status").extract_sql(path)

    @staticmethod
    def _require_date(value: Any, path: FieldPath) -> str:
        day = date_prefix(value)
        if day is None:
            raise FilterValidationError(
                f"Field '{path}' expects a date (YYYY-MM-DD), got {value!r}"
            )
        return day

    # ------------------------------------------------------------------
    # Equality
    # ------------------------------------------------------------------

    def _compile_is(self, state, path, field_type, value, comparison=None) -> str:
        if isinstance(value, ValueList):
            return self._compile_is_any_of(state, path, field_type, value)
        if isinstance(value, Scalar) and value.value is None:
            return self._compile_is_empty(state, path, field_type, value)

        is_date = self._is_date_type(field_type)
        expr = self._scalar_sql(path, field_type)

        if isinstance(value, Range):
            return self._compile_range(state, path, expr, value, is_date)
        if isinstance(value, Number):
            return (
                f"({_numeric_guard(expr)} AND CAST({expr} AS REAL) = "
                f"{state.bind(value.value)})"
            )
        if isinstance(value.value, bool):
            return f"{expr} = {state.bind(int(value.value))}"
        if is_date:
            return f"{expr} = {state.bind(self._require_date(value.value, path))}"
        return f"CAST({expr} AS TEXT) = {state.bind(value.value)}"

    def _compile_range(self, state, path, expr, value: Range, is_date: bool) -> str:
        low, high = value.min, value.max
        if is_date:
            low = self._require_date(low, path) if low is not None else None
            high = self._require_date(high, path) if high is not None else None
            operand = expr
        elif _to_number(low) is not None or _to_number(high) is not None:
            low = _to_number(low) if low is not None else None
            high = _to_number(high) if high is not None else None
            operand = f"CAST({expr} AS REAL)"
            guard = _numeric_guard(expr)
            bounds = self._range_bounds(state, operand, low, high)
            return f"({guard} AND {bounds})"
        else:
            operand = f"CAST({expr} AS TEXT)"
        return self._range_bounds(state, operand, low, high)

    @staticmethod
    def _range_bounds(state, operand: str, low: Any, high: Any) -> str:
        if low is not None and high is not None:
            return f"{operand} BETWEEN {state.bind(low)} AND {state.bind(high)}"
        if low is not None:
            return f"{operand} >= {state.bind(low)}"
        if high is not None:
            return f"{operand} <= {state.bind(high)}"
        return f"{operand} IS NOT NULL"

    def _compile_is_not(self, state, path, field_type, value, comparison=None) -> str:
        if isinstance(value, ValueList):
            return self._compile_is_none_of(state, path, field_type, value)
        if isinstance(value, Scalar) and value.value is None:
            return self._compile_is_not_empty(state, path, field_type, value)
        expr = self._scalar_sql(path, field_type)
        positive = self._compile_is(state, path, field_type, value)
        return f"({expr} IS NULL OR NOT COALESCE({positive}, 0))"

    def _compile_unrecognized(self, state, path, field_type, value, comparison=None) -> str:
        return self._compile_is(state, path, field_type, value)

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _contains_expr(self, path: FieldPath, field_type: Optional[str]) -> str:
        accessor = self.registry.resolve(field_type)
        if isinstance(accessor, ArrayContainmentAccessor):
            # Search the serialized array
            return accessor.raw_sql(path)
        if isinstance(accessor, DateMultiformatAccessor):
            return accessor.extract_sql(path)
        return self.registry.get("select_or_status").extract_sql(path)

    def _compile_contains(self, state, path, field_type, value, comparison=None) -> str:
        expr = self._contains_expr(path, field_type)
        needle = _as_text(getattr(value, "value", None))
        if needle is None:
            needle = ""
        return f"instr(lower(CAST({expr} AS TEXT)), lower({state.bind(needle)})) > 0"

    def _compile_not_contains(self, state, path, field_type, value, comparison=None) -> str:
        expr = self._contains_expr(path, field_type)
        needle = _as_text(getattr(value, "value", None))
        if needle is None:
            needle = ""
        return (
            f"({expr} IS NULL OR "
            f"instr(lower(CAST({expr} AS TEXT)), lower({state.bind(needle)})) = 0)"
        )

    # ------------------------------------------------------------------
    # Numeric
    # ------------------------------------------------------------------

    _NUMERIC_OPERATORS = {
        Comparison.IS_GREATER_THAN: ">",
        Comparison.IS_LESS_THAN: "<",
        Comparison.IS_EQUAL_OR_GREATER_THAN: ">=",
        Comparison.IS_EQUAL_OR_LESS_THAN: "<=",
    }

    def _compile_numeric(self, state, path, field_type, value, comparison) -> str:
        operator = self._NUMERIC_OPERATORS[comparison]
        raw = getattr(value, "value", None)
        number = _to_number(raw)

        if number is None:
            # Dates compared with numeric operators compare by day
            day = date_prefix(raw)
            if day is None:
                raise FilterValidationError(
                    f"Comparison '{comparison.value}' on field '{path}' expects a "
                    f"number, got {raw!r}"
                )
            expr = self._date_accessor().extract_sql(path)
            return f"{expr} {operator} {state.bind(day)}"

        expr = self._scalar_sql(path, field_type)
        return (
            f"({_numeric_guard(expr)} AND CAST({expr} AS REAL) {operator} "
            f"{state.bind(number)})"
        )

    # ------------------------------------------------------------------
    # Emptiness
    # ------------------------------------------------------------------

    def _empty_sql(self, path: FieldPath, field_type: Optional[str]) -> str:
        raw_path = path.json_path(*((path.sub,) if path.sub else ()))
        # Date sub-fields address a side of the range; emptiness is judged on
        # the resolved date
        accessor = self.registry.resolve(field_type)
        if isinstance(accessor, DateMultiformatAccessor):
            raw_path = path.json_path()
        kind = f"json_type({PAYLOAD_COLUMN}, {raw_path})"
        raw = f"json_extract({PAYLOAD_COLUMN}, {raw_path})"
        conditions = [
            f"{kind} IS NULL",
            f"{kind} = 'null'",
            f"({kind} = 'text' AND {raw} = '')",
            f"({kind} = 'array' AND json_array_length({PAYLOAD_COLUMN}, {raw_path}) = 0)",
            f"({kind} = 'object' AND {raw} = '{{}}')",
        ]
        if isinstance(accessor, DateMultiformatAccessor) or accessor.strategy == "select_or_status":
            value = accessor.extract_sql(path)
            conditions.append(f"{value} IS NULL")
            conditions.append(f"CAST({value} AS TEXT) = ''")
        return "(" + " OR ".join(conditions) + ")"

    def _compile_is_empty(self, state, path, field_type, value=None, comparison=None) -> str:
        return self._empty_sql(path, field_type)

    def _compile_is_not_empty(self, state, path, field_type, value=None, comparison=None) -> str:
        return f"NOT COALESCE({self._empty_sql(path, field_type)}, 0)"

    # ------------------------------------------------------------------
    # Array membership
    # ------------------------------------------------------------------

    def _values(self, value: FilterValue) -> List[Any]:
        if isinstance(value, ValueList):
            return _distinct(value.values)
        raw = getattr(value, "value", None)
        return _distinct([raw]) if raw is not None else []

    def _compile_has_any_of(self, state, path, field_type, value, comparison=None) -> str:
        values = self._values(value)
        if not values:
            return ALWAYS_FALSE
        array = self._array_accessor()
        alias = state.alias()
        element = array.element_value_sql(alias)
        return (
            f"EXISTS (SELECT 1 FROM {array.elements_sql(path, alias)} "
            f"WHERE {element} IN ({state.bind_all(values)}))"
        )

    def _compile_has_all_of(self, state, path, field_type, value, comparison=None) -> str:
        values = self._values(value)
        if not values:
            return ALWAYS_TRUE
        array = self._array_accessor()
        alias = state.alias()
        element = array.element_value_sql(alias)
        return (
            f"(SELECT COUNT(DISTINCT {element}) FROM {array.elements_sql(path, alias)} "
            f"WHERE {element} IN ({state.bind_all(values)})) = {len(values)}"
        )

    def _compile_has_none_of(self, state, path, field_type, value, comparison=None) -> str:
        values = self._values(value)
        if not values:
            return ALWAYS_TRUE
        array = self._array_accessor()
        alias = state.alias()
        element = array.element_value_sql(alias)
        return (
            f"NOT EXISTS (SELECT 1 FROM {array.elements_sql(path, alias)} "
            f"WHERE {element} IN ({state.bind_all(values)}))"
        )

    def _compile_is_exactly(self, state, path, field_type, value, comparison=None) -> str:
        values = self._values(value)
        array = self._array_accessor()
        kind = array.type_sql(path)
        if not values:
            return (
                f"({kind} IS NULL OR {kind} = 'null' OR "
                f"({kind} = 'array' AND json_array_length({array.raw_sql(path)}) = 0))"
            )

        placeholders = state.bind_all(values)
        present = state.alias()
        extra = state.alias()
        present_value = array.element_value_sql(present)
        extra_value = array.element_value_sql(extra)
        return (
            f"({kind} = 'array' AND "
            f"(SELECT COUNT(DISTINCT {present_value}) FROM {array.elements_sql(path, present)} "
            f"WHERE {present_value} IN ({placeholders})) = {len(values)} AND "
            f"NOT EXISTS (SELECT 1 FROM {array.elements_sql(path, extra)} "
            f"WHERE {extra_value} IS NULL OR {extra_value} NOT IN ({placeholders})))"
        )

    # ------------------------------------------------------------------
    # Scalar membership
    # ------------------------------------------------------------------

    def _member_values(
        self, value: FilterValue, path: FieldPath, field_type: Optional[str]
    ) -> List[Any]:
        values = self._values(value)
        if self._is_date_type(field_type):
            # Date accessors yield YYYY-MM-DD
            return _distinct([self._require_date(v, path) for v in values])
        return values

    def _compile_is_any_of(self, state, path, field_type, value, comparison=None) -> str:
        values = self._member_values(value, path, field_type)
        if not values:
            return ALWAYS_FALSE
        expr = self._scalar_sql(path, field_type)
        return f"CAST({expr} AS TEXT) IN ({state.bind_all(values)})"

    def _compile_is_none_of(self, state, path, field_type, value, comparison=None) -> str:
        values = self._member_values(value, path, field_type)
        if not values:
            return ALWAYS_TRUE
        expr = self._scalar_sql(path, field_type)
        return (
            f"({expr} IS NULL OR CAST({expr} AS TEXT) NOT IN ({state.bind_all(values)}))"
        )

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    _DATE_OPERATORS = {
        Comparison.IS_BEFORE: "<",
        Comparison.IS_AFTER: ">",
        Comparison.IS_ON_OR_BEFORE: "<=",
        Comparison.IS_ON_OR_AFTER: ">=",
    }

    def _compile_date(self, state, path, field_type, value, comparison) -> str:
        day = self._require_date(getattr(value, "value", None), path)
        expr = self._date_accessor().extract_sql(path)
        return f"{expr} {self._DATE_OPERATORS[comparison]} {state.bind(day)}"

    def _compile_is_overdue(self, state, path, field_type, value=None, comparison=None) -> str:
        return f"{self._date_accessor().overdue_sql(path)} = 1"

    def _compile_is_not_overdue(self, state, path, field_type, value=None, comparison=None) -> str:
        return f"COALESCE({self._date_accessor().overdue_sql(path)}, 0) = 0"

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _object_exists(self, path: FieldPath, alias: str, test: str) -> str:
        array = self._array_accessor()
        return (
            f"EXISTS (SELECT 1 FROM {array.elements_sql(path, alias)} "
            f"WHERE {alias}.type = 'object' AND {test})"
        )

    def _compile_file_name_contains(self, state, path, field_type, value, comparison=None) -> str:
        needle = _as_text(getattr(value, "value", None)) or ""
        alias = state.alias()
        name = self._array_accessor().element_key_sql(alias, "name")
        return self._object_exists(
            path, alias, f"instr(lower({name}), lower({state.bind(needle)})) > 0"
        )

    def _compile_file_type_is(self, state, path, field_type, value, comparison=None) -> str:
        alias = state.alias()
        kind = self._array_accessor().element_key_sql(alias, "type")
        placeholder = state.bind(_as_text(getattr(value, "value", None)))
        return self._object_exists(path, alias, f"{kind} = {placeholder}")


def compile_filter(
    expression: Any,
    schema: Optional["TableSchema"] = None,
    offset: int = 0,
    strict_operators: bool = False,
) -> CompiledFilter:
    """Compile a filter with a default compiler.

    See :meth:`FilterCompiler.compile`.
    """
    return FilterCompiler(strict_operators=strict_operators).compile(
        expression, schema=schema, offset=offset
    )
