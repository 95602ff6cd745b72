"""Chainable query builder over one cached scope.

Usage::

    results = (
        QueryBuilder(store, Scope.records("tbl_1"), schema)
        .filter({"field": "status", "comparison": "is", "value": "Active"})
        .where(priority={"gte": 3})
        .sort("due_date", "desc")
        .limit(10)
        .project(["title", "status"])
        .execute()
    )

The builder does not check freshness; ask the cache coordinator for that
before executing (``CacheCoordinator.query`` does both).
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from tablemirror.query.compiler import CompiledFilter, FilterCompiler
from tablemirror.query.expression import (
    FilterExpression,
    FilterGroup,
    LogicalOperator,
    parse_filter,
)
from tablemirror.storage.backend import RESERVED_PARAMS
from tablemirror.storage.categories import Scope
from tablemirror.utils import ID_FIELD, loads_json

if TYPE_CHECKING:
    import pandas as pd

    from tablemirror.schema import TableSchema
    from tablemirror.storage.backend import DocumentStore

logger = logging.getLogger(__name__)

SORT_DIRECTIONS = ("ASC", "DESC")

# Short operator names accepted by where()
WHERE_OPERATORS = {
    "eq": "is",
    "ne": "is_not",
    "not_eq": "is_not",
    "gt": "is_greater_than",
    "gte": "is_equal_or_greater_than",
    "lt": "is_less_than",
    "lte": "is_equal_or_less_than",
    "in": "is_any_of",
    "not_in": "is_none_of",
    "between": "is",
    "is_null": "is_empty",
    "is_not_null": "is_not_empty",
}


def _where_leaf(field: str, condition: Any) -> Dict[str, Any]:
    """Translate one where() keyword into a raw filter leaf."""
    if isinstance(condition, dict) and len(condition) == 1:
        operator, value = next(iter(condition.items()))
        operator = str(operator).lower()
        if operator == "between":
            if isinstance(value, (list, tuple)) and len(value) == 2:
                value = {"min": value[0], "max": value[1]}
        comparison = WHERE_OPERATORS.get(operator, operator)
        return {"field": field, "comparison": comparison, "value": value}
    if isinstance(condition, (list, tuple)):
        return {"field": field, "comparison": "is_any_of", "value": list(condition)}
    return {"field": field, "comparison": "is", "value": condition}


class QueryBuilder:
    """Build and run a query against one scope of the document store.

    Args:
        store: Document store to read from
        scope: Scope to query (e.g. ``Scope.records(table_id)``)
        schema: Table schema for accessor selection; without one every
            field is read as plain text and unknown fields are not detected
        compiler: Filter compiler (defaults to a non-strict one)
    """

    def __init__(
        self,
        store: "DocumentStore",
        scope: Scope,
        schema: Optional["TableSchema"] = None,
        compiler: Optional[FilterCompiler] = None,
    ):
        self.store = store
        self.scope = scope
        self.schema = schema
        self.compiler = compiler or FilterCompiler()
        self._filters: List[FilterExpression] = []
        self._sorts: List[Tuple[str, str]] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._fields: Optional[List[str]] = None
        self._warnings: Tuple[str, ...] = ()

    def filter(self, expression: Any) -> "QueryBuilder":
        """Add a filter expression; repeated calls are combined with AND.

        Raises:
            FilterValidationError: If the expression is malformed
        """
        parsed = parse_filter(expression)
        if parsed is not None:
            self._filters.append(parsed)
        return self

    def where(self, **conditions: Any) -> "QueryBuilder":
        """Add simple conditions, one per keyword.

        Examples:
            >>> builder.where(status="Active")
            >>> builder.where(revenue={"gte": 50000}, tags={"has_any_of": ["urgent"]})
        """
        for field, condition in conditions.items():
            self.filter(_where_leaf(field, condition))
        return self

    def sort(self, field: str, direction: str = "asc") -> "QueryBuilder":
        """Add a sort key. Unknown directions sort ascending."""
        normalized = str(direction or "").upper()
        if normalized not in SORT_DIRECTIONS:
            logger.debug(f"Unknown sort direction {direction!r}; using ASC")
            normalized = "ASC"
        self._sorts.append((field, normalized))
        return self

    def limit(self, n: Optional[int]) -> "QueryBuilder":
        if n is not None and int(n) < 0:
            raise ValueError(f"limit must be non-negative, got {n}")
        self._limit = None if n is None else int(n)
        return self

    def offset(self, n: Optional[int]) -> "QueryBuilder":
        if n is not None and int(n) < 0:
            raise ValueError(f"offset must be non-negative, got {n}")
        self._offset = None if n is None or int(n) == 0 else int(n)
        return self

    def project(self, fields: Optional[Sequence[str]]) -> "QueryBuilder":
        """Restrict returned fields; the id field is always kept."""
        self._fields = list(fields) if fields else None
        return self

    @property
    def warnings(self) -> Tuple[str, ...]:
        """Diagnostics from the most recent compile."""
        return self._warnings

    def compile(self) -> CompiledFilter:
        """Compile the accumulated filters for this scope's statement."""
        if not self._filters:
            expression = None
        elif len(self._filters) == 1:
            expression = self._filters[0]
        else:
            expression = FilterGroup(LogicalOperator.AND, tuple(self._filters))
        compiled = self.compiler.compile(
            expression, schema=self.schema, offset=RESERVED_PARAMS
        )
        self._warnings = compiled.warnings
        return compiled

    def _order_clause(self) -> str:
        if not self._sorts:
            return ""
        terms = [
            f"{self.compiler.order_expression(field, self.schema)} {direction}"
            for field, direction in self._sorts
        ]
        # Stable order between rows with equal sort values
        terms.append("key ASC")
        return ", ".join(terms)

    def _project(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self._fields is None:
            return payload
        wanted = [ID_FIELD] + [f.partition(".")[0] for f in self._fields if f]
        return {name: payload[name] for name in dict.fromkeys(wanted) if name in payload}

    def execute(self) -> List[Dict[str, Any]]:
        """Run the query and return decoded (and projected) payloads.

        Raises:
            FilterValidationError: If a filter or sort field is invalid
            BackingStoreError: On SQLite failure
        """
        compiled = self.compile()
        rows = self.store.select(
            self.scope,
            predicate=compiled.sql,
            params=compiled.params,
            order_by=self._order_clause(),
            limit=self._limit,
            offset=self._offset,
        )
        logger.debug(f"Query on {self.scope} returned {len(rows)} rows")
        return [self._project(loads_json(row)) for row in rows]

    def count(self) -> int:
        """Count matching rows (ignores sort, limit and offset)."""
        compiled = self.compile()
        return self.store.count(self.scope, predicate=compiled.sql, params=compiled.params)

    def first(self) -> Optional[Dict[str, Any]]:
        """Return the first matching payload, or None."""
        saved = self._limit
        try:
            self._limit = 1
            results = self.execute()
        finally:
            self._limit = saved
        return results[0] if results else None

    def to_frame(self) -> "pd.DataFrame":
        """Run the query and return the results as a pandas DataFrame."""
        import pandas as pd

        records = self.execute()
        frame = pd.DataFrame.from_records(records)
        if self._fields is not None:
            ordered = [ID_FIELD] + [f for f in self._fields if f in frame.columns and f != ID_FIELD]
            frame = frame.reindex(columns=[c for c in ordered if c in frame.columns])
        return frame

    def __iter__(self):
        return iter(self.execute())

    def __repr__(self) -> str:
        return (
            f"QueryBuilder(scope={self.scope}, filters={len(self._filters)}, "
            f"sorts={self._sorts}, limit={self._limit}, offset={self._offset})"
        )
