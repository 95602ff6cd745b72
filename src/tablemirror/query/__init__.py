"""Filter expressions, compilation and query building.

Key components:
- parse_filter / FilterGroup / FilterLeaf: decoded filter expressions
- FilterCompiler: expression tree to parameterized SQLite predicate
- QueryBuilder: chainable filter/sort/limit/offset/project over one scope
- DateModeResolver: relative date modes to concrete dates
"""

from tablemirror.query.builder import QueryBuilder
from tablemirror.query.compiler import CompiledFilter, FilterCompiler, compile_filter
from tablemirror.query.dates import DateModeResolver
from tablemirror.query.expression import (
    Comparison,
    FilterGroup,
    FilterLeaf,
    FilterValidationError,
    LogicalOperator,
    Number,
    Range,
    Scalar,
    ValueList,
    parse_filter,
)

__all__ = [
    "QueryBuilder",
    "FilterCompiler",
    "CompiledFilter",
    "compile_filter",
    "DateModeResolver",
    "Comparison",
    "FilterGroup",
    "FilterLeaf",
    "FilterValidationError",
    "LogicalOperator",
    "Scalar",
    "Number",
    "ValueList",
    "Range",
    "parse_filter",
]
