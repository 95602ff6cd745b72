"""tablemirror: Local SQLite mirror and query engine for remote tabular data."""

__version__ = "0.1.0"

# The cache package must be initialized before storage, which imports from it
from tablemirror.cache import (
    CacheConfig,
    CacheCoordinator,
    CacheError,
    HitMissTracker,
    request_scope,
)
from tablemirror.query import DateModeResolver, FilterCompiler, QueryBuilder, parse_filter
from tablemirror.schema import TableSchema
from tablemirror.storage import DocumentStore, ResourceCategory, Scope

__all__ = [
    "CacheCoordinator",
    "CacheConfig",
    "CacheError",
    "HitMissTracker",
    "request_scope",
    "DocumentStore",
    "ResourceCategory",
    "Scope",
    "QueryBuilder",
    "FilterCompiler",
    "DateModeResolver",
    "parse_filter",
    "TableSchema",
    "__version__",
]
