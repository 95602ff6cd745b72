"""Cache coordinator: read-through refresh, write-through and invalidation.

The coordinator sits between callers and the document store. Reads make
sure the scope is fresh first, refetching it from the remote source when its
TTL window has closed. Writes made against the remote source are mirrored
row by row. Invalidation cascades down the resource hierarchy
(solutions → table lists → records).
"""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from filelock import FileLock, Timeout

from tablemirror.cache.config import CacheConfig, get_global_config
from tablemirror.cache.tracker import HitMissTracker, get_tracker
from tablemirror.query.builder import QueryBuilder
from tablemirror.query.compiler import FilterCompiler
from tablemirror.remote import fetch_all_records
from tablemirror.schema import TableSchema
from tablemirror.storage.backend import DocumentStore
from tablemirror.storage.categories import ResourceCategory, Scope, TTLClass
from tablemirror.utils import ID_FIELD, sanitize_identifier, timestamp_to_iso

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CacheLockError(CacheError):
    """Raised when unable to acquire a scope's refresh lock."""

    pass


class ScopeUnavailableError(CacheError):
    """Raised when a scope is not cached and cannot be fetched."""

    pass


class UnknownResourceError(CacheError):
    """Raised when a refresh names a resource that is not cached."""

    pass


# Resources accepted by refresh()
REFRESHABLE_RESOURCES = ("solutions", "tables", "records", "members", "teams")


class CacheCoordinator:
    """Keeps the local mirror in step with the remote source.

    Args:
        remote: Remote source (schema provider, record fetcher and metadata
            provider). Without one, only already-cached scopes can be read.
        config: Cache configuration (uses global if None)
        store: Document store (opened at ``config.db_path`` if None)
        tracker: Hit/miss tracker (context-bound default if None)
        clock: Time source for a store created here

    Examples:
        >>> coordinator = CacheCoordinator(remote=api, config=CacheConfig(cache_dir=tmp))
        >>> coordinator.query("tbl_1").where(status="Active").execute()
        [{'id': 'rec_1', 'status': {'value': 'Active'}}]
    """

    def __init__(
        self,
        remote: Any = None,
        config: Optional[CacheConfig] = None,
        store: Optional[DocumentStore] = None,
        tracker: Optional[HitMissTracker] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.remote = remote
        self.config = config or get_global_config()
        self.store = store or DocumentStore(self.config.db_path, clock=clock)
        self.tracker = tracker or get_tracker()
        self.compiler = FilterCompiler(strict_operators=self.config.strict_operators)

        self.lock_dir = self.config.lock_dir
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise CacheError(
                f"Cannot create cache lock directory at {self.lock_dir}: {e}"
            ) from e

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "CacheCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def ttl_for(self, category: ResourceCategory) -> int:
        """TTL in seconds for rows of a category."""
        if category.ttl_class is TTLClass.RECORDS:
            return self.config.records_ttl
        return self.config.metadata_ttl

    def _get_lock_path(self, scope: Scope) -> Path:
        name = sanitize_identifier(str(scope).replace(":", "_"))
        return self.lock_dir / f"{name}.lock"

    def _require_remote(self, scope: Scope) -> Any:
        if self.remote is None:
            raise ScopeUnavailableError(
                f"Scope {scope} is not cached and no remote source is configured"
            )
        return self.remote

    @staticmethod
    def _require_parent(scope: Scope, what: str) -> str:
        if scope.parent is None:
            raise CacheError(f"Scope {scope} needs a {what} id")
        return scope.parent

    # ------------------------------------------------------------------
    # Read-through
    # ------------------------------------------------------------------

    def is_fresh(self, scope: Scope) -> bool:
        """Check whether a scope is populated and inside its TTL window."""
        return self.store.is_scope_valid(scope)

    def ensure_fresh(self, scope: Scope) -> bool:
        """Make sure a scope is fresh, refetching it if needed.

        Args:
            scope: Scope to check

        Returns:
            True on a cache hit, False if the scope had to be refreshed

        Raises:
            ScopeUnavailableError: If the scope is stale and there is no remote
            CacheLockError: If the refresh lock cannot be acquired in time
            Exception: Remote and store failures propagate unchanged, and
                nothing from a failed refresh is committed
        """
        if self.is_fresh(scope):
            self.tracker.record_hit()
            logger.debug(f"HIT {scope}")
            return True

        self.tracker.record_miss()
        logger.debug(f"MISS {scope}")
        self._require_remote(scope)

        lock_path = self._get_lock_path(scope)
        try:
            with FileLock(lock_path, timeout=self.config.lock_timeout):
                # Another worker may have refreshed while we waited
                if not self.is_fresh(scope):
                    self._refresh_locked(scope)
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring lock for {scope} after {self.config.lock_timeout} seconds"
            ) from e
        return False

    def _refresh_locked(self, scope: Scope) -> int:
        """Refetch a scope from the remote source and replace it locally."""
        remote = self._require_remote(scope)
        category = scope.category
        ttl = self.ttl_for(category)

        if category is ResourceCategory.RECORDS:
            table_id = self._require_parent(scope, "table")
            structure = remote.fetch_schema(table_id)
            schema = TableSchema.from_structure(structure, table_id)
            records = fetch_all_records(remote, table_id, self.config.page_size)
            with self.store.transaction():
                self._store_schema(schema, structure)
                return self.store.bulk_replace(scope, records, ttl)

        if category is ResourceCategory.SOLUTIONS:
            payloads = remote.list_solutions()
        elif category is ResourceCategory.TABLES:
            payloads = remote.list_tables(scope.parent)
        elif category is ResourceCategory.MEMBERS:
            payloads = remote.list_members()
        elif category is ResourceCategory.TEAMS:
            payloads = remote.list_teams()
        elif category is ResourceCategory.VIEWS:
            payloads = remote.list_views(self._require_parent(scope, "table"))
        elif category is ResourceCategory.DELETED_RECORDS:
            payloads = remote.list_deleted_records(self._require_parent(scope, "solution"))
        else:
            raise CacheError(
                f"Scope {scope} cannot be refreshed as a whole; use get_schema()"
            )
        return self.store.bulk_replace(scope, payloads or [], ttl)

    def refresh_scope(self, scope: Scope) -> int:
        """Unconditionally refetch a scope. Returns rows written."""
        self._require_remote(scope)
        try:
            with FileLock(self._get_lock_path(scope), timeout=self.config.lock_timeout):
                return self._refresh_locked(scope)
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring lock for {scope} after {self.config.lock_timeout} seconds"
            ) from e

    # ------------------------------------------------------------------
    # Schemas
    # ------------------------------------------------------------------

    def _store_schema(self, schema: TableSchema, structure: Dict[str, Any]) -> None:
        payload = dict(structure)
        payload[ID_FIELD] = schema.table_id
        self.store.upsert(
            Scope.schemas(), schema.table_id, payload, self.ttl_for(ResourceCategory.SCHEMAS)
        )

    def _cached_schema(self, table_id: str) -> Optional[TableSchema]:
        payload = self.store.get_one(Scope.schemas(), table_id)
        if payload is None:
            return None
        return TableSchema.from_structure(payload, table_id)

    def _fetch_schema(self, table_id: str) -> TableSchema:
        remote = self._require_remote(Scope.schemas())
        structure = remote.fetch_schema(table_id)
        schema = TableSchema.from_structure(structure, table_id)
        self._store_schema(schema, structure)
        return schema

    def get_schema(self, table_id: str) -> TableSchema:
        """Return a table's schema, fetching it on a miss.

        Raises:
            ScopeUnavailableError: If not cached and there is no remote
        """
        schema = self._cached_schema(table_id)
        if schema is not None:
            self.tracker.record_hit()
            logger.debug(f"HIT schema {table_id}")
            return schema
        self.tracker.record_miss()
        logger.debug(f"MISS schema {table_id}")
        return self._fetch_schema(table_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, table_id: str) -> QueryBuilder:
        """Make sure a table's records are fresh and return a query builder.

        Examples:
            >>> coordinator.query("tbl_1").filter(expr).sort("due", "desc").limit(5).execute()
        """
        scope = Scope.records(table_id)
        self.ensure_fresh(scope)
        schema = self._cached_schema(table_id)
        if schema is None and self.remote is not None:
            schema = self._fetch_schema(table_id)
        return QueryBuilder(self.store, scope, schema=schema, compiler=self.compiler)

    def query_scope(self, scope: Scope) -> QueryBuilder:
        """Query builder over any scope (solutions, members, table lists, ...)."""
        if scope.category is ResourceCategory.RECORDS and scope.parent is not None:
            return self.query(scope.parent)
        self.ensure_fresh(scope)
        return QueryBuilder(self.store, scope, compiler=self.compiler)

    def get_all(self, scope: Scope) -> List[Dict[str, Any]]:
        """Every live row of a scope, refreshing it first if needed."""
        return self.query_scope(scope).execute()

    def get_one(self, scope: Scope, key: str) -> Optional[Dict[str, Any]]:
        """One row of a scope, refreshing the scope first if needed."""
        self.ensure_fresh(scope)
        return self.store.get_one(scope, key)

    # ------------------------------------------------------------------
    # Write-through
    # ------------------------------------------------------------------

    def upsert_one(self, scope: Scope, key: str, payload: Dict[str, Any]) -> None:
        """Mirror a remote create/update into the cache without invalidating."""
        self.store.upsert(scope, key, payload, self.ttl_for(scope.category))
        logger.debug(f"WRITE-THROUGH {scope} key={key}")

    def delete_one(self, scope: Scope, key: str) -> bool:
        """Mirror a remote delete. Returns True if a cached row was removed."""
        removed = self.store.delete_one(scope, key)
        logger.debug(f"DELETE {scope} key={key} removed={removed}")
        return removed

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, scope: Scope) -> int:
        """Drop a scope and everything that depends on it.

        - solutions: also every table list, and with it every record cache
        - a solution's table list: also the records of each table listed
        - all table lists: also every record cache
        - schemas: also every record cache

        Returns:
            Number of rows deleted
        """
        category = scope.category
        with self.store.transaction():
            if category is ResourceCategory.SOLUTIONS:
                deleted = self.store.delete_scope(Scope(ResourceCategory.SOLUTIONS))
                return deleted + self.invalidate(Scope.tables())

            if category is ResourceCategory.TABLES:
                if scope.parent is None:
                    deleted = self.store.delete_scope(Scope(ResourceCategory.RECORDS))
                else:
                    deleted = 0
                    for table_id in self.store.list_keys(scope, include_expired=True):
                        deleted += self.store.delete_scope(Scope.records(table_id))
                return deleted + self.store.delete_scope(scope)

            if category is ResourceCategory.SCHEMAS:
                deleted = self.store.delete_scope(Scope(ResourceCategory.RECORDS))
                return deleted + self.store.delete_scope(Scope.schemas())

            return self.store.delete_scope(scope)

    def invalidate_schema(self, table_id: str) -> int:
        """Structural change: drop a table's schema and its records."""
        with self.store.transaction():
            deleted = self.store.delete_scope(Scope.records(table_id))
            if self.store.delete_one(Scope.schemas(), table_id):
                deleted += 1
        logger.info(f"INVALIDATED schema {table_id}")
        return deleted

    def invalidate_solution(self, solution_id: str) -> int:
        """Drop one solution's table list and the records of its tables."""
        return self.invalidate(Scope.tables(solution_id))

    def refresh(
        self,
        resource: str,
        table_id: Optional[str] = None,
        solution_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Invalidate a cached resource by name so the next read refetches it.

        Args:
            resource: One of 'solutions', 'tables', 'records', 'members', 'teams'
            table_id: Required for 'records'
            solution_id: Limits 'tables' to one solution

        Returns:
            Dict with 'success', 'message' and 'deleted'

        Raises:
            UnknownResourceError: If resource is not one of the above
            ValueError: If 'records' is requested without a table_id
        """
        if resource == "solutions":
            deleted = self.invalidate(Scope(ResourceCategory.SOLUTIONS))
            message = "Solutions cache invalidated"
        elif resource == "tables":
            deleted = self.invalidate(Scope.tables(solution_id))
            suffix = f" for solution {solution_id}" if solution_id else ""
            message = f"Tables cache invalidated{suffix}"
        elif resource == "records":
            if not table_id:
                raise ValueError("table_id required for records refresh")
            deleted = self.invalidate(Scope.records(table_id))
            message = f"Records cache invalidated for table {table_id}"
        elif resource == "members":
            deleted = self.invalidate(Scope(ResourceCategory.MEMBERS))
            message = "Members cache invalidated"
        elif resource == "teams":
            deleted = self.invalidate(Scope(ResourceCategory.TEAMS))
            message = "Teams cache invalidated"
        else:
            raise UnknownResourceError(
                f"Unknown resource: '{resource}'. "
                f"Available: {', '.join(REFRESHABLE_RESOURCES)}"
            )
        return {"success": True, "message": message, "deleted": deleted}

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        """Summary of the mirror: per-category counts and next expiries."""
        now = self.store.clock()
        return {
            "timestamp": timestamp_to_iso(now),
            "db_path": str(self.store.db_path),
            "records_ttl": self.config.records_ttl,
            "metadata_ttl": self.config.metadata_ttl,
            "categories": self.store.status(),
            "requests": self.tracker.snapshot().as_dict(),
        }

    def purge_expired(self) -> int:
        """Delete expired rows from the store."""
        return self.store.purge_expired()
