"""SQLite document store for the local mirror.

Every resource category lives in its own table::

    cache_<category>(parent TEXT, key TEXT, payload TEXT,
                     cached_at REAL, expires_at REAL, UNIQUE(parent, key))

plus a ``cache_scopes`` table recording which scopes were fully populated and
when they expire. Payloads are JSON documents queried with SQLite's JSON1
functions.

Parameters in generated SQL are numbered (``?NNN``). Statements issued by
:meth:`DocumentStore.select` and :meth:`DocumentStore.count` reserve ``?1``
(the current time) and ``?2`` (the scope parent); caller predicates must be
compiled with an offset of :data:`RESERVED_PARAMS`.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from tablemirror.cache.validation import get_ttl_remaining, is_ttl_valid, ttl_window
from tablemirror.storage.categories import ResourceCategory, Scope
from tablemirror.utils import ID_FIELD, dumps_json, loads_json, now_timestamp

logger = logging.getLogger(__name__)

# Errors raised by the store are sqlite3's own and are never wrapped
BackingStoreError = sqlite3.Error

# ?1 = now, ?2 = scope parent (NULL for a whole category)
RESERVED_PARAMS = 2

_SCOPE_FILTER = "expires_at > ?1 AND (?2 IS NULL OR parent = ?2)"


@dataclass(frozen=True)
class ScopeStamp:
    """Record that a scope was fully populated.

    Attributes:
        category: Resource category
        parent: Parent key ('' for a whole category)
        row_count: Rows written by the bulk replace
        cached_at: When the scope was populated
        expires_at: When the scope stops being valid
    """

    category: ResourceCategory
    parent: str
    row_count: int
    cached_at: float
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return is_ttl_valid(self.expires_at, now)

    def ttl_remaining(self, now: float) -> Optional[float]:
        return get_ttl_remaining(self.expires_at, now)


class DocumentStore:
    """Keyed JSON document store with per-row expiry.

    Args:
        db_path: SQLite database file, or ":memory:"
        clock: Callable returning the current Unix time (injectable for tests)

    Examples:
        >>> store = DocumentStore(":memory:")
        >>> store.bulk_replace(Scope.records("tbl"), [{"id": "r1"}], ttl=60)
        1
        >>> store.count(Scope.records("tbl"))
        1
    """

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        clock: Optional[Callable[[], float]] = None,
    ):
        self._lock = threading.RLock()
        self.clock = clock or now_timestamp

        db_path = str(db_path)
        if db_path != ":memory:":
            Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path

        # Autocommit mode; transactions are opened explicitly
        self._conn = sqlite3.connect(
            db_path, check_same_thread=False, isolation_level=None
        )
        self._apply_schema()

    def _apply_schema(self) -> None:
        statements = []
        for category in ResourceCategory:
            table = category.table_name
            statements.append(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "parent TEXT NOT NULL DEFAULT '', "
                "key TEXT NOT NULL, "
                "payload TEXT NOT NULL, "
                "cached_at REAL NOT NULL, "
                "expires_at REAL NOT NULL, "
                "UNIQUE(parent, key));"
            )
            statements.append(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_expiry "
                f"ON {table}(parent, expires_at);"
            )
        statements.append(
            "CREATE TABLE IF NOT EXISTS cache_scopes ("
            "category TEXT NOT NULL, "
            "parent TEXT NOT NULL DEFAULT '', "
            "row_count INTEGER NOT NULL, "
            "cached_at REAL NOT NULL, "
            "expires_at REAL NOT NULL, "
            "PRIMARY KEY(category, parent));"
        )
        with self._lock:
            self._conn.executescript("\n".join(statements))

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "DocumentStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside one transaction.

        Nested calls join the outer transaction. On any exception the whole
        transaction is rolled back and the exception propagates.
        """
        with self._lock:
            if self._conn.in_transaction:
                yield self._conn
                return
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        logger.debug(f"SQL: {sql} | params={list(params)}")
        with self._lock:
            return self._conn.execute(sql, params)

    # Reads step the cursor to completion under the lock, so another
    # thread's transaction cannot begin between steps
    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[Any]:
        with self._lock:
            return self._execute(sql, params).fetchall()

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[Any]:
        with self._lock:
            return self._execute(sql, params).fetchone()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def bulk_replace(
        self,
        scope: Scope,
        payloads: Iterable[Dict[str, Any]],
        ttl: int,
        key_field: str = ID_FIELD,
    ) -> int:
        """Replace every row in a scope with a new set.

        Deletes the scope's rows, inserts the new ones, and stamps the scope,
        all in one transaction. Readers never observe a half-populated scope.

        Args:
            scope: Scope to replace
            payloads: New payloads; each must carry ``key_field``
            ttl: Time-to-live in seconds
            key_field: Payload field holding the row key

        Returns:
            Number of rows written

        Raises:
            ValueError: If a payload has no key (nothing is committed)
            BackingStoreError: On SQLite failure (nothing is committed)
        """
        table = scope.category.table_name
        cached_at, expires_at = ttl_window(self.clock(), ttl)

        with self.transaction() as conn:
            self._delete_rows(conn, scope)
            rows = []
            for payload in payloads:
                key = payload.get(key_field) if isinstance(payload, dict) else None
                if key is None:
                    raise ValueError(
                        f"Payload in scope {scope} has no '{key_field}' field"
                    )
                rows.append(
                    (
                        scope.parent_for(payload),
                        str(key),
                        dumps_json(payload),
                        cached_at,
                        expires_at,
                    )
                )
            conn.executemany(
                f"INSERT OR REPLACE INTO {table}"
                "(parent, key, payload, cached_at, expires_at) VALUES (?, ?, ?, ?, ?)",
                rows,
            )
            if scope.is_whole_category:
                # A full refresh supersedes any per-parent stamps
                conn.execute(
                    "DELETE FROM cache_scopes WHERE category = ?",
                    (scope.category.value,),
                )
            self._write_stamp(conn, scope, len(rows), cached_at, expires_at)

        logger.info(f"CACHED {scope}: {len(rows)} rows (ttl={ttl}s)")
        return len(rows)

    def upsert(
        self, scope: Scope, key: str, payload: Dict[str, Any], ttl: int
    ) -> None:
        """Insert or update one row keyed by (scope, key)."""
        table = scope.category.table_name
        cached_at, expires_at = ttl_window(self.clock(), ttl)
        self._execute(
            f"INSERT INTO {table}(parent, key, payload, cached_at, expires_at) "
            "VALUES (?, ?, ?, ?, ?) "
            "ON CONFLICT(parent, key) DO UPDATE SET "
            "payload = excluded.payload, "
            "cached_at = excluded.cached_at, "
            "expires_at = excluded.expires_at",
            (scope.parent_for(payload), str(key), dumps_json(payload), cached_at, expires_at),
        )
        logger.debug(f"UPSERT {scope} key={key}")

    def delete_scope(self, scope: Scope) -> int:
        """Delete every row in a scope together with its stamp.

        Returns:
            Number of rows deleted
        """
        with self.transaction() as conn:
            deleted = self._delete_rows(conn, scope)
            if scope.is_whole_category:
                conn.execute(
                    "DELETE FROM cache_scopes WHERE category = ?",
                    (scope.category.value,),
                )
            else:
                # The whole-category stamp no longer describes complete data
                conn.execute(
                    "DELETE FROM cache_scopes WHERE category = ? AND parent IN (?, '')",
                    (scope.category.value, scope.parent),
                )
        logger.info(f"INVALIDATED {scope}: {deleted} rows")
        return deleted

    def delete_one(self, scope: Scope, key: str) -> bool:
        """Delete a single row. Returns True if a row was removed."""
        table = scope.category.table_name
        cursor = self._execute(
            f"DELETE FROM {table} WHERE key = ?1 AND (?2 IS NULL OR parent = ?2)",
            (str(key), scope.parent),
        )
        return cursor.rowcount > 0

    def purge_expired(self) -> int:
        """Delete expired rows and stamps from every category.

        Returns:
            Number of rows deleted
        """
        now = self.clock()
        total = 0
        with self.transaction() as conn:
            for category in ResourceCategory:
                cursor = conn.execute(
                    f"DELETE FROM {category.table_name} WHERE expires_at <= ?",
                    (now,),
                )
                total += cursor.rowcount
            conn.execute("DELETE FROM cache_scopes WHERE expires_at <= ?", (now,))
        logger.info(f"Purged {total} expired rows")
        return total

    @staticmethod
    def _delete_rows(conn: sqlite3.Connection, scope: Scope) -> int:
        table = scope.category.table_name
        if scope.is_whole_category:
            cursor = conn.execute(f"DELETE FROM {table}")
        else:
            cursor = conn.execute(f"DELETE FROM {table} WHERE parent = ?", (scope.parent,))
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Scope stamps
    # ------------------------------------------------------------------

    def stamp_scope(self, scope: Scope, row_count: int, ttl: int) -> ScopeStamp:
        """Mark a scope as fully populated for ``ttl`` seconds."""
        cached_at, expires_at = ttl_window(self.clock(), ttl)
        with self.transaction() as conn:
            self._write_stamp(conn, scope, row_count, cached_at, expires_at)
        return ScopeStamp(
            scope.category, scope.parent or "", row_count, cached_at, expires_at
        )

    @staticmethod
    def _write_stamp(
        conn: sqlite3.Connection,
        scope: Scope,
        row_count: int,
        cached_at: float,
        expires_at: float,
    ) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO cache_scopes"
            "(category, parent, row_count, cached_at, expires_at) VALUES (?, ?, ?, ?, ?)",
            (scope.category.value, scope.parent or "", row_count, cached_at, expires_at),
        )

    def scope_stamp(self, scope: Scope) -> Optional[ScopeStamp]:
        """Return the stamp recorded for a scope, valid or not."""
        row = self._fetchone(
            "SELECT row_count, cached_at, expires_at FROM cache_scopes "
            "WHERE category = ? AND parent = ?",
            (scope.category.value, scope.parent or ""),
        )
        if row is None:
            return None
        return ScopeStamp(scope.category, scope.parent or "", row[0], row[1], row[2])

    def is_scope_valid(self, scope: Scope) -> bool:
        """Check whether a scope (or its whole category) holds a live stamp."""
        now = self.clock()
        stamp = self.scope_stamp(scope)
        if stamp is not None and stamp.is_valid(now):
            return True
        if not scope.is_whole_category:
            whole = self.scope_stamp(Scope(scope.category))
            return whole is not None and whole.is_valid(now)
        return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(
        self,
        scope: Scope,
        predicate: str = "",
        params: Sequence[Any] = (),
        order_by: str = "",
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[str]:
        """Return raw JSON payloads of live rows in a scope.

        Args:
            scope: Scope to read
            predicate: SQL predicate over the ``payload`` column whose
                placeholders start at ``?{RESERVED_PARAMS + 1}``
            params: Values bound to the predicate's placeholders
            order_by: ORDER BY expression list (without the keywords)
            limit: Maximum rows to return
            offset: Rows to skip; with no limit, all remaining rows

        Returns:
            Payload strings in result order
        """
        table = scope.category.table_name
        bound: List[Any] = [self.clock(), scope.parent, *params]
        sql = f"SELECT payload FROM {table} WHERE {_SCOPE_FILTER}"
        if predicate:
            sql += f" AND ({predicate})"
        if order_by:
            sql += f" ORDER BY {order_by}"
        if limit is not None or offset is not None:
            bound.append(-1 if limit is None else int(limit))
            sql += f" LIMIT ?{len(bound)}"
            if offset is not None:
                bound.append(int(offset))
                sql += f" OFFSET ?{len(bound)}"
        return [row[0] for row in self._fetchall(sql, bound)]

    def count(
        self, scope: Scope, predicate: str = "", params: Sequence[Any] = ()
    ) -> int:
        """Count live rows in a scope matching a predicate."""
        table = scope.category.table_name
        sql = f"SELECT COUNT(*) FROM {table} WHERE {_SCOPE_FILTER}"
        if predicate:
            sql += f" AND ({predicate})"
        row = self._fetchone(sql, [self.clock(), scope.parent, *params])
        return int(row[0])

    def get_one(self, scope: Scope, key: str) -> Optional[Dict[str, Any]]:
        """Return one live row's decoded payload, or None."""
        table = scope.category.table_name
        row = self._fetchone(
            f"SELECT payload FROM {table} WHERE {_SCOPE_FILTER} AND key = ?3 LIMIT 1",
            (self.clock(), scope.parent, str(key)),
        )
        return loads_json(row[0]) if row else None

    def list_keys(self, scope: Scope, include_expired: bool = False) -> List[str]:
        """Keys of rows in a scope (live rows only unless ``include_expired``)."""
        table = scope.category.table_name
        if include_expired:
            rows = self._fetchall(
                f"SELECT key FROM {table} WHERE (?1 IS NULL OR parent = ?1) ORDER BY key",
                (scope.parent,),
            )
        else:
            rows = self._fetchall(
                f"SELECT key FROM {table} WHERE {_SCOPE_FILTER} ORDER BY key",
                (self.clock(), scope.parent),
            )
        return [row[0] for row in rows]

    def status(self) -> List[Dict[str, Any]]:
        """Summarize each category: rows, live rows, scopes and next expiry.

        Returns:
            One dict per category with keys ``category``, ``rows``,
            ``valid_rows``, ``scopes`` and ``next_expiry``
        """
        now = self.clock()
        summary = []
        for category in ResourceCategory:
            total, valid, next_expiry = self._fetchone(
                "SELECT COUNT(*), "
                "COALESCE(SUM(CASE WHEN expires_at > ?1 THEN 1 ELSE 0 END), 0), "
                "MIN(CASE WHEN expires_at > ?1 THEN expires_at END) "
                f"FROM {category.table_name}",
                (now,),
            )
            scopes = self._fetchone(
                "SELECT COUNT(*) FROM cache_scopes WHERE category = ? AND expires_at > ?",
                (category.value, now),
            )[0]
            summary.append(
                {
                    "category": category.value,
                    "rows": int(total),
                    "valid_rows": int(valid),
                    "scopes": int(scopes),
                    "next_expiry": next_expiry,
                }
            )
        return summary
