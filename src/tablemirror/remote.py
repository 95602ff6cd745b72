"""Interfaces to the remote data source.

The mirror never talks HTTP itself. Callers hand the coordinator an object
satisfying these protocols (typically a thin wrapper around an API client);
tests use an in-memory fake.
"""

import logging
from typing import (
    Any,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)

logger = logging.getLogger(__name__)

# A page is either a bare list of records or {"items": [...], "total": N}
RecordPage = Union[Sequence[Dict[str, Any]], Mapping[str, Any]]


@runtime_checkable
class SchemaProvider(Protocol):
    def fetch_schema(self, table_id: str) -> Dict[str, Any]:
        """Return the table's structure payload."""
        ...


@runtime_checkable
class RecordFetcher(Protocol):
    def fetch_records(self, table_id: str, offset: int, limit: int) -> RecordPage:
        """Return one page of records starting at ``offset``."""
        ...


@runtime_checkable
class MetadataProvider(Protocol):
    def list_solutions(self) -> List[Dict[str, Any]]:
        ...

    def list_tables(self, solution_id: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    def list_members(self) -> List[Dict[str, Any]]:
        ...

    def list_teams(self) -> List[Dict[str, Any]]:
        ...

    def list_views(self, table_id: str) -> List[Dict[str, Any]]:
        ...

    def list_deleted_records(self, solution_id: str) -> List[Dict[str, Any]]:
        ...


@runtime_checkable
class DateResolver(Protocol):
    def extract_date_value(self, value: Any) -> Optional[str]:
        """Turn a date filter value into a ``YYYY-MM-DD`` string."""
        ...


def _page_items(page: RecordPage) -> Tuple[List[Dict[str, Any]], Optional[int]]:
    if isinstance(page, Mapping):
        items = page.get("items") or []
        total = page.get("total")
        return list(items), int(total) if total is not None else None
    return list(page or []), None


def iter_all_records(
    fetcher: RecordFetcher, table_id: str, page_size: int = 1000
) -> Iterator[Dict[str, Any]]:
    """Iterate every record of a table, one page at a time.

    Stops at the first short or empty page, or once ``total`` records (when
    the page reports it) have been read.

    Args:
        fetcher: Paginated record source
        table_id: Table to read
        page_size: Records requested per page

    Yields:
        Record payloads in remote order
    """
    if page_size <= 0:
        raise ValueError(f"page_size must be positive, got {page_size}")

    offset = 0
    while True:
        items, total = _page_items(
            fetcher.fetch_records(table_id, offset=offset, limit=page_size)
        )
        logger.debug(f"Fetched {len(items)} records of {table_id} at offset {offset}")
        yield from items
        offset += len(items)
        if not items or len(items) < page_size:
            break
        if total is not None and offset >= total:
            break


def fetch_all_records(
    fetcher: RecordFetcher, table_id: str, page_size: int = 1000
) -> List[Dict[str, Any]]:
    """Read every record of a table into a list."""
    return list(iter_all_records(fetcher, table_id, page_size))
