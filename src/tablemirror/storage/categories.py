"""Resource category definitions for the local mirror.

Each category of remote resource (solutions, tables, records, ...) is cached
in its own SQLite table. A ``Scope`` is one cache partition: a category plus
an optional parent key (the table a record belongs to, the solution a table
belongs to, ...).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class TTLClass(Enum):
    """Which configured TTL applies to a category."""

    RECORDS = "records"
    METADATA = "metadata"


class ResourceCategory(Enum):
    """Resource categories cached by the mirror.

    Examples:
        >>> ResourceCategory.RECORDS.table_name
        'cache_records'

        >>> ResourceCategory.TABLES.parent_field
        'solution'
    """

    SOLUTIONS = "solutions"
    TABLES = "tables"
    SCHEMAS = "schemas"
    RECORDS = "records"
    MEMBERS = "members"
    TEAMS = "teams"
    VIEWS = "views"
    DELETED_RECORDS = "deleted_records"

    @property
    def table_name(self) -> str:
        """SQLite table holding this category's rows."""
        return f"cache_{self.value}"

    @property
    def ttl_class(self) -> TTLClass:
        """TTL class for this category."""
        return CATEGORY_TTL_CLASS[self]

    @property
    def parent_field(self) -> Optional[str]:
        """Payload field carrying the parent key, if rows have a parent."""
        return CATEGORY_PARENT_FIELD.get(self)

    @classmethod
    def from_name(cls, name: str) -> "ResourceCategory":
        """Look up a category by name, accepting a few singular aliases.

        Raises:
            KeyError: If the name matches no category
        """
        normalized = str(name).strip().lower().replace("-", "_")
        normalized = _CATEGORY_ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            available = ", ".join(c.value for c in cls)
            raise KeyError(
                f"Unknown resource category: '{name}'. Available: {available}"
            ) from None


_CATEGORY_ALIASES = {
    "solution": "solutions",
    "table": "tables",
    "applications": "tables",
    "schema": "schemas",
    "structure": "schemas",
    "record": "records",
    "member": "members",
    "users": "members",
    "team": "teams",
    "view": "views",
    "reports": "views",
    "deleted": "deleted_records",
}

CATEGORY_TTL_CLASS: Dict[ResourceCategory, TTLClass] = {
    ResourceCategory.SOLUTIONS: TTLClass.METADATA,
    ResourceCategory.TABLES: TTLClass.METADATA,
    ResourceCategory.SCHEMAS: TTLClass.METADATA,
    ResourceCategory.RECORDS: TTLClass.RECORDS,
    ResourceCategory.MEMBERS: TTLClass.METADATA,
    ResourceCategory.TEAMS: TTLClass.METADATA,
    ResourceCategory.VIEWS: TTLClass.METADATA,
    ResourceCategory.DELETED_RECORDS: TTLClass.RECORDS,
}

# Payload field holding the parent key when rows are bulk-loaded for a whole
# category (e.g. the full table list, where each table names its solution)
CATEGORY_PARENT_FIELD: Dict[ResourceCategory, str] = {
    ResourceCategory.TABLES: "solution",
    ResourceCategory.RECORDS: "application_id",
    ResourceCategory.VIEWS: "application",
    ResourceCategory.DELETED_RECORDS: "solution",
}


@dataclass(frozen=True)
class Scope:
    """A named cache partition.

    Attributes:
        category: Resource category
        parent: Parent key (table id for records, solution id for tables),
            or None for the whole category

    Examples:
        >>> Scope.records("tbl_1")
        Scope(category=<ResourceCategory.RECORDS: 'records'>, parent='tbl_1')
        >>> str(Scope(ResourceCategory.MEMBERS))
        'members'
    """

    category: ResourceCategory
    parent: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.category, ResourceCategory):
            object.__setattr__(
                self, "category", ResourceCategory.from_name(self.category)
            )
        if self.parent is not None:
            object.__setattr__(self, "parent", str(self.parent))

    def __str__(self) -> str:
        if self.parent is None:
            return self.category.value
        return f"{self.category.value}:{self.parent}"

    @property
    def is_whole_category(self) -> bool:
        """True if this scope covers every row of its category."""
        return self.parent is None

    def parent_for(self, payload: Mapping[str, Any]) -> str:
        """Parent key to store for a payload loaded into this scope.

        Rows are always stored with a concrete parent string ('' when the
        category has none), which keeps the (parent, key) uniqueness
        constraint meaningful.
        """
        if self.parent is not None:
            return self.parent
        field = self.category.parent_field
        if field and isinstance(payload, Mapping):
            value = payload.get(field)
            if value is None and field == "solution":
                value = payload.get("solution_id")
            if value is not None:
                return str(value)
        return ""

    @classmethod
    def records(cls, table_id: str) -> "Scope":
        """Scope holding all records of one table."""
        return cls(ResourceCategory.RECORDS, table_id)

    @classmethod
    def tables(cls, solution_id: Optional[str] = None) -> "Scope":
        """Scope holding the table list (of one solution, or all)."""
        return cls(ResourceCategory.TABLES, solution_id)

    @classmethod
    def schemas(cls) -> "Scope":
        """Scope holding table schemas.

        Schemas are keyed by table id with no parent, so a single table's
        schema is addressed by key inside the whole-category scope.
        """
        return cls(ResourceCategory.SCHEMAS, None)
