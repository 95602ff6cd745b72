"""Table schema model.

A remote table's structure payload looks like::

    {
        "id": "tbl_123",
        "name": "Projects",
        "solution": "sol_1",
        "structure": [
            {"slug": "title", "label": "Title", "field_type": "textfield", "params": {}},
            {"slug": "status", "label": "Status", "field_type": "statusfield", "params": {...}},
        ],
    }

The schema drives accessor selection for filters and sorting.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from tablemirror.utils import ID_FIELD


class SchemaError(ValueError):
    """Raised when a structure payload cannot be read as a table schema."""

    pass


@dataclass(frozen=True)
class FieldDefinition:
    """One field of a table.

    Attributes:
        slug: Field identifier used as the payload key
        field_type: Declared remote type, lowercased (e.g. 'statusfield')
        label: Human-readable name
        params: Type-specific settings as received
    """

    slug: str
    field_type: str
    label: str = ""
    params: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class TableSchema:
    """Ordered field definitions of one table.

    Examples:
        >>> schema = TableSchema.from_structure(
        ...     {"id": "tbl_1", "structure": [{"slug": "status", "field_type": "statusfield"}]}
        ... )
        >>> schema.field_type("status")
        'statusfield'
        >>> schema.has_field("missing")
        False
    """

    table_id: str
    fields: Tuple[FieldDefinition, ...] = ()
    name: str = ""
    solution_id: Optional[str] = None

    @classmethod
    def from_structure(
        cls, payload: Mapping[str, Any], table_id: Optional[str] = None
    ) -> "TableSchema":
        """Build a schema from a table structure payload.

        Raises:
            SchemaError: If the payload has no table id or a field has no slug
        """
        if not isinstance(payload, Mapping):
            raise SchemaError(f"Structure payload must be an object, got {type(payload).__name__}")

        table_id = table_id or payload.get(ID_FIELD)
        if not table_id:
            raise SchemaError("Structure payload has no table id")

        fields = []
        for index, raw in enumerate(payload.get("structure") or []):
            slug = raw.get("slug") if isinstance(raw, Mapping) else None
            if not slug:
                raise SchemaError(f"Field #{index} of table {table_id} has no slug")
            fields.append(
                FieldDefinition(
                    slug=str(slug),
                    field_type=str(raw.get("field_type") or "").lower(),
                    label=str(raw.get("label") or ""),
                    params=dict(raw.get("params") or {}),
                )
            )

        return cls(
            table_id=str(table_id),
            fields=tuple(fields),
            name=str(payload.get("name") or ""),
            solution_id=payload.get("solution"),
        )

    def to_structure(self) -> Dict[str, Any]:
        """Serialize back to the remote structure shape."""
        return {
            ID_FIELD: self.table_id,
            "name": self.name,
            "solution": self.solution_id,
            "structure": [
                {
                    "slug": f.slug,
                    "label": f.label,
                    "field_type": f.field_type,
                    "params": dict(f.params),
                }
                for f in self.fields
            ],
        }

    def get_field(self, slug: str) -> Optional[FieldDefinition]:
        """Look up a field by slug (a ``.from_date``/``.to_date`` suffix is ignored)."""
        base = str(slug).partition(".")[0]
        for definition in self.fields:
            if definition.slug == base:
                return definition
        return None

    def has_field(self, slug: str) -> bool:
        return self.get_field(slug) is not None

    def field_type(self, slug: str) -> Optional[str]:
        definition = self.get_field(slug)
        return definition.field_type if definition else None

    @property
    def slugs(self) -> List[str]:
        return [f.slug for f in self.fields]
