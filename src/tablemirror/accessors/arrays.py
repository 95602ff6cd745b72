"""Accessor for multi-valued (array) fields."""

from typing import Tuple

from tablemirror.base.accessor import PAYLOAD_COLUMN, FieldAccessor, FieldPath

ARRAY_FIELD_TYPES = (
    "multipleselectfield",
    "tagsfield",
    "userfield",
    "assignedtofield",
    "linkedrecordfield",
    "subitemsfield",
    "filefield",
    "imagefield",
)


class ArrayContainmentAccessor(FieldAccessor):
    """Treat a field as a JSON array for membership tests.

    Elements are compared as text. Elements shaped ``{"value": X}`` compare
    by ``X``. A scalar stored where an array is expected behaves as a
    one-element array.

    Examples:
        >>> acc = ArrayContainmentAccessor()
        >>> acc.elements_sql(FieldPath("tags"), "e")
        'json_each(payload, \\'$."tags"\\') AS e'
    """

    @property
    def strategy(self) -> str:
        return "array_containment"

    @property
    def field_types(self) -> Tuple[str, ...]:
        return ARRAY_FIELD_TYPES

    def extract_sql(self, path: FieldPath) -> str:
        return self.raw_sql(path)

    def elements_sql(self, path: FieldPath, alias: str) -> str:
        """Table-valued expression iterating the array's elements."""
        return f"json_each({PAYLOAD_COLUMN}, {path.json_path(*self._sub_keys(path))}) AS {alias}"

    @staticmethod
    def element_value_sql(alias: str) -> str:
        """Comparable text value of one element produced by elements_sql."""
        return (
            f"CAST(CASE WHEN {alias}.type = 'object' "
            f"THEN json_extract({alias}.value, '$.value') "
            f"ELSE {alias}.value END AS TEXT)"
        )

    @staticmethod
    def element_key_sql(alias: str, key: str) -> str:
        """Read a key of an object element (e.g. a file's ``name``)."""
        return f"json_extract({alias}.value, '$.{key}')"
