"""Accessor for status and single-select fields."""

from typing import Tuple

from tablemirror.base.accessor import PAYLOAD_COLUMN, FieldAccessor, FieldPath

SELECT_FIELD_TYPES = ("statusfield", "singleselectfield")


class SelectOrStatusAccessor(FieldAccessor):
    """Read a select/status value from either of its stored shapes.

    Status fields are stored as ``{"value": "in_progress", "updated_on": ...}``
    while single-select fields are stored as a bare ``"in_progress"``. The
    nested ``value`` wins when the field is an object; otherwise the scalar
    itself is returned.
    """

    @property
    def strategy(self) -> str:
        return "select_or_status"

    @property
    def field_types(self) -> Tuple[str, ...]:
        return SELECT_FIELD_TYPES

    def extract_sql(self, path: FieldPath) -> str:
        keys = self._sub_keys(path)
        outer = path.json_path(*keys)
        inner = path.json_path(*keys, "value")
        return (
            f"(CASE WHEN json_type({PAYLOAD_COLUMN}, {outer}) = 'object' "
            f"THEN json_extract({PAYLOAD_COLUMN}, {inner}) "
            f"ELSE json_extract({PAYLOAD_COLUMN}, {outer}) END)"
        )
