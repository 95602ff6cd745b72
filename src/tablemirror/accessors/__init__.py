"""Field value accessors.

This module contains the built-in accessors and registers them with the
AccessorRegistry on import.

Available accessors:
- PlainTextAccessor: direct scalar read (fallback for unknown field types)
- SelectOrStatusAccessor: ``{"value": X}`` wrapper or bare scalar
- DateMultiformatAccessor: date strings, range and due-date wrappers
- ArrayContainmentAccessor: JSON arrays for membership tests

Examples:
    >>> from tablemirror.base.registry import get_registry
    >>> get_registry().resolve("duedatefield").strategy
    'date_multiformat'
"""

from tablemirror.accessors.arrays import ARRAY_FIELD_TYPES, ArrayContainmentAccessor
from tablemirror.accessors.dates import DATE_FIELD_TYPES, DateMultiformatAccessor
from tablemirror.accessors.plain_text import PlainTextAccessor
from tablemirror.accessors.select import SELECT_FIELD_TYPES, SelectOrStatusAccessor
from tablemirror.base.registry import get_registry, register_accessor

_plain_text_accessor = PlainTextAccessor()
_select_accessor = SelectOrStatusAccessor()
_date_accessor = DateMultiformatAccessor()
_array_accessor = ArrayContainmentAccessor()

# Guard against double registration when the module is reloaded
for _accessor in (_plain_text_accessor, _select_accessor, _date_accessor, _array_accessor):
    if not get_registry().is_registered(_accessor.strategy):
        register_accessor(_accessor)

__all__ = [
    "PlainTextAccessor",
    "SelectOrStatusAccessor",
    "DateMultiformatAccessor",
    "ArrayContainmentAccessor",
    "SELECT_FIELD_TYPES",
    "DATE_FIELD_TYPES",
    "ARRAY_FIELD_TYPES",
]
