"""Base classes and utilities for the field accessor system.

This module provides the foundation for accessor-based value extraction:
- FieldAccessor: Abstract base class for all extraction strategies
- FieldPath: Sanitized field reference
- AccessorRegistry: Registry mapping field types to accessors
- Convenience functions: register_accessor, get_accessor, resolve_accessor
"""

from tablemirror.base.accessor import PAYLOAD_COLUMN, FieldAccessor, FieldPath
from tablemirror.base.registry import (
    AccessorRegistry,
    ResolvedAccessor,
    get_accessor,
    get_registry,
    register_accessor,
    resolve_accessor,
)

__all__ = [
    "PAYLOAD_COLUMN",
    "FieldAccessor",
    "FieldPath",
    "AccessorRegistry",
    "ResolvedAccessor",
    "register_accessor",
    "get_accessor",
    "resolve_accessor",
    "get_registry",
]
