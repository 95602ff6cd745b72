"""SQLite document store and resource category definitions.

This module provides the keyed, TTL-governed JSON store that backs the
mirror, along with the resource categories and scopes it is partitioned by.
"""

from tablemirror.storage.backend import (
    RESERVED_PARAMS,
    BackingStoreError,
    DocumentStore,
    ScopeStamp,
)
from tablemirror.storage.categories import ResourceCategory, Scope, TTLClass

__all__ = [
    "DocumentStore",
    "BackingStoreError",
    "ScopeStamp",
    "RESERVED_PARAMS",
    "ResourceCategory",
    "Scope",
    "TTLClass",
]
