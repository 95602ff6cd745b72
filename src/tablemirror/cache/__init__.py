"""Cache coordination for the local mirror.

This module keeps the document store in step with the remote source:
read-through refresh on TTL expiry, write-through of single-row changes,
cascading invalidation, and per-request hit/miss accounting.

Key components:
- CacheCoordinator: Main cache interface
- CacheConfig: Configuration management
- HitMissTracker / request_scope: Context-bound hit/miss counters
- cache.validation: TTL arithmetic (ttl_window, is_ttl_valid)
"""

from tablemirror.cache.config import CacheConfig, get_global_config, set_global_config
from tablemirror.cache.tracker import (
    HitMissCounts,
    HitMissTracker,
    get_tracker,
    request_scope,
)
from tablemirror.cache.coordinator import (
    CacheCoordinator,
    CacheError,
    CacheLockError,
    ScopeUnavailableError,
    UnknownResourceError,
)

__all__ = [
    "CacheCoordinator",
    "CacheConfig",
    "CacheError",
    "CacheLockError",
    "ScopeUnavailableError",
    "UnknownResourceError",
    "HitMissCounts",
    "HitMissTracker",
    "get_tracker",
    "request_scope",
    "get_global_config",
    "set_global_config",
]
