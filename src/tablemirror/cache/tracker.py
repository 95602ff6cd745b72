"""Per-request cache hit/miss accounting.

Counts live in a :class:`contextvars.ContextVar` holding an immutable
snapshot, so every thread and every asyncio task sees its own counters.
Recording replaces the snapshot in the current context only; work running
concurrently in other contexts is unaffected.

Examples:
    >>> with request_scope() as tracker:
    ...     tracker.record_hit()
    ...     tracker.all_hits_since_reset()
    True
"""

import contextvars
import logging
from contextlib import contextmanager
from typing import Iterator, NamedTuple, Optional

logger = logging.getLogger(__name__)


class HitMissCounts(NamedTuple):
    hits: int = 0
    misses: int = 0

    @property
    def total(self) -> int:
        return self.hits + self.misses

    def as_dict(self) -> dict:
        return {"hits": self.hits, "misses": self.misses}


_counts: contextvars.ContextVar[Optional[HitMissCounts]] = contextvars.ContextVar(
    "tablemirror_hit_miss_counts", default=None
)


class HitMissTracker:
    """Hit/miss counters for the unit of work running in the current context.

    The tracker holds no state of its own; any instance reads and writes the
    counters of the calling context. Call :meth:`reset` at the start of each
    unit of work (or use :func:`request_scope`).
    """

    def reset(self) -> None:
        _counts.set(HitMissCounts())

    def record_hit(self) -> None:
        current = self.snapshot()
        _counts.set(current._replace(hits=current.hits + 1))

    def record_miss(self) -> None:
        current = self.snapshot()
        _counts.set(current._replace(misses=current.misses + 1))

    def snapshot(self) -> HitMissCounts:
        """Current counts (zero if nothing was recorded in this context)."""
        return _counts.get() or HitMissCounts()

    def all_hits_since_reset(self) -> bool:
        """True if at least one lookup happened and every one was a hit."""
        counts = self.snapshot()
        return counts.hits > 0 and counts.misses == 0

    def __repr__(self) -> str:
        counts = self.snapshot()
        return f"HitMissTracker(hits={counts.hits}, misses={counts.misses})"


_tracker = HitMissTracker()


def get_tracker() -> HitMissTracker:
    """Tracker bound to the calling context."""
    return _tracker


@contextmanager
def request_scope() -> Iterator[HitMissTracker]:
    """Run a unit of work with fresh counters, restoring the outer ones after."""
    token = _counts.set(HitMissCounts())
    try:
        yield _tracker
    finally:
        counts = _counts.get()
        logger.debug(f"Request finished: {counts.hits} hits, {counts.misses} misses")
        _counts.reset(token)
