"""TTL validation utilities.

All timestamps are Unix seconds. A cached row or scope is valid while
``now < expires_at``; a row whose expiry equals the current instant is
already expired.
"""

from typing import Optional, Tuple


def ttl_window(now: float, ttl_seconds: int) -> Tuple[float, float]:
    """Compute the (cached_at, expires_at) pair for a fresh entry.

    Args:
        now: Current Unix timestamp
        ttl_seconds: Time-to-live in seconds (must be positive)

    Returns:
        Tuple of (cached_at, expires_at) with expires_at > cached_at

    Raises:
        ValueError: If ttl_seconds is not positive
    """
    if ttl_seconds is None or ttl_seconds <= 0:
        raise ValueError(f"TTL must be positive, got {ttl_seconds}")
    return now, now + ttl_seconds


def is_ttl_valid(expires_at: Optional[float], now: float) -> bool:
    """Check if an entry is still valid.

    Args:
        expires_at: Expiry timestamp, or None if never stamped
        now: Current Unix timestamp

    Returns:
        True if now is strictly before expires_at
    """
    if expires_at is None:
        return False
    return now < expires_at


def get_ttl_remaining(expires_at: Optional[float], now: float) -> Optional[float]:
    """Get remaining TTL in seconds.

    Args:
        expires_at: Expiry timestamp, or None if never stamped
        now: Current Unix timestamp

    Returns:
        Seconds remaining (0 if expired), or None if never stamped
    """
    if expires_at is None:
        return None
    return max(0.0, expires_at - now)
