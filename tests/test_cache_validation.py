"""Unit tests for cache validation module."""

import pytest

from tablemirror.cache.validation import get_ttl_remaining, is_ttl_valid, ttl_window

NOW = 1_700_000_000.0


class TestTTLWindow:
    """Test computing expiry windows."""

    def test_window(self):
        """Test that expires_at is now plus the TTL."""
        assert ttl_window(NOW, 60) == (NOW, NOW + 60)

    @pytest.mark.parametrize("ttl", [0, -1, None])
    def test_non_positive_ttl_rejected(self, ttl):
        """Test that a TTL must be positive."""
        with pytest.raises(ValueError, match="TTL must be positive"):
            ttl_window(NOW, ttl)


class TestTTLValidation:
    """Test TTL validation functions."""

    def test_valid_within_window(self):
        """Test that an entry is valid before it expires."""
        assert is_ttl_valid(NOW + 60, NOW) is True

    def test_expired_at_boundary(self):
        """Test that an entry expiring exactly now is expired."""
        assert is_ttl_valid(NOW, NOW) is False

    def test_expired_after_window(self):
        assert is_ttl_valid(NOW - 1, NOW) is False

    def test_never_stamped_is_invalid(self):
        """Test that a missing expiry is never valid."""
        assert is_ttl_valid(None, NOW) is False


class TestTTLRemaining:
    def test_remaining_within_window(self):
        """Test TTL remaining calculation."""
        assert get_ttl_remaining(NOW + 90, NOW) == 90

    def test_remaining_never_negative(self):
        """Test that an expired entry has zero remaining."""
        assert get_ttl_remaining(NOW - 90, NOW) == 0.0

    def test_remaining_none(self):
        assert get_ttl_remaining(None, NOW) is None


def test_module_defines_no_exceptions():
    """Test that TTL errors surface as ValueError, not module-local classes."""
    from tablemirror.cache import validation

    public = [name for name in dir(validation) if not name.startswith("_")]
    assert not [name for name in public if name.endswith("Error")]
