"""Accessor registry for resolving field types to extraction strategies.

The registry supports:
1. Registering accessors by strategy name
2. Retrieving accessors by strategy name
3. Resolving the accessor for a remote field type, with a plain-text fallback
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from tablemirror.base.accessor import FieldAccessor, FieldPath

# Strategy used for unknown or missing field types
FALLBACK_STRATEGY = "plain_text"


@dataclass(frozen=True)
class ResolvedAccessor:
    """An accessor bound to a field."""

    path: FieldPath
    accessor: FieldAccessor

    @property
    def strategy(self) -> str:
        return self.accessor.strategy

    def sql(self) -> str:
        return self.accessor.extract_sql(self.path)


class AccessorRegistry:
    """Registry of field value accessors.

    Examples:
        >>> registry = AccessorRegistry()
        >>> registry.register(PlainTextAccessor())
        >>> registry.register(SelectOrStatusAccessor())
        >>> registry.resolve("statusfield").strategy
        'select_or_status'
        >>> registry.resolve("somethingnew").strategy
        'plain_text'
    """

    def __init__(self, fallback: str = FALLBACK_STRATEGY):
        self._accessors: Dict[str, FieldAccessor] = {}
        self._by_field_type: Dict[str, str] = {}
        self.fallback = fallback

    def register(self, accessor: FieldAccessor) -> None:
        """Register an accessor.

        Args:
            accessor: Accessor instance to register

        Raises:
            ValueError: If the strategy or one of its field types is
                already registered
        """
        strategy = accessor.strategy
        if strategy in self._accessors:
            raise ValueError(
                f"Accessor already registered for strategy: {strategy}. "
                f"Cannot register {accessor.__class__.__name__}."
            )
        for field_type in accessor.field_types:
            if field_type in self._by_field_type:
                raise ValueError(
                    f"Field type '{field_type}' already handled by "
                    f"'{self._by_field_type[field_type]}'"
                )
        self._accessors[strategy] = accessor
        for field_type in accessor.field_types:
            self._by_field_type[field_type] = strategy

    def get(self, strategy: str) -> FieldAccessor:
        """Get accessor by strategy name.

        Raises:
            KeyError: If no accessor registered for strategy
        """
        if strategy not in self._accessors:
            available = ", ".join(sorted(self._accessors.keys()))
            raise KeyError(
                f"No accessor registered for strategy: '{strategy}'. "
                f"Available strategies: {available}"
            )
        return self._accessors[strategy]

    def resolve(self, field_type: Optional[str]) -> FieldAccessor:
        """Accessor for a remote field type, falling back to plain text."""
        if field_type:
            strategy = self._by_field_type.get(field_type.lower())
            if strategy is not None:
                return self._accessors[strategy]
        return self.get(self.fallback)

    def list_types(self) -> List[str]:
        """List all registered strategy names."""
        return list(self._accessors.keys())

    def list_field_types(self) -> List[str]:
        """List every field type with a dedicated accessor."""
        return sorted(self._by_field_type.keys())

    def is_registered(self, strategy: str) -> bool:
        return strategy in self._accessors


# Global singleton registry
_registry = AccessorRegistry()


def get_registry() -> AccessorRegistry:
    """Get the global accessor registry."""
    return _registry


def register_accessor(accessor: FieldAccessor) -> None:
    """Register an accessor in the global registry.

    Raises:
        ValueError: If strategy or field type already registered
    """
    _registry.register(accessor)


def get_accessor(strategy: str) -> FieldAccessor:
    """Get accessor by strategy name from the global registry.

    Raises:
        KeyError: If no accessor registered for strategy
    """
    return _registry.get(strategy)


def resolve_accessor(
    field_name: str, field_type: Optional[str] = None
) -> ResolvedAccessor:
    """Resolve the extraction strategy for a field name and type hint.

    The field name is sanitized before it is bound to the accessor.

    Args:
        field_name: Field reference, optionally with a ``.sub`` suffix
        field_type: Declared remote field type, or None if unknown

    Returns:
        ResolvedAccessor ready to produce SQL

    Examples:
        >>> resolve_accessor("status", "statusfield").strategy
        'select_or_status'
        >>> resolve_accessor("title; --").path.field
        'title'
    """
    return ResolvedAccessor(FieldPath.parse(field_name), _registry.resolve(field_type))
