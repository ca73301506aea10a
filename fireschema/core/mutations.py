"""
Mutation Markers

Sentinel values that stand in for a literal in an update operation set and
are interpreted by the backing store when the write is applied. Store
adapters translate them into their native equivalents.
"""

from dataclasses import dataclass
from typing import Any, Tuple

from ..common.error_handling import InvalidArgumentError


class _Sentinel:
    """Singleton marker with a readable repr."""

    __slots__ = ("_name",)

    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __reduce__(self):
        return self._name


# Remove the field from the stored document
DELETE_FIELD = _Sentinel("DELETE_FIELD")

# Replace the field with the store's commit timestamp
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


@dataclass(frozen=True)
class Increment:
    """Add delta to the stored numeric value (missing field counts as 0)."""
    delta: Any

    def __post_init__(self):
        if isinstance(self.delta, bool) or not isinstance(self.delta, (int, float)):
            raise InvalidArgumentError(
                "delta", f"increment delta must be an int or float, got {type(self.delta).__name__}"
            )


@dataclass(frozen=True)
class ArrayUnion:
    """Append each element not already present in the stored array."""
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class ArrayRemove:
    """Remove every occurrence of each element from the stored array."""
    values: Tuple[Any, ...]
