"""
Base classes for caching.

Edge cache backends expose synchronous get/set/delete/clear operations:
the work is in-process map manipulation and never suspends the event loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from edgecdn.types import CacheEntry


@dataclass(frozen=True)
class CacheStats:
    """Snapshot returned by ``GET /cache-stats``."""

    enabled: bool
    size: int
    max_size: int
    ttl: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "size": self.size,
            "maxSize": self.max_size,
            "ttl": self.ttl,
        }


class CacheProtocol(ABC):
    """Abstract interface for edge cache implementations."""

    @abstractmethod
    def get(self, key: str) -> CacheEntry | None:
        """Get a live entry, or None when absent or expired."""
        ...

    @abstractmethod
    def set(self, key: str, entry: CacheEntry) -> None:
        """Insert or replace an entry."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if something was removed."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""
        ...

    @abstractmethod
    def stats(self) -> CacheStats:
        """Report current size and configuration."""
        ...
