"""
Last known content version per resource on this edge.

The edge cannot ask the origin for the current version on every hit, so it
remembers what it last learned: from metadata on a miss, or from the
version carried by a purge notification. Unknown resources start at 1.
"""

from __future__ import annotations

import threading

from edgecdn.types import CacheKey

DEFAULT_VERSION = 1


class VersionTable:
    """Thread-safe resource -> version map used to build cache keys."""

    def __init__(self) -> None:
        self._versions: dict[str, int] = {}
        self._lock = threading.Lock()

    def current(self, resource_id: str) -> int:
        with self._lock:
            return self._versions.get(resource_id, DEFAULT_VERSION)

    def key_for(self, resource_id: str) -> CacheKey:
        """Cache key addressing the current version of ``resource_id``."""
        return CacheKey(resource_id, self.current(resource_id))

    def observe(self, resource_id: str, version: int) -> int:
        """Record a version seen from the origin. Versions never move backwards.

        Returns:
            The version now on record.
        """
        with self._lock:
            known = self._versions.get(resource_id)
            if known is None or version > known:
                self._versions[resource_id] = version
            return self._versions[resource_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._versions)
