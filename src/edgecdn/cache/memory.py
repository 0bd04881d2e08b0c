"""
Bounded in-memory cache with LRU eviction and TTL expiry.

CacheStore keeps entries in an OrderedDict ordered from least to most
recently used. Every get/set moves the key to the MRU end; when the store is
full, set() pops from the LRU end before inserting.

Expiry is checked lazily: an entry past its deadline is dropped by the next
get() that touches it and reported as absent. With refresh_ttl_on_access the
deadline restarts on each hit (sliding TTL); otherwise it is fixed at
insertion time.

A disabled store accepts every call and holds nothing, so callers never have
to branch on whether caching is on.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable

from edgecdn.cache.base import CacheProtocol, CacheStats
from edgecdn.config import Settings
from edgecdn.logging import get_logger
from edgecdn.types import CacheEntry

logger = get_logger(__name__)


@dataclass
class _Slot:
    entry: CacheEntry
    expires_at: float


class CacheStore(CacheProtocol):
    """LRU + TTL key/entry store bounded by ``max_entries``.

    All operations take an internal lock, so the store is safe to share
    between the event loop and worker threads.
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl_seconds: float = 3600.0,
        *,
        enabled: bool = True,
        refresh_ttl_on_access: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            max_entries: Hard upper bound on stored entries.
            ttl_seconds: Lifetime of an entry.
            enabled: When False every operation is a no-op.
            refresh_ttl_on_access: Restart the TTL clock on each hit.
            clock: Monotonic time source in seconds.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self.refresh_ttl_on_access = refresh_ttl_on_access
        self._clock = clock
        self._slots: OrderedDict[str, _Slot] = OrderedDict()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls, settings: Settings, clock: Callable[[], float] = time.monotonic
    ) -> CacheStore:
        """Build a store from CACHE_* settings."""
        store = cls(
            max_entries=settings.CACHE_MAX_SIZE,
            ttl_seconds=settings.CACHE_TTL_SECONDS,
            enabled=settings.CACHE_ENABLED,
            refresh_ttl_on_access=settings.CACHE_REFRESH_TTL_ON_ACCESS,
            clock=clock,
        )
        logger.info(
            "Memory cache initialized",
            enabled=store.enabled,
            max_size=store.max_entries,
            ttl=store.ttl_seconds,
        )
        return store

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for ``key`` and mark it most recently used."""
        if not self.enabled:
            return None

        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                return None

            now = self._clock()
            if now >= slot.expires_at:
                del self._slots[key]
                return None

            self._slots.move_to_end(key)
            if self.refresh_ttl_on_access:
                slot.expires_at = now + self.ttl_seconds
            return slot.entry

    def set(self, key: str, entry: CacheEntry) -> None:
        """Insert or replace ``key``, evicting the LRU entry when full."""
        if not self.enabled:
            return

        with self._lock:
            slot = _Slot(entry=entry, expires_at=self._clock() + self.ttl_seconds)
            if key in self._slots:
                self._slots[key] = slot
                self._slots.move_to_end(key)
                return

            while len(self._slots) >= self.max_entries:
                evicted, _ = self._slots.popitem(last=False)
                logger.debug("Evicted LRU entry", key=evicted)
            self._slots[key] = slot

    def delete(self, key: str) -> bool:
        """Remove ``key`` if present. Deleting an absent key is not an error."""
        if not self.enabled:
            return False

        with self._lock:
            return self._slots.pop(key, None) is not None

    def clear(self) -> None:
        """Remove every entry."""
        if not self.enabled:
            return

        with self._lock:
            self._slots.clear()

    def _drop_expired_locked(self) -> int:
        now = self._clock()
        expired = [k for k, slot in self._slots.items() if now >= slot.expires_at]
        for key in expired:
            del self._slots[key]
        return len(expired)

    def prune_expired(self) -> int:
        """Physically drop expired entries. Returns the number removed."""
        if not self.enabled:
            return 0

        with self._lock:
            return self._drop_expired_locked()

    def keys(self) -> list[str]:
        """Stored keys from least to most recently used (expired included)."""
        with self._lock:
            return list(self._slots)

    def stats(self) -> CacheStats:
        """Report the number of live entries and the configuration.

        Expired entries are dropped first so ``size`` never counts them.
        """
        with self._lock:
            self._drop_expired_locked()
            size = len(self._slots)
        return CacheStats(
            enabled=self.enabled,
            size=size,
            max_size=self.max_entries,
            ttl=self.ttl_seconds,
        )
