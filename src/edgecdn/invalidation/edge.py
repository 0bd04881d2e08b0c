"""Edge-side purge handling: direct cache deletes that always succeed."""

from __future__ import annotations

from edgecdn.cache.base import CacheProtocol
from edgecdn.edge.versions import VersionTable
from edgecdn.logging import get_logger

logger = get_logger(__name__)


class EdgeInvalidator:
    """Applies purge requests to this edge's cache."""

    def __init__(self, cache: CacheProtocol, versions: VersionTable) -> None:
        self.cache = cache
        self.versions = versions

    def purge_local(self, resource_id: str, new_version: int | None = None) -> int:
        """Drop the entry for the currently known version of ``resource_id``.

        When the origin reports ``new_version`` it is recorded, so the next
        lookup addresses the new key and misses.

        Returns:
            The version subsequent lookups will use.
        """
        old_key = self.versions.key_for(resource_id)
        removed = self.cache.delete(str(old_key))
        if new_version is not None:
            self.versions.observe(resource_id, new_version)
        current = self.versions.current(resource_id)
        logger.info(
            "Cache entry purged",
            key=str(old_key),
            removed=removed,
            version=current,
        )
        return current

    def purge_all(self) -> None:
        """Clear the whole cache. Known versions are kept."""
        self.cache.clear()
        logger.info("All cache entries cleared")
