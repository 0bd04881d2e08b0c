"""
Cache invalidation.

- InvalidationCoordinator (origin side): bumps a file's version, then tells
  every edge in the background
- EdgeNotifier: detached, time-bounded purge notifications
- EdgeInvalidator (edge side): drops local cache entries
"""

from edgecdn.invalidation.coordinator import EdgeNotifier, InvalidationCoordinator
from edgecdn.invalidation.edge import EdgeInvalidator

__all__ = ["EdgeInvalidator", "EdgeNotifier", "InvalidationCoordinator"]
