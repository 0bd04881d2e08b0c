"""
Origin tier.

This package handles the durable side of delivery:
- OriginClient: what the edge uses to reach the origin API
- FileRepository: file metadata (aiosqlite)
- BlobStorage: file bytes on disk
- create_origin_app: the origin HTTP surface
"""

from edgecdn.origin.client import OriginClient
from edgecdn.origin.repository import FileRepository
from edgecdn.origin.storage import BlobStorage, StoredBlob

__all__ = ["BlobStorage", "FileRepository", "OriginClient", "StoredBlob"]
