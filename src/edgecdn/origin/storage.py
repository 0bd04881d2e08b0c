"""
Origin blob access.

Bytes live on local disk at each record's ``storage_path``; relative paths
resolve against the storage root. Reads and deletes run in a worker thread so
the event loop is never blocked on disk I/O.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from edgecdn.exceptions import NotFoundError
from edgecdn.logging import get_logger
from edgecdn.types import FileRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class StoredBlob:
    """File bytes plus the modification time used for Last-Modified."""

    content: bytes
    modified_at: datetime


class BlobStorage:
    """Reads and removes stored file bodies."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def init(self) -> None:
        """Create the storage root if it doesn't exist."""
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, record: FileRecord) -> Path:
        path = Path(record.storage_path)
        return path if path.is_absolute() else self.root / path

    def _read(self, path: Path) -> StoredBlob:
        stat = path.stat()
        return StoredBlob(
            content=path.read_bytes(),
            modified_at=datetime.fromtimestamp(int(stat.st_mtime), tz=timezone.utc),
        )

    async def read(self, record: FileRecord) -> StoredBlob:
        """Load a record's bytes.

        Raises:
            NotFoundError: The record exists but its file is gone.
        """
        path = self.path_for(record)
        try:
            return await asyncio.to_thread(self._read, path)
        except FileNotFoundError as e:
            raise NotFoundError(
                "File not found", context={"resource_id": record.id, "path": str(path)}
            ) from e

    async def delete(self, record: FileRecord) -> bool:
        """Remove a record's bytes. Returns False if they were already gone."""
        path = self.path_for(record)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            logger.warning("Stored file already missing", resource_id=record.id, path=str(path))
            return False
        return True
