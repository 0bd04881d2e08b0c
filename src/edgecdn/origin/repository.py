"""
Origin file metadata store.

SQLite via aiosqlite, one ``files`` table. The edge never touches it; it
only sees the JSON served by the origin API. Mutations are bump_version()
for purges, set_visibility() for the admin toggle and delete().
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from edgecdn.exceptions import NotFoundError
from edgecdn.logging import get_logger
from edgecdn.types import FileRecord, utc_now

logger = get_logger(__name__)


def _from_millis(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class FileRepository:
    """Async access to origin file records."""

    def __init__(self, db_path: str | Path) -> None:
        """Initialize repository.

        Args:
            db_path: SQLite database file (``":memory:"`` for tests).
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._db: aiosqlite.Connection | None = None
        self._version_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def init(self) -> None:
        """Open the database and create the schema."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS files (
                id TEXT PRIMARY KEY,
                filename TEXT NOT NULL,
                original_filename TEXT NOT NULL,
                mime_type TEXT NOT NULL,
                size INTEGER NOT NULL,
                storage_path TEXT NOT NULL,
                is_public INTEGER DEFAULT 1,
                version INTEGER DEFAULT 1,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_files_filename ON files(filename)"
        )
        await self._db.commit()
        logger.info("File repository initialized", db_path=str(self.db_path))

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("FileRepository not initialized. Call init() first.")
        return self._db

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> FileRecord:
        return FileRecord(
            id=row["id"],
            filename=row["filename"],
            original_filename=row["original_filename"],
            mime_type=row["mime_type"],
            size=row["size"],
            storage_path=row["storage_path"],
            is_public=bool(row["is_public"]),
            version=row["version"] or 1,
            created_at=_from_millis(row["created_at"]),
            updated_at=_from_millis(row["updated_at"]),
        )

    async def insert(self, record: FileRecord) -> FileRecord:
        """Insert a new file record."""
        db = self._conn()
        await db.execute(
            """
            INSERT INTO files (
                id, filename, original_filename, mime_type, size,
                storage_path, is_public, version, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.filename,
                record.original_filename,
                record.mime_type,
                record.size,
                record.storage_path,
                1 if record.is_public else 0,
                record.version,
                _to_millis(record.created_at),
                _to_millis(record.updated_at),
            ),
        )
        await db.commit()
        logger.debug("Inserted file record", file_id=record.id)
        return record

    async def get(self, file_id: str) -> FileRecord | None:
        """Get a record by id."""
        db = self._conn()
        async with db.execute("SELECT * FROM files WHERE id = ?", (file_id,)) as cursor:
            row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def get_by_filename(self, filename: str) -> FileRecord | None:
        """Get the newest record stored under ``filename``."""
        db = self._conn()
        async with db.execute(
            "SELECT * FROM files WHERE filename = ? ORDER BY created_at DESC LIMIT 1",
            (filename,),
        ) as cursor:
            row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def resolve(self, id_or_filename: str) -> FileRecord | None:
        """Look up by id, then by filename."""
        record = await self.get(id_or_filename)
        if record is None:
            record = await self.get_by_filename(id_or_filename)
        return record

    async def bump_version(self, file_id: str) -> int:
        """Increment a file's version and return the new value.

        Bumps for the same file are serialized, so concurrent purges always
        produce distinct versions.

        Raises:
            NotFoundError: No such file.
        """
        db = self._conn()
        async with self._version_locks[file_id]:
            cursor = await db.execute(
                "UPDATE files SET version = COALESCE(version, 1) + 1, updated_at = ? "
                "WHERE id = ?",
                (_to_millis(utc_now()), file_id),
            )
            if cursor.rowcount == 0:
                await db.rollback()
                raise NotFoundError("File not found", context={"resource_id": file_id})

            async with db.execute(
                "SELECT version FROM files WHERE id = ?", (file_id,)
            ) as select:
                row = await select.fetchone()
            await db.commit()

        new_version = int(row["version"])
        logger.info("Bumped file version", file_id=file_id, version=new_version)
        return new_version

    async def set_visibility(self, file_id: str, is_public: bool) -> FileRecord | None:
        """Set a file's isPublic flag. Returns the updated record, or None."""
        db = self._conn()
        cursor = await db.execute(
            "UPDATE files SET is_public = ?, updated_at = ? WHERE id = ?",
            (1 if is_public else 0, _to_millis(utc_now()), file_id),
        )
        await db.commit()
        if cursor.rowcount == 0:
            return None

        logger.info("Updated file visibility", file_id=file_id, is_public=is_public)
        return await self.get(file_id)

    async def delete(self, file_id: str) -> bool:
        """Remove a file record. Returns False if there was none."""
        db = self._conn()
        async with self._version_locks[file_id]:
            cursor = await db.execute("DELETE FROM files WHERE id = ?", (file_id,))
            await db.commit()

        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted file record", file_id=file_id)
        return deleted
