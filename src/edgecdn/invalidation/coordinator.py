"""
Origin-side purge coordination.

A purge succeeds once the file's version is bumped. A delete bumps the
version too, then removes the record. Edges are then told in the
background: each notification is a detached task with a short timeout whose
result is discarded. A failed notification is logged and otherwise
ignored. An edge that never hears about a purge serves its old entry until
TTL expiry; the refill after that reads the new version from metadata.
"""

from __future__ import annotations

import asyncio
from urllib.parse import quote

import httpx

from edgecdn.config import Settings
from edgecdn.exceptions import NotFoundError
from edgecdn.logging import get_logger
from edgecdn.origin.repository import FileRepository
from edgecdn.types import FileRecord, PurgeEvent

logger = get_logger(__name__)


class EdgeNotifier:
    """Fire-and-forget ``POST {edge}/purge/{id}`` to every configured edge."""

    def __init__(
        self,
        edge_urls: list[str],
        timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize notifier.

        Args:
            edge_urls: Edge base URLs.
            timeout: Upper bound for each notification.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.edge_urls = [url.rstrip("/") for url in edge_urls]
        self.timeout = timeout
        self._transport = transport
        self._tasks: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def notify(
        self, event: PurgeEvent, names: list[str] | None = None
    ) -> list[asyncio.Task[bool]]:
        """Schedule notifications and return immediately.

        Args:
            event: The version bump to announce.
            names: Identifiers edges may have cached the file under;
                defaults to the event's resource id.

        Returns:
            The detached tasks (callers normally ignore them).
        """
        started: list[asyncio.Task[bool]] = []
        for edge_url in self.edge_urls:
            for name in names or [event.resource_id]:
                task = asyncio.create_task(self._post(edge_url, name, event.new_version))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                started.append(task)
        return started

    async def _post(self, edge_url: str, name: str, version: int) -> bool:
        url = f"{edge_url}/purge/{quote(name, safe='')}"
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self.timeout
            ) as client:
                response = await client.post(url, json={"version": version})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Could not notify edge server", url=url, error=str(e))
            return False

        logger.debug("Edge notified", url=url, version=version)
        return True

    async def drain(self) -> None:
        """Wait for outstanding notifications (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class InvalidationCoordinator:
    """Bumps versions at the origin and fans the purge out to edges."""

    def __init__(self, repository: FileRepository, notifier: EdgeNotifier) -> None:
        self.repository = repository
        self.notifier = notifier

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: FileRepository,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> InvalidationCoordinator:
        notifier = EdgeNotifier(
            settings.EDGE_URLS,
            timeout=settings.EDGE_NOTIFY_TIMEOUT,
            transport=transport,
        )
        return cls(repository, notifier)

    async def _require(self, resource_id: str) -> FileRecord:
        record = await self.repository.resolve(resource_id)
        if record is None:
            raise NotFoundError("File not found", context={"resource_id": resource_id})
        return record

    def _announce(self, record: FileRecord, new_version: int) -> PurgeEvent:
        event = PurgeEvent(resource_id=record.id, new_version=new_version)
        names = [record.id]
        if record.filename and record.filename != record.id:
            names.append(record.filename)
        self.notifier.notify(event, names)
        return event

    async def purge(self, resource_id: str) -> PurgeEvent:
        """Invalidate every edge copy of a file.

        Raises:
            NotFoundError: The file does not exist at the origin.
        """
        record = await self._require(resource_id)
        new_version = await self.repository.bump_version(record.id)
        event = self._announce(record, new_version)

        logger.info("Purge accepted", file_id=record.id, version=new_version)
        return event

    async def delete(self, resource_id: str) -> FileRecord:
        """Remove a file's record and tell edges to drop their copies.

        The version is bumped before the row goes, so edges that hear about
        the deletion stop addressing the key they cached it under.

        Returns:
            The record as it was before deletion.

        Raises:
            NotFoundError: The file does not exist at the origin.
        """
        record = await self._require(resource_id)
        new_version = await self.repository.bump_version(record.id)
        await self.repository.delete(record.id)
        self._announce(record, new_version)

        logger.info("Delete accepted", file_id=record.id, version=new_version)
        return record
