"""
Pytest configuration and fixtures for edgecdn tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncGenerator, Callable, Generator
from unittest.mock import patch

import httpx
import pytest

from edgecdn.cache.memory import CacheStore
from edgecdn.config import Settings, clear_settings_cache
from edgecdn.origin.repository import FileRepository
from edgecdn.security.signing import SignedURLVerifier
from edgecdn.types import CacheEntry, FileRecord

TEST_SECRET = "test-signing-secret-0123456789"


class ManualClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "CACHE_ENABLED": "true",
        "CACHE_MAX_SIZE": "10",
        "CACHE_TTL_SECONDS": "60",
        "SIGNING_SECRET": TEST_SECRET,
        "SIGNED_URL_TTL_SECONDS": "300",
        "ORIGIN_URL": "http://origin.test/api",
        "EDGE_URLS": '["http://edge.test"]',
        "DB_PATH": str(temp_dir / "metadata.db"),
        "STORAGE_PATH": str(temp_dir / "files"),
        "ADMIN_API_KEY": "",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    clear_settings_cache()
    from edgecdn.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def cache(clock: ManualClock) -> CacheStore:
    """Small cache driven by the manual clock."""
    return CacheStore(max_entries=3, ttl_seconds=60, clock=clock)


@pytest.fixture
def verifier(clock: ManualClock) -> SignedURLVerifier:
    return SignedURLVerifier(TEST_SECRET, default_ttl_seconds=300, clock=clock)


@pytest.fixture
def text_entry() -> CacheEntry:
    return CacheEntry(
        content=b"hello world, " * 20,
        content_type="text/plain; charset=utf-8",
        etag='"abc"',
        last_modified="Tue, 14 Nov 2023 22:13:20 GMT",
        cache_control="public, max-age=31536000",
    )


@pytest.fixture
async def repository() -> AsyncGenerator[FileRepository, None]:
    """In-memory origin repository."""
    repo = FileRepository(":memory:")
    await repo.init()
    yield repo
    await repo.close()


@pytest.fixture
def stored_file(temp_dir: Path) -> Callable[..., FileRecord]:
    """Write a file under temp_dir/files and return a matching record."""

    def _make(
        file_id: str = "f1",
        filename: str = "a.txt",
        content: bytes = b"0123456789",
        mime_type: str = "text/plain",
    ) -> FileRecord:
        root = temp_dir / "files"
        root.mkdir(parents=True, exist_ok=True)
        (root / f"{file_id}.bin").write_bytes(content)
        return FileRecord(
            id=file_id,
            filename=filename,
            original_filename=filename,
            mime_type=mime_type,
            size=len(content),
            storage_path=f"{file_id}.bin",
        )

    return _make


def _origin_handler(
    files: dict[str, tuple[dict, bytes, dict[str, str]]],
    calls: list[str] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Fake origin API for httpx.MockTransport.

    ``files`` maps a name to (metadata JSON, body, extra download headers).
    Metadata is served for any name; downloads are served by metadata id.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        by_id = {meta["id"]: (meta, body, headers) for meta, body, headers in files.values()}
        if calls is not None:
            calls.append(request.url.path)
        parts = request.url.path.split("/")
        # /api/files/{name} or /api/files/{id}/download
        if parts[-1] == "download":
            found = by_id.get(parts[-2]) or files.get(parts[-2])
            if found is None:
                return httpx.Response(404, json={"error": "File not found"})
            meta, body, headers = found
            return httpx.Response(
                200,
                content=body,
                headers={"content-type": meta["mimeType"], **headers},
            )
        found = files.get(parts[-1]) or by_id.get(parts[-1])
        if found is None:
            return httpx.Response(404, json={"error": "File not found"})
        return httpx.Response(200, json=found[0])

    return handler


@pytest.fixture
def make_origin_handler() -> Callable[..., Callable[[httpx.Request], httpx.Response]]:
    return _origin_handler
