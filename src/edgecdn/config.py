"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates bounds and provides typed access to settings for both tiers.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edgecdn.exceptions import ConfigurationError

DEFAULT_SIGNING_SECRET = "your-secret-key-change-this"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Cache:
        CACHE_ENABLED, CACHE_MAX_SIZE, CACHE_TTL_SECONDS, CACHE_REFRESH_TTL_ON_ACCESS
    Signing:
        SIGNING_SECRET, SIGNED_URL_TTL_SECONDS
    Compression:
        ENABLE_GZIP, ENABLE_BROTLI
    Origin access:
        ORIGIN_URL, ORIGIN_METADATA_TIMEOUT, ORIGIN_CONTENT_TIMEOUT
    Invalidation:
        EDGE_URLS, EDGE_NOTIFY_TIMEOUT
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Edge cache
    CACHE_ENABLED: bool = Field(default=True, description="Enable the edge memory cache")
    CACHE_MAX_SIZE: int = Field(
        default=100, ge=1, description="Maximum number of cached entries"
    )
    CACHE_TTL_SECONDS: float = Field(
        default=3600.0, gt=0, description="Entry lifetime in seconds"
    )
    CACHE_REFRESH_TTL_ON_ACCESS: bool = Field(
        default=True, description="Restart an entry's TTL clock on every hit"
    )

    # Signed URLs
    SIGNING_SECRET: str = Field(
        default=DEFAULT_SIGNING_SECRET,
        description="HMAC secret for signed URLs",
    )
    SIGNED_URL_TTL_SECONDS: int = Field(
        default=3600, ge=1, description="Default lifetime of a signed URL"
    )

    # Compression
    ENABLE_GZIP: bool = Field(default=True, description="Allow gzip responses")
    ENABLE_BROTLI: bool = Field(default=True, description="Allow brotli responses")

    # Origin access from the edge
    ORIGIN_URL: str = Field(
        default="http://localhost:3000/api", description="Origin API base URL"
    )
    ORIGIN_METADATA_TIMEOUT: float = Field(
        default=5.0, gt=0, description="Timeout for origin metadata requests"
    )
    ORIGIN_CONTENT_TIMEOUT: float = Field(
        default=30.0, gt=0, description="Timeout for origin content requests"
    )
    SINGLE_FLIGHT_ENABLED: bool = Field(
        default=True, description="Coalesce concurrent misses for the same key"
    )

    # Invalidation fan-out from the origin
    EDGE_URLS: list[str] = Field(
        default_factory=lambda: ["http://localhost:3001"],
        description="Edge base URLs notified on purge",
    )
    EDGE_NOTIFY_TIMEOUT: float = Field(
        default=2.0, gt=0, description="Timeout for a single edge purge notification"
    )

    # Servers
    EDGE_HOST: str = Field(default="localhost", description="Edge bind host")
    EDGE_PORT: int = Field(default=3001, ge=1, le=65535, description="Edge bind port")
    ORIGIN_HOST: str = Field(default="localhost", description="Origin bind host")
    ORIGIN_PORT: int = Field(default=3000, ge=1, le=65535, description="Origin bind port")

    # Origin collaborator
    DB_PATH: Path = Field(
        default=Path("storage/metadata.db"), description="Origin metadata database"
    )
    STORAGE_PATH: Path = Field(
        default=Path("storage/files"), description="Origin blob directory"
    )
    ADMIN_API_KEY: str = Field(
        default="", description="Admin API key (empty leaves admin routes open)"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON lines log file")

    @property
    def cache_enabled(self) -> bool:
        """Whether the edge cache is enabled (lowercase alias)."""
        return self.CACHE_ENABLED

    @property
    def signing_secret(self) -> str:
        """Get signing secret (lowercase alias)."""
        return self.SIGNING_SECRET

    @property
    def origin_url(self) -> str:
        """Origin API base URL without a trailing slash."""
        return self.ORIGIN_URL.rstrip("/")

    @property
    def uses_default_secret(self) -> bool:
        """True when the signing secret was never configured."""
        return self.SIGNING_SECRET == DEFAULT_SIGNING_SECRET

    @field_validator("SIGNING_SECRET")
    @classmethod
    def validate_signing_secret(cls, v: str) -> str:
        """Reject an empty signing secret."""
        if not v.strip():
            raise ValueError("SIGNING_SECRET must not be empty")
        return v

    @field_validator("EDGE_URLS")
    @classmethod
    def normalize_edge_urls(cls, v: list[str]) -> list[str]:
        """Strip trailing slashes and drop blank entries."""
        return [url.rstrip("/") for url in v if url.strip()]

    def ensure_directories(self) -> None:
        """Create origin storage directories if they don't exist."""
        self.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        self.STORAGE_PATH.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings with secrets redacted for display."""
        def redact(value: str) -> str | None:
            if not value:
                return None
            return f"{value[:4]}...{value[-2:]}" if len(value) > 12 else "***"

        return {
            "CACHE_ENABLED": self.CACHE_ENABLED,
            "CACHE_MAX_SIZE": self.CACHE_MAX_SIZE,
            "CACHE_TTL_SECONDS": self.CACHE_TTL_SECONDS,
            "CACHE_REFRESH_TTL_ON_ACCESS": self.CACHE_REFRESH_TTL_ON_ACCESS,
            "SIGNING_SECRET": "(default, change me)"
            if self.uses_default_secret
            else redact(self.SIGNING_SECRET),
            "SIGNED_URL_TTL_SECONDS": self.SIGNED_URL_TTL_SECONDS,
            "ENABLE_GZIP": self.ENABLE_GZIP,
            "ENABLE_BROTLI": self.ENABLE_BROTLI,
            "ORIGIN_URL": self.origin_url,
            "ORIGIN_METADATA_TIMEOUT": self.ORIGIN_METADATA_TIMEOUT,
            "ORIGIN_CONTENT_TIMEOUT": self.ORIGIN_CONTENT_TIMEOUT,
            "SINGLE_FLIGHT_ENABLED": self.SINGLE_FLIGHT_ENABLED,
            "EDGE_URLS": ", ".join(self.EDGE_URLS),
            "EDGE_NOTIFY_TIMEOUT": self.EDGE_NOTIFY_TIMEOUT,
            "EDGE": f"{self.EDGE_HOST}:{self.EDGE_PORT}",
            "ORIGIN": f"{self.ORIGIN_HOST}:{self.ORIGIN_PORT}",
            "DB_PATH": str(self.DB_PATH),
            "STORAGE_PATH": str(self.STORAGE_PATH),
            "ADMIN_API_KEY": redact(self.ADMIN_API_KEY),
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ConfigurationError: If settings are invalid. The context lists the
            offending fields.
    """
    try:
        return Settings()
    except ValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        raise ConfigurationError("Invalid configuration", context={"fields": fields}) from e


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
