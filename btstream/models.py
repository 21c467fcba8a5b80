"""Configuration models for btstream.

Pydantic models for every configuration section; `Config` is the root model
loaded by `btstream.config.ConfigManager`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ServerConfig(BaseModel):
    """HTTP surface configuration."""

    host: str = Field(default="0.0.0.0", description="Host to bind to")  # nosec B104
    port: int = Field(default=8081, ge=0, le=65535, description="Port to bind to")
    api_base_path: str = Field(default="/api", description="Prefix for all routes")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:8080"],
        description="Origins allowed to call the API from a browser ('*' for any)",
    )
    shutdown_timeout: float = Field(
        default=5.0,
        ge=0.0,
        description="Seconds to wait for in-flight requests on shutdown",
    )

    @field_validator("api_base_path")
    @classmethod
    def _normalize_base_path(cls, value: str) -> str:
        value = "/" + value.strip("/")
        return "" if value == "/" else value


class ResolverConfig(BaseModel):
    """Metadata resolution configuration."""

    metadata_timeout: float = Field(
        default=30.0,
        gt=0.0,
        le=3600.0,
        description="Seconds to wait for torrent metadata before giving up",
    )


class StreamingConfig(BaseModel):
    """Byte streaming configuration."""

    chunk_size: int = Field(
        default=64 * 1024,
        ge=1024,
        le=16 * 1024 * 1024,
        description="Maximum bytes read from the engine per chunk",
    )
    poll_interval: float = Field(
        default=0.25,
        gt=0.0,
        le=60.0,
        description="Seconds between checks for bytes not yet available",
    )
    default_media_type: str = Field(
        default="application/octet-stream",
        description="Content-Type used when a file has no known media type",
    )


class LibraryConfig(BaseModel):
    """Local library engine configuration."""

    torrent_dir: str = Field(
        default="library/torrents",
        description="Directory scanned for .torrent files",
    )
    data_dir: str = Field(
        default="library/data",
        description="Directory holding torrent payload files",
    )
    scan_interval: float = Field(
        default=2.0,
        gt=0.0,
        le=3600.0,
        description="Seconds between rescans while metadata is unknown",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Write JSON records to the log file",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Root configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    library: LibraryConfig = Field(default_factory=LibraryConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
