"""HTTP API definitions for the gateway.

Request/response models for the JSON endpoints, plus the header names the
stream endpoint exposes to browsers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from btstream.session.models import ResolvedTorrent

CORRELATION_ID_HEADER = "X-Correlation-ID"
EXPOSED_HEADERS = (
    "Accept-Ranges",
    "Content-Length",
    "Content-Range",
    "Content-Type",
    CORRELATION_ID_HEADER,
)


class AddTorrentRequest(BaseModel):
    """Body of POST /add-torrent."""

    model_config = ConfigDict(populate_by_name=True)

    magnet_uri: str = Field(..., alias="magnetURI", description="Magnet link")

    @field_validator("magnet_uri")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            msg = "magnetURI must not be empty"
            raise ValueError(msg)
        return value


class FileInfo(BaseModel):
    """One file of a resolved torrent."""

    name: str = Field(..., description="File name")
    length: int = Field(..., ge=0, description="File size in bytes")
    path: str = Field(..., description="Path inside the torrent")


class AddTorrentResponse(BaseModel):
    """Resolved torrent metadata."""

    model_config = ConfigDict(populate_by_name=True)

    info_hash: str = Field(..., alias="infoHash", description="Info hash (hex)")
    name: str | None = Field(None, description="Torrent name")
    files: list[FileInfo] = Field(default_factory=list, description="Files in order")

    @classmethod
    def from_resolved(cls, resolved: ResolvedTorrent) -> AddTorrentResponse:
        return cls(
            info_hash=resolved.info_hash,
            name=resolved.name,
            files=[
                FileInfo(name=f.name, length=f.length, path=f.path)
                for f in resolved.files
            ],
        )


class ErrorResponse(BaseModel):
    """Error response."""

    error: str = Field(..., description="Error message")
    code: str = Field(..., description="Error code")
    details: dict[str, Any] | None = Field(None, description="Additional error details")


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str = Field(..., description="Gateway status")
    version: str = Field(..., description="Gateway version")
    sessions: int = Field(..., description="READY sessions")
    pending: int = Field(..., description="Resolutions in flight")
