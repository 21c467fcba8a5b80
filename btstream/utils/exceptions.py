"""Exception hierarchy for btstream.

Every error that can reach the HTTP surface derives from `BTStreamError`
and carries the HTTP status it maps to, so engine and timeout failures are
converted once at the resolver/adapter boundary.
"""

from __future__ import annotations

from typing import Any, ClassVar


class BTStreamError(Exception):
    """Base exception for all btstream errors."""

    status: ClassVar[int] = 500
    code: ClassVar[str] = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize btstream error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class InvalidRequestError(BTStreamError):
    """Missing or malformed client input."""

    status = 400
    code = "INVALID_REQUEST"


class InvalidRangeError(InvalidRequestError):
    """Range header that is not a single `bytes=<start>-[<end>]` range."""

    code = "INVALID_RANGE"


class RangeNotSatisfiableError(InvalidRangeError):
    """Well-formed range that falls outside the file."""

    status = 416
    code = "RANGE_NOT_SATISFIABLE"

    def __init__(
        self,
        message: str,
        length: int,
        details: dict[str, Any] | None = None,
    ):
        """Initialize with the file length used for `Content-Range: bytes */L`."""
        super().__init__(message, details)
        self.length = length


class NotFoundError(BTStreamError):
    """Unknown session, session not ready, or file index out of bounds."""

    status = 404
    code = "NOT_FOUND"


class EngineFailureError(BTStreamError):
    """The torrent engine reported an error while resolving or streaming."""

    status = 500
    code = "ENGINE_FAILURE"


class ResolutionTimeoutError(BTStreamError):
    """Metadata was not received within the configured bound."""

    status = 504
    code = "METADATA_TIMEOUT"


class ConfigurationError(BTStreamError):
    """Configuration validation errors."""

    code = "CONFIGURATION_ERROR"
