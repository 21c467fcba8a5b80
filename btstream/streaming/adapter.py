"""Serve one file of a READY session as an HTTP byte stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, AsyncIterator

from btstream.streaming.ranges import ByteRange, parse_range_header
from btstream.utils.exceptions import BTStreamError, EngineFailureError, NotFoundError

if TYPE_CHECKING:
    from btstream.engine.types import TorrentFileProtocol
    from btstream.session.models import FileEntry
    from btstream.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_TYPE = "application/octet-stream"


@dataclass
class StreamPlan:
    """Status, headers and byte source for one stream response."""

    info_hash: str
    file_index: int
    entry: FileEntry
    file: TorrentFileProtocol
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    byte_range: ByteRange | None = None

    @property
    def start(self) -> int:
        return self.byte_range.start if self.byte_range else 0

    @property
    def end(self) -> int:
        return self.byte_range.end if self.byte_range else self.entry.length - 1

    @property
    def content_length(self) -> int:
        return self.end - self.start + 1

    async def iter_body(self) -> AsyncIterator[bytes]:
        """Yield exactly the planned bytes in ascending order.

        Closing this iterator closes the engine reader, which stops further
        reads for this request only.
        """
        remaining = self.content_length
        if remaining <= 0:
            return

        reader = self.file.open_range(self.start, self.end)
        try:
            async for chunk in reader:
                if not chunk:
                    continue
                if len(chunk) > remaining:
                    chunk = chunk[:remaining]
                remaining -= len(chunk)
                yield chunk
                if remaining == 0:
                    break
        except BTStreamError:
            raise
        except Exception as e:
            msg = f"Failed reading {self.entry.name} of {self.info_hash}: {e}"
            raise EngineFailureError(msg) from e
        finally:
            aclose = getattr(reader, "aclose", None)
            if aclose is not None:
                await aclose()

        if remaining:
            msg = f"Engine stopped {remaining} bytes short of {self.entry.name}"
            raise EngineFailureError(msg, {"info_hash": self.info_hash})


class RangeStreamingAdapter:
    """Validates stream requests and maps them onto engine byte reads."""

    def __init__(
        self,
        registry: SessionRegistry,
        *,
        default_media_type: str = DEFAULT_MEDIA_TYPE,
    ) -> None:
        self.registry = registry
        self.default_media_type = default_media_type

    def prepare(
        self,
        info_hash: str,
        file_index: int | str,
        range_header: str | None = None,
    ) -> StreamPlan:
        """Build the response plan for a stream request.

        Raises:
            NotFoundError: Unknown or unready session, or bad file index
            InvalidRangeError: Malformed range header
            RangeNotSatisfiableError: Range outside the file

        """
        index = self._parse_index(file_index)
        session = self.registry.lookup(info_hash)
        handle = session.handle if session is not None else None
        if session is None or not session.is_ready or handle is None:
            msg = "File not found or torrent not active on server."
            raise NotFoundError(msg, {"info_hash": info_hash})

        files = session.files
        if index is None or index >= len(files) or index >= len(handle.files):
            msg = "File not found or torrent not active on server."
            raise NotFoundError(msg, {"info_hash": info_hash, "file_index": file_index})

        entry = files[index]
        headers = {
            "Content-Type": entry.media_type or self.default_media_type,
            "Accept-Ranges": "bytes",
        }

        if range_header is not None:
            byte_range = parse_range_header(range_header, entry.length)
            headers["Content-Range"] = byte_range.content_range(entry.length)
            headers["Content-Length"] = str(byte_range.size)
            status = 206
        else:
            byte_range = None
            headers["Content-Length"] = str(entry.length)
            status = 200

        logger.debug(
            "Streaming %s (torrent %s..., status %d, %s bytes)",
            entry.name,
            info_hash[:8],
            status,
            headers["Content-Length"],
        )
        return StreamPlan(
            info_hash=session.id or info_hash,
            file_index=index,
            entry=entry,
            file=handle.files[index],
            status=status,
            headers=headers,
            byte_range=byte_range,
        )

    @staticmethod
    def _parse_index(file_index: int | str) -> int | None:
        if isinstance(file_index, int):
            return file_index if file_index >= 0 else None
        if file_index.isdigit() and file_index.isascii():
            return int(file_index)
        return None
