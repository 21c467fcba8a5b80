"""Protocols for the torrent engine consumed by the gateway.

The gateway never talks to peers itself; anything that satisfies these
protocols (the bundled library engine, a libtorrent wrapper, a test double)
can back it.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable, Protocol, Sequence, runtime_checkable


@runtime_checkable
class TorrentFileProtocol(Protocol):
    """One file inside a torrent."""

    name: str
    length: int
    path: str
    media_type: str | None

    def open_range(self, start: int, end: int) -> AsyncIterator[bytes]:
        """Yield bytes `start..end` (inclusive) in order as they become available."""
        ...


@runtime_checkable
class TorrentHandleProtocol(Protocol):
    """Engine handle for one torrent.

    Callbacks are plain attributes set by the owner; the engine may invoke
    them from any thread.
    """

    info_hash: str | None
    name: str | None
    files: Sequence[TorrentFileProtocol]

    on_metadata: Callable[[], None] | None
    on_error: Callable[[str], None] | None
    on_download: Callable[[int], None] | None
    on_done: Callable[[], None] | None

    @property
    def has_metadata(self) -> bool: ...

    async def destroy(self) -> None:
        """Release every engine resource held for this torrent."""
        ...


@runtime_checkable
class TorrentEngineProtocol(Protocol):
    """Torrent engine entry points."""

    def add(self, source_uri: str) -> TorrentHandleProtocol:
        """Begin fetching metadata and content; must not block."""
        ...

    def get(self, key: str) -> TorrentHandleProtocol | None:
        """Return the existing handle for a source URI or info hash."""
        ...

    async def close(self) -> None: ...
