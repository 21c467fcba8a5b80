"""Local library torrent engine.

Resolves magnet links against a directory of `.torrent` files and serves
payload bytes from a data directory. Bytes are handed out only once they
exist on disk, so a payload that is still being written by another process
streams as it grows.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

import aiofiles
import aiofiles.os

from btstream.engine.bencode import BencodeDecodeError, decode, encode
from btstream.engine.magnet import parse_magnet
from btstream.utils.exceptions import EngineFailureError
from btstream.utils.tasks import BackgroundTaskGroup

if TYPE_CHECKING:
    from btstream.models import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LibraryFileInfo:
    """File described by a `.torrent` info dictionary."""

    path_parts: tuple[str, ...]
    length: int


@dataclass(frozen=True)
class LibraryTorrent:
    """Parsed `.torrent` file from the library."""

    info_hash: str
    name: str
    files: tuple[LibraryFileInfo, ...]
    multi_file: bool
    source: Path


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _unsafe_component(part: str) -> bool:
    """Return True if a name could escape the directory it is joined onto."""
    return (
        part in ("", ".", "..")
        or any(sep in part for sep in ("/", "\\", "\0"))
        or PureWindowsPath(part).drive != ""
    )


def load_torrent_file(path: str | Path) -> LibraryTorrent:
    """Parse a `.torrent` file.

    Raises:
        ValueError: If the file is not a valid single- or multi-file torrent

    """
    path = Path(path)
    try:
        meta = decode(path.read_bytes())
    except BencodeDecodeError as e:
        msg = f"Invalid bencoding in {path.name}: {e}"
        raise ValueError(msg) from e

    if not isinstance(meta, dict) or not isinstance(meta.get(b"info"), dict):
        msg = f"{path.name} has no info dictionary"
        raise ValueError(msg)

    info = meta[b"info"]
    info_hash = hashlib.sha1(encode(info)).hexdigest()  # nosec B324 - BitTorrent v1 info hash
    name = _text(info.get(b"name", info_hash))
    if _unsafe_component(name):
        msg = f"{path.name} has an unsafe torrent name: {name!r}"
        raise ValueError(msg)

    if b"files" in info:
        files = []
        for entry in info[b"files"]:
            if not isinstance(entry, dict) or not isinstance(entry.get(b"length"), int):
                msg = f"{path.name} has a malformed file entry"
                raise ValueError(msg)
            parts = tuple(_text(p) for p in entry.get(b"path", []))
            if not parts or any(_unsafe_component(p) for p in parts):
                msg = f"{path.name} contains an unsafe file path: {parts!r}"
                raise ValueError(msg)
            files.append(LibraryFileInfo(path_parts=parts, length=int(entry[b"length"])))
        return LibraryTorrent(info_hash, name, tuple(files), True, path)

    if not isinstance(info.get(b"length"), int):
        msg = f"{path.name} describes neither a file nor a file list"
        raise ValueError(msg)
    return LibraryTorrent(
        info_hash,
        name,
        (LibraryFileInfo(path_parts=(name,), length=int(info[b"length"])),),
        False,
        path,
    )


class LibraryFile:
    """A payload file served from the data directory."""

    def __init__(
        self,
        handle: LibraryHandle,
        info: LibraryFileInfo,
        torrent_name: str,
        disk_path: Path,
    ) -> None:
        self._handle = handle
        self.name = info.path_parts[-1]
        self.length = info.length
        self.path = "/".join((torrent_name, *info.path_parts)) if handle.multi_file else self.name
        self.media_type = mimetypes.guess_type(self.name)[0]
        self.disk_path = disk_path

    async def is_complete(self) -> bool:
        """Return True if every byte of the file is on disk."""
        try:
            return await aiofiles.os.path.getsize(self.disk_path) >= self.length
        except OSError:
            return False

    async def open_range(self, start: int, end: int) -> AsyncIterator[bytes]:
        """Yield bytes `start..end` inclusive, waiting for bytes not yet on disk."""
        if start < 0 or end >= self.length or start > end:
            msg = f"Range {start}-{end} outside {self.name} ({self.length} bytes)"
            raise EngineFailureError(msg)

        chunk_size = self._handle.engine.chunk_size
        poll_interval = self._handle.engine.poll_interval
        position = start
        f = None
        try:
            while position <= end:
                self._handle.ensure_alive()
                if f is None:
                    if not await aiofiles.os.path.exists(self.disk_path):
                        await asyncio.sleep(poll_interval)
                        continue
                    f = await aiofiles.open(self.disk_path, "rb")
                await f.seek(position)
                data = await f.read(min(chunk_size, end - position + 1))
                if not data:
                    await asyncio.sleep(poll_interval)
                    continue
                position += len(data)
                yield data
        finally:
            if f is not None:
                await f.close()

    def __repr__(self) -> str:
        return f"LibraryFile(path={self.path!r}, length={self.length})"


class LibraryHandle:
    """Handle for one torrent requested from the library."""

    def __init__(self, engine: LibraryEngine, source_uri: str) -> None:
        self.engine = engine
        self.source_uri = source_uri
        self.info_hash: str | None = None
        self.name: str | None = None
        self.files: list[LibraryFile] = []
        self.multi_file = False

        self.on_metadata: Callable[[], None] | None = None
        self.on_error: Callable[[str], None] | None = None
        self.on_download: Callable[[int], None] | None = None
        self.on_done: Callable[[], None] | None = None

        self.destroyed = False
        self._scan_task: asyncio.Task[None] | None = None

    @property
    def has_metadata(self) -> bool:
        return self.info_hash is not None

    def ensure_alive(self) -> None:
        if self.destroyed:
            msg = f"Torrent {self.info_hash or self.source_uri} was destroyed"
            raise EngineFailureError(msg)

    def _emit(self, callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Handle callback failed for %s", self.source_uri)

    def _apply_metadata(self, torrent: LibraryTorrent) -> None:
        self.multi_file = torrent.multi_file
        root = self.engine.data_dir / torrent.name if torrent.multi_file else self.engine.data_dir
        self.files = [
            LibraryFile(self, info, torrent.name, root.joinpath(*info.path_parts))
            for info in torrent.files
        ]
        self.name = torrent.name
        self.info_hash = torrent.info_hash
        self._emit(self.on_metadata)

    def _fail(self, message: str) -> None:
        self._emit(self.on_error, message)

    async def destroy(self) -> None:
        """Stop scanning and invalidate open readers."""
        if self.destroyed:
            return
        self.destroyed = True
        task = self._scan_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self.engine.forget(self)
        logger.debug("Destroyed library handle for %s", self.info_hash or self.source_uri)


class LibraryEngine:
    """Torrent engine backed by a local `.torrent` directory and payload directory."""

    def __init__(
        self,
        torrent_dir: str | Path,
        data_dir: str | Path,
        *,
        scan_interval: float = 2.0,
        chunk_size: int = 64 * 1024,
        poll_interval: float = 0.25,
    ) -> None:
        """Initialize library engine.

        Args:
            torrent_dir: Directory scanned for `.torrent` files
            data_dir: Directory holding payload files
            scan_interval: Seconds between rescans for an unknown info hash
            chunk_size: Maximum bytes per chunk yielded by readers
            poll_interval: Seconds between checks for bytes not yet on disk

        """
        self.torrent_dir = Path(torrent_dir)
        self.data_dir = Path(data_dir)
        self.scan_interval = scan_interval
        self.chunk_size = chunk_size
        self.poll_interval = poll_interval
        self._handles: dict[str, LibraryHandle] = {}
        self._tasks = BackgroundTaskGroup()

    @classmethod
    def from_config(cls, config: Config) -> LibraryEngine:
        return cls(
            config.library.torrent_dir,
            config.library.data_dir,
            scan_interval=config.library.scan_interval,
            chunk_size=config.streaming.chunk_size,
            poll_interval=config.streaming.poll_interval,
        )

    def add(self, source_uri: str) -> LibraryHandle:
        """Register a magnet link and start looking for it in the library."""
        handle = LibraryHandle(self, source_uri)
        self._handles[source_uri] = handle
        handle._scan_task = self._tasks.create(  # noqa: SLF001
            self._resolve(handle), name=f"library-resolve:{source_uri[:60]}"
        )
        return handle

    def get(self, key: str) -> LibraryHandle | None:
        """Return the handle for a source URI or hex info hash."""
        handle = self._handles.get(key)
        if handle is not None:
            return handle
        key = key.lower()
        for candidate in self._handles.values():
            if candidate.info_hash == key:
                return candidate
        return None

    def forget(self, handle: LibraryHandle) -> None:
        if self._handles.get(handle.source_uri) is handle:
            del self._handles[handle.source_uri]

    def scan(self) -> list[LibraryTorrent]:
        """Parse every `.torrent` file in the library, skipping invalid ones."""
        if not self.torrent_dir.is_dir():
            return []
        torrents = []
        for path in sorted(self.torrent_dir.glob("*.torrent")):
            try:
                torrents.append(load_torrent_file(path))
            except (OSError, ValueError) as e:
                logger.warning("Skipping library torrent %s: %s", path.name, e)
        return torrents

    async def _find(self, info_hash: str) -> LibraryTorrent | None:
        torrents = await asyncio.to_thread(self.scan)
        for torrent in torrents:
            if torrent.info_hash == info_hash:
                return torrent
        return None

    async def _resolve(self, handle: LibraryHandle) -> None:
        try:
            magnet = parse_magnet(handle.source_uri)
        except ValueError as e:
            handle._fail(str(e))  # noqa: SLF001
            return

        while not handle.destroyed:
            torrent = await self._find(magnet.info_hash)
            if torrent is not None:
                break
            logger.debug(
                "Info hash %s not in library yet, rescanning in %.1fs",
                magnet.info_hash,
                self.scan_interval,
            )
            await asyncio.sleep(self.scan_interval)
        else:
            return

        handle._apply_metadata(torrent)  # noqa: SLF001
        if handle.files and all([await f.is_complete() for f in handle.files]):
            handle._emit(handle.on_done)  # noqa: SLF001

    async def close(self) -> None:
        """Destroy every handle and stop background scans."""
        for handle in list(self._handles.values()):
            await handle.destroy()
        await self._tasks.cancel_and_wait(timeout=5.0)
