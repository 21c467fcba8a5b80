"""Metadata resolution for magnet links.

Turns a source URI into a READY session within a bounded wait. Concurrent
requests for the same source URI share one pending resolution (single
flight): the engine is asked to add the torrent once and the single outcome
(metadata, engine error or timeout) is broadcast to every waiter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from btstream.session.models import FileEntry, ResolvedTorrent, Session, SessionState
from btstream.session.registry import SessionRegistry
from btstream.utils.exceptions import (
    BTStreamError,
    EngineFailureError,
    ResolutionTimeoutError,
)
from btstream.utils.tasks import BackgroundTaskGroup

if TYPE_CHECKING:
    from btstream.engine.types import TorrentEngineProtocol, TorrentHandleProtocol

logger = logging.getLogger(__name__)

DEFAULT_METADATA_TIMEOUT = 30.0


def _short(source_uri: str, limit: int = 80) -> str:
    return source_uri if len(source_uri) <= limit else f"{source_uri[:limit]}..."


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Outcomes nobody is waiting for any more must not warn at GC time
    if not future.cancelled():
        future.exception()


@dataclass(eq=False)
class PendingResolution:
    """A resolution in flight, shared by every caller for one source URI."""

    source_uri: str
    session: Session
    future: asyncio.Future[ResolvedTorrent]
    timer: asyncio.TimerHandle | None = None
    waiters: int = 0
    closed: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def settled(self) -> bool:
        return self.session.state is not SessionState.PENDING


class MetadataResolver:
    """Creates sessions on demand and waits for their metadata."""

    def __init__(
        self,
        engine: TorrentEngineProtocol,
        registry: SessionRegistry | None = None,
        *,
        metadata_timeout: float = DEFAULT_METADATA_TIMEOUT,
    ) -> None:
        """Initialize the resolver.

        Args:
            engine: Torrent engine used to add torrents
            registry: Registry receiving READY sessions (a new one if omitted)
            metadata_timeout: Seconds to wait for metadata before expiring

        """
        self.engine = engine
        self.registry = registry if registry is not None else SessionRegistry()
        self.metadata_timeout = metadata_timeout
        self._pending: dict[str, PendingResolution] = {}
        self._tasks = BackgroundTaskGroup()
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def lookup(self, info_hash: str) -> Session | None:
        """Return the READY session for an info hash, if any."""
        session = self.registry.lookup(info_hash)
        if session is None or not session.is_ready:
            return None
        return session

    async def resolve(self, source_uri: str) -> ResolvedTorrent:
        """Return metadata for `source_uri`, starting or joining a resolution.

        Raises:
            EngineFailureError: The engine reported an error
            ResolutionTimeoutError: No metadata within `metadata_timeout`

        """
        if self._closed:
            msg = "Resolver is shut down"
            raise EngineFailureError(msg)

        while True:
            session = self.registry.lookup_source(source_uri)
            if session is not None and session.is_ready:
                logger.debug("Torrent already active: %s", session.id)
                return session.to_resolved()

            pending = self._pending.get(source_uri)
            if pending is None:
                pending = self._start(source_uri)
                break
            if not pending.settled:
                logger.debug("Joining pending resolution for %s", _short(source_uri))
                break
            # Previous attempt failed or expired and is still releasing its handle
            await pending.closed.wait()

        pending.waiters += 1
        try:
            return await asyncio.shield(pending.future)
        finally:
            pending.waiters -= 1

    def _start(self, source_uri: str) -> PendingResolution:
        loop = asyncio.get_running_loop()
        session = Session(source_uri=source_uri)
        future: asyncio.Future[ResolvedTorrent] = loop.create_future()
        future.add_done_callback(_consume_exception)
        pending = PendingResolution(source_uri=source_uri, session=session, future=future)

        try:
            handle = self.engine.get(source_uri) or self.engine.add(source_uri)
        except Exception as e:
            session.transition(SessionState.FAILED, error=str(e))
            pending.closed.set()
            logger.exception("Engine failed to add %s", _short(source_uri))
            msg = f"Failed to add torrent or fetch metadata: {e}"
            raise EngineFailureError(msg) from e

        session.handle = handle
        self._pending[source_uri] = pending
        self._bind(pending, handle, loop)
        pending.timer = loop.call_later(self.metadata_timeout, self._expire, pending)
        logger.info("Adding torrent: %s", _short(source_uri))

        if handle.has_metadata:
            self._on_metadata(pending)
        return pending

    def _bind(
        self,
        pending: PendingResolution,
        handle: TorrentHandleProtocol,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        """Route handle callbacks onto the event loop; they may fire on any thread."""

        def marshal(fn: Callable[..., None]) -> Callable[..., None]:
            def callback(*args: Any) -> None:
                if loop.is_closed():
                    return
                loop.call_soon_threadsafe(fn, pending, *args)

            return callback

        handle.on_metadata = marshal(self._on_metadata)
        handle.on_error = marshal(self._on_error)
        handle.on_download = marshal(self._on_download)
        handle.on_done = marshal(self._on_done)

    def _cancel_timer(self, pending: PendingResolution) -> None:
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None

    def _on_metadata(self, pending: PendingResolution) -> None:
        session = pending.session
        handle = session.handle
        if pending.settled or handle is None:
            logger.debug("Ignoring late metadata for %s", _short(pending.source_uri))
            return

        try:
            if not handle.info_hash:
                msg = "metadata event without an info hash"
                raise ValueError(msg)
            info_hash = handle.info_hash.lower()
            files = tuple(FileEntry.from_engine_file(f) for f in handle.files)
            name = handle.name
        except (AttributeError, TypeError, ValueError) as e:
            self._on_error(pending, f"Invalid metadata: {e}")
            return

        if not session.transition(
            SessionState.READY, info_hash=info_hash, name=name, files=files
        ):
            return
        self._cancel_timer(pending)

        stored = self.registry.insert(session)
        if self._pending.get(pending.source_uri) is pending:
            del self._pending[pending.source_uri]
        pending.closed.set()

        if stored is not session:
            # Same content reached through a textually different source URI
            if self.registry.add_alias(pending.source_uri, info_hash):
                logger.info(
                    "Torrent %s already active, aliasing %s",
                    info_hash,
                    _short(pending.source_uri),
                )
            else:
                logger.debug(
                    "Torrent %s removed before %s could alias it",
                    info_hash,
                    _short(pending.source_uri),
                )
            if stored.handle is not handle:
                self._tasks.create(self._release(handle, info_hash))
            session.handle = None

        logger.info(
            "Torrent metadata ready: %s %s (%d file(s), %d waiter(s))",
            stored.name,
            info_hash,
            len(stored.files),
            pending.waiters,
        )
        pending.future.set_result(stored.to_resolved())

    def _on_error(self, pending: PendingResolution, message: str) -> None:
        if not pending.session.transition(SessionState.FAILED, error=message):
            logger.debug(
                "Ignoring late engine error for %s: %s", _short(pending.source_uri), message
            )
            return
        self._cancel_timer(pending)
        logger.error("Torrent error for %s: %s", _short(pending.source_uri), message)
        error = EngineFailureError(
            f"Failed to add torrent or fetch metadata: {message}",
            {"source_uri": pending.source_uri},
        )
        self._tasks.create(self._discard(pending, error))

    def _expire(self, pending: PendingResolution) -> None:
        pending.timer = None
        if not pending.session.transition(SessionState.EXPIRED):
            return
        logger.warning(
            "Metadata timeout after %.1fs for %s",
            self.metadata_timeout,
            _short(pending.source_uri),
        )
        error = ResolutionTimeoutError(
            "Torrent metadata timed out. Could not connect to peers or trackers.",
            {"timeout": self.metadata_timeout},
        )
        self._tasks.create(self._discard(pending, error))

    def _on_download(self, pending: PendingResolution, num_bytes: int) -> None:
        logger.debug(
            "Downloaded %d bytes for %s",
            num_bytes,
            pending.session.id or _short(pending.source_uri),
        )

    def _on_done(self, pending: PendingResolution) -> None:
        logger.info(
            'Torrent "%s" finished downloading',
            pending.session.name or _short(pending.source_uri),
        )

    async def _discard(self, pending: PendingResolution, error: BTStreamError) -> None:
        """Destroy the handle, drop the bookkeeping, then notify waiters."""
        handle = pending.session.handle
        try:
            if handle is not None:
                await handle.destroy()
                logger.debug("Destroyed torrent handle for %s", _short(pending.source_uri))
        except Exception:
            logger.exception("Failed to destroy torrent handle for %s", _short(pending.source_uri))
        finally:
            pending.session.handle = None
            if self._pending.get(pending.source_uri) is pending:
                del self._pending[pending.source_uri]
            pending.closed.set()
            if not pending.future.done():
                pending.future.set_exception(error)

    async def _release(self, handle: TorrentHandleProtocol, info_hash: str) -> None:
        try:
            await handle.destroy()
        except Exception:
            logger.exception("Failed to release duplicate handle for %s", info_hash)

    async def remove(self, info_hash: str) -> bool:
        """Tear down a READY session and release its engine handle."""
        session = self.registry.remove(info_hash)
        if session is None:
            return False
        if session.handle is not None:
            await self._release(session.handle, info_hash)
            session.handle = None
        logger.info("Removed torrent %s", info_hash)
        return True

    async def close(self) -> None:
        """Expire pending resolutions and release every engine handle."""
        self._closed = True
        for pending in list(self._pending.values()):
            self._cancel_timer(pending)
            if pending.session.transition(SessionState.EXPIRED, error="gateway shutting down"):
                await self._discard(pending, EngineFailureError("Gateway is shutting down"))
        await self._tasks.cancel_and_wait(timeout=5.0)
        for session in self.registry.clear():
            if session.handle is not None and session.id is not None:
                await self._release(session.handle, session.id)
                session.handle = None
