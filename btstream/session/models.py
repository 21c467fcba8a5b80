"""Session data model and its state machine."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from btstream.engine.types import TorrentFileProtocol, TorrentHandleProtocol


class SessionState(str, Enum):
    """Typed session lifecycle state."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class FileEntry:
    """One file of a resolved torrent."""

    name: str
    length: int
    path: str
    media_type: str | None = None

    @classmethod
    def from_engine_file(cls, engine_file: TorrentFileProtocol) -> FileEntry:
        return cls(
            name=engine_file.name,
            length=int(engine_file.length),
            path=engine_file.path,
            media_type=getattr(engine_file, "media_type", None),
        )


@dataclass(frozen=True)
class ResolvedTorrent:
    """Outcome delivered to every caller waiting on a resolution."""

    info_hash: str
    name: str
    files: tuple[FileEntry, ...]


class InvalidTransitionError(RuntimeError):
    """A session was asked to leave a terminal state."""


@dataclass(eq=False)
class Session:
    """One torrent's lifecycle inside the gateway.

    `transition` is the only way to change `state`; metadata fields are set
    in the same critical section as the move to READY, so `snapshot()` never
    observes an id without its files.
    """

    source_uri: str
    handle: TorrentHandleProtocol | None = None
    id: str | None = None
    name: str | None = None
    files: tuple[FileEntry, ...] = ()
    state: SessionState = SessionState.PENDING
    error: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def transition(
        self,
        new_state: SessionState,
        *,
        info_hash: str | None = None,
        name: str | None = None,
        files: Sequence[FileEntry] = (),
        error: str | None = None,
    ) -> bool:
        """Move out of PENDING exactly once.

        Returns:
            True if this call performed the transition, False if the session
            had already left PENDING.

        """
        if new_state is SessionState.PENDING:
            msg = "Sessions cannot transition back to pending"
            raise InvalidTransitionError(msg)
        if new_state is SessionState.READY and not info_hash:
            msg = "A ready session needs an info hash"
            raise InvalidTransitionError(msg)

        with self._lock:
            if self.state is not SessionState.PENDING:
                return False
            if new_state is SessionState.READY:
                self.id = info_hash
                self.name = name or info_hash
                self.files = tuple(files)
            self.error = error
            self.state = new_state
            return True

    def snapshot(self) -> dict[str, Any]:
        """Return a consistent view of the session."""
        with self._lock:
            return {
                "id": self.id,
                "source_uri": self.source_uri,
                "name": self.name,
                "files": self.files,
                "state": self.state,
                "error": self.error,
            }

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def to_resolved(self) -> ResolvedTorrent:
        """Return the client-facing view of a READY session."""
        with self._lock:
            if self.state is not SessionState.READY or self.id is None:
                msg = f"Session for {self.source_uri} is {self.state.value}, not ready"
                raise InvalidTransitionError(msg)
            return ResolvedTorrent(
                info_hash=self.id, name=self.name or self.id, files=self.files
            )
