"""In-memory registry of ready torrent sessions."""

from __future__ import annotations

import logging
import threading

from btstream.session.models import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps info hashes (and the source URIs that led to them) to sessions.

    Holds at most one session per info hash. Every operation takes a short
    lock around dictionary access only, so callers never block on I/O.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: dict[str, Session] = {}
        self._aliases: dict[str, str] = {}  # source_uri -> info hash

    def lookup(self, info_hash: str) -> Session | None:
        with self._lock:
            return self._by_id.get(info_hash.lower())

    def lookup_source(self, source_uri: str) -> Session | None:
        with self._lock:
            info_hash = self._aliases.get(source_uri)
            return self._by_id.get(info_hash) if info_hash else None

    def insert(self, session: Session) -> Session:
        """Store a READY session and return the session held for its id.

        If another session already owns the id, that session is kept and
        returned; `session` is not stored and its source URI is not aliased.
        """
        if session.id is None:
            msg = "Only sessions with an info hash can be registered"
            raise ValueError(msg)
        key = session.id.lower()
        with self._lock:
            existing = self._by_id.get(key)
            if existing is None:
                self._by_id[key] = session
                self._aliases[session.source_uri] = key
                existing = session
        if existing is not session:
            logger.debug("Session %s already registered, keeping existing", key)
        return existing

    def add_alias(self, source_uri: str, info_hash: str) -> bool:
        """Point another source URI at a registered session."""
        key = info_hash.lower()
        with self._lock:
            if key not in self._by_id:
                return False
            self._aliases[source_uri] = key
            return True

    def remove(self, info_hash: str) -> Session | None:
        """Remove a session and its aliases. Unknown ids are ignored."""
        key = info_hash.lower()
        with self._lock:
            session = self._by_id.pop(key, None)
            if session is not None:
                for uri in [u for u, h in self._aliases.items() if h == key]:
                    del self._aliases[uri]
        return session

    def sessions(self) -> list[Session]:
        with self._lock:
            return list(self._by_id.values())

    def clear(self) -> list[Session]:
        with self._lock:
            sessions = list(self._by_id.values())
            self._by_id.clear()
            self._aliases.clear()
        return sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    def __contains__(self, info_hash: object) -> bool:
        if not isinstance(info_hash, str):
            return False
        with self._lock:
            return info_hash.lower() in self._by_id
