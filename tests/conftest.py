"""Pytest configuration and shared fixtures for btstream tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

import pytest

import btstream.config.config as config_module
from btstream.config.config import ENV_MAPPINGS
from btstream.session.models import FileEntry, Session, SessionState
from btstream.session.registry import SessionRegistry


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("asyncio", "marks tests as async (deselect with '-m \"not asyncio\"')"),
        ("slow", "marks tests as slow (deselect with '-m \"not slow\"')"),
        ("unit", "marks tests as unit tests"),
        ("session", "marks tests as session management tests"),
        ("streaming", "marks tests as byte-range streaming tests"),
        ("engine", "marks tests as torrent engine tests"),
        ("server", "marks tests as HTTP surface tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep host environment and config files out of tests.

    Clears every variable the config layer reads and runs each test from an
    empty working directory with an empty home, so no `btstream.toml` is found.
    """
    for env_name in ENV_MAPPINGS:
        monkeypatch.delenv(env_name, raising=False)
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "_config_manager", None)


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    # setup_logging turns propagation off; caplog relies on it
    for logger_name in ("btstream", "aiohttp.access"):
        logging.getLogger(logger_name).propagate = True


class FakeFile:
    """In-memory torrent file that yields small chunks."""

    def __init__(
        self,
        name: str,
        data: bytes,
        *,
        path: str | None = None,
        media_type: str | None = None,
        chunk_size: int = 4,
    ) -> None:
        self.name = name
        self.data = data
        self.length = len(data)
        self.path = path or name
        self.media_type = media_type
        self.chunk_size = chunk_size
        self.reads: list[tuple[int, int]] = []
        self.closed_readers = 0
        self.fail_after: int | None = None

    async def open_range(self, start: int, end: int) -> AsyncIterator[bytes]:
        self.reads.append((start, end))
        try:
            pos = start
            while pos <= end:
                if self.fail_after is not None and pos - start >= self.fail_after:
                    msg = "payload vanished"
                    raise OSError(msg)
                chunk = self.data[pos : min(pos + self.chunk_size, end + 1)]
                pos += len(chunk)
                await asyncio.sleep(0)
                yield chunk
        finally:
            self.closed_readers += 1


class FakeHandle:
    """Engine handle whose events are fired by the test."""

    def __init__(self, engine: FakeEngine, source_uri: str) -> None:
        self.engine = engine
        self.source_uri = source_uri
        self.info_hash: str | None = None
        self.name: str | None = None
        self.files: list[FakeFile] = []
        self.on_metadata: Any = None
        self.on_error: Any = None
        self.on_download: Any = None
        self.on_done: Any = None
        self.destroyed = False
        self.destroy_calls = 0
        self.destroy_delay = 0.0

    @property
    def has_metadata(self) -> bool:
        return self.info_hash is not None

    def set_metadata(self, info_hash: str, name: str, files: list[FakeFile]) -> None:
        self.info_hash = info_hash
        self.name = name
        self.files = list(files)

    def emit_metadata(self, info_hash: str, name: str, files: list[FakeFile]) -> None:
        self.set_metadata(info_hash, name, files)
        if self.on_metadata is not None:
            self.on_metadata()

    def emit_error(self, message: str) -> None:
        if self.on_error is not None:
            self.on_error(message)

    async def destroy(self) -> None:
        self.destroy_calls += 1
        self.engine.events.append(("destroy:start", self.source_uri))
        if self.destroy_delay:
            await asyncio.sleep(self.destroy_delay)
        self.destroyed = True
        if self.engine.handles.get(self.source_uri) is self:
            del self.engine.handles[self.source_uri]
        self.engine.events.append(("destroy:done", self.source_uri))


class FakeEngine:
    """Engine double that records every `add` call."""

    def __init__(self) -> None:
        self.handles: dict[str, FakeHandle] = {}
        self.add_calls: list[str] = []
        self.events: list[tuple[str, str]] = []
        self.fail_add: Exception | None = None
        self.preloaded: dict[str, tuple[str, str, list[FakeFile]]] = {}
        self.closed = False

    def add(self, source_uri: str) -> FakeHandle:
        self.add_calls.append(source_uri)
        if self.fail_add is not None:
            raise self.fail_add
        handle = FakeHandle(self, source_uri)
        if source_uri in self.preloaded:
            handle.set_metadata(*self.preloaded[source_uri])
        self.handles[source_uri] = handle
        return handle

    def get(self, key: str) -> FakeHandle | None:
        return self.handles.get(key)

    def latest(self, source_uri: str) -> FakeHandle:
        return self.handles[source_uri]

    async def close(self) -> None:
        self.closed = True
        for handle in list(self.handles.values()):
            await handle.destroy()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_file():
    """Factory for in-memory torrent files."""
    return FakeFile


@pytest.fixture
def add_ready_session():
    """Register a READY session backed by a fake handle."""

    def _add(
        registry: SessionRegistry,
        info_hash: str,
        files: list[FakeFile],
        *,
        name: str = "Fixture Torrent",
        source_uri: str | None = None,
    ) -> Session:
        engine = FakeEngine()
        source_uri = source_uri or f"magnet:?xt=urn:btih:{info_hash}"
        handle = engine.add(source_uri)
        handle.set_metadata(info_hash, name, files)
        session = Session(source_uri=source_uri, handle=handle)
        session.transition(
            SessionState.READY,
            info_hash=info_hash,
            name=name,
            files=[FileEntry.from_engine_file(f) for f in files],
        )
        registry.insert(session)
        return session

    return _add
