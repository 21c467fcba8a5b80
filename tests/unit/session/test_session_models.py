"""Tests for the session state machine."""

from __future__ import annotations

import threading

import pytest

from btstream.session.models import (
    FileEntry,
    InvalidTransitionError,
    Session,
    SessionState,
)

pytestmark = [pytest.mark.unit, pytest.mark.session]

HASH = "a" * 40


def _files() -> list[FileEntry]:
    return [FileEntry(name="a.mp4", length=10, path="T/a.mp4", media_type="video/mp4")]


def test_new_session_is_pending_without_metadata():
    session = Session(source_uri="magnet:?xt=urn:btih:" + HASH)
    assert session.state is SessionState.PENDING
    assert session.id is None
    assert session.files == ()
    assert not session.is_ready


def test_ready_transition_sets_metadata_together():
    session = Session(source_uri="uri")
    assert session.transition(SessionState.READY, info_hash=HASH, name="T", files=_files())

    snap = session.snapshot()
    assert snap["state"] is SessionState.READY
    assert snap["id"] == HASH
    assert snap["name"] == "T"
    assert len(snap["files"]) == 1


def test_only_first_transition_wins():
    session = Session(source_uri="uri")
    assert session.transition(SessionState.EXPIRED)
    assert not session.transition(SessionState.READY, info_hash=HASH, files=_files())
    assert not session.transition(SessionState.FAILED, error="boom")
    assert session.state is SessionState.EXPIRED
    assert session.id is None
    assert session.error is None


def test_failed_transition_records_error():
    session = Session(source_uri="uri")
    assert session.transition(SessionState.FAILED, error="tracker unreachable")
    assert session.error == "tracker unreachable"


def test_cannot_return_to_pending():
    session = Session(source_uri="uri")
    with pytest.raises(InvalidTransitionError):
        session.transition(SessionState.PENDING)


def test_ready_requires_info_hash():
    session = Session(source_uri="uri")
    with pytest.raises(InvalidTransitionError):
        session.transition(SessionState.READY, files=_files())
    assert session.state is SessionState.PENDING


def test_zero_files_is_a_valid_ready_outcome():
    session = Session(source_uri="uri")
    assert session.transition(SessionState.READY, info_hash=HASH, name="empty")
    resolved = session.to_resolved()
    assert resolved.files == ()
    assert resolved.info_hash == HASH


def test_name_defaults_to_info_hash():
    session = Session(source_uri="uri")
    session.transition(SessionState.READY, info_hash=HASH)
    assert session.to_resolved().name == HASH


def test_to_resolved_requires_ready():
    session = Session(source_uri="uri")
    with pytest.raises(InvalidTransitionError):
        session.to_resolved()


def test_concurrent_transitions_settle_exactly_once():
    session = Session(source_uri="uri")
    barrier = threading.Barrier(8)
    results: list[bool] = []
    results_lock = threading.Lock()

    def attempt(i: int) -> None:
        barrier.wait()
        state = SessionState.FAILED if i % 2 else SessionState.EXPIRED
        won = session.transition(state, error=f"attempt {i}")
        with results_lock:
            results.append(won)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert session.state in (SessionState.FAILED, SessionState.EXPIRED)


def test_file_entry_from_engine_file(make_file):
    engine_file = make_file("movie.mkv", b"x" * 12, path="Show/movie.mkv", media_type="video/x-matroska")
    entry = FileEntry.from_engine_file(engine_file)
    assert entry == FileEntry(
        name="movie.mkv", length=12, path="Show/movie.mkv", media_type="video/x-matroska"
    )
