"""Tests for the range streaming adapter."""

from __future__ import annotations

import asyncio

import pytest

from btstream.session.models import Session
from btstream.session.registry import SessionRegistry
from btstream.streaming.adapter import RangeStreamingAdapter
from btstream.utils.exceptions import (
    EngineFailureError,
    InvalidRangeError,
    NotFoundError,
    RangeNotSatisfiableError,
)

pytestmark = [pytest.mark.unit, pytest.mark.streaming]

HASH = "ab" * 20
PAYLOAD = bytes(range(256)) * 4  # 1024 bytes


async def _collect(plan) -> bytes:
    return b"".join([chunk async for chunk in plan.iter_body()])


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def adapter(registry):
    return RangeStreamingAdapter(registry)


@pytest.fixture
def video(make_file):
    return make_file("clip.mp4", PAYLOAD, path="Show/clip.mp4", media_type="video/mp4", chunk_size=100)


def test_full_file_plan(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    plan = adapter.prepare(HASH, "0", None)

    assert plan.status == 200
    assert plan.headers == {
        "Content-Type": "video/mp4",
        "Accept-Ranges": "bytes",
        "Content-Length": "1024",
    }
    assert (plan.start, plan.end) == (0, 1023)


def test_range_plan(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    plan = adapter.prepare(HASH, 0, "bytes=100-199")

    assert plan.status == 206
    assert plan.headers["Content-Range"] == "bytes 100-199/1024"
    assert plan.headers["Content-Length"] == "100"


def test_open_ended_range_runs_to_last_byte(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    plan = adapter.prepare(HASH, 0, "bytes=1000-")
    assert plan.headers["Content-Range"] == "bytes 1000-1023/1024"
    assert plan.content_length == 24


def test_default_media_type(registry, make_file, add_ready_session):
    add_ready_session(registry, HASH, [make_file("blob", b"xyz")])
    adapter = RangeStreamingAdapter(registry, default_media_type="application/x-test")
    assert adapter.prepare(HASH, 0).headers["Content-Type"] == "application/x-test"


def test_info_hash_lookup_is_case_insensitive(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    assert adapter.prepare(HASH.upper(), 0).status == 200


@pytest.mark.parametrize("file_index", ["1", "-1", "abc", "0x0", "", "١", -1, 5])
def test_bad_file_index_is_not_found(registry, adapter, video, add_ready_session, file_index):
    add_ready_session(registry, HASH, [video])
    with pytest.raises(NotFoundError):
        adapter.prepare(HASH, file_index, None)


def test_unknown_session_is_not_found(adapter):
    with pytest.raises(NotFoundError) as exc_info:
        adapter.prepare("f" * 40, 0, None)
    assert exc_info.value.status == 404


def test_session_without_handle_is_not_found(registry, adapter, video, add_ready_session):
    session = add_ready_session(registry, HASH, [video])
    session.handle = None
    with pytest.raises(NotFoundError):
        adapter.prepare(HASH, 0, None)


def test_pending_session_is_not_found(registry, adapter):
    # Only READY sessions are ever inserted, but a stray one must still be refused
    stray = Session(source_uri="uri", id=HASH)
    registry._by_id[HASH] = stray  # noqa: SLF001
    with pytest.raises(NotFoundError):
        adapter.prepare(HASH, 0, None)


def test_malformed_range_is_rejected(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    with pytest.raises(InvalidRangeError):
        adapter.prepare(HASH, 0, "bytes=-100")


def test_empty_range_header_is_rejected(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    with pytest.raises(InvalidRangeError):
        adapter.prepare(HASH, 0, "")


@pytest.mark.parametrize("header", ["bytes=5-2", "bytes=1024-1034", "bytes=0-1024"])
def test_unsatisfiable_range_is_rejected(registry, adapter, video, add_ready_session, header):
    add_ready_session(registry, HASH, [video])
    with pytest.raises(RangeNotSatisfiableError) as exc_info:
        adapter.prepare(HASH, 0, header)
    assert exc_info.value.length == 1024


@pytest.mark.asyncio
async def test_full_body_matches_payload(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    body = await _collect(adapter.prepare(HASH, 0))
    assert body == PAYLOAD
    assert video.reads == [(0, 1023)]


@pytest.mark.asyncio
async def test_single_byte_range_body(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    plan = adapter.prepare(HASH, 0, "bytes=0-0")
    assert plan.headers["Content-Length"] == "1"
    assert await _collect(plan) == PAYLOAD[:1]


@pytest.mark.asyncio
async def test_overlapping_concurrent_ranges_do_not_interleave(
    registry, adapter, video, add_ready_session
):
    add_ready_session(registry, HASH, [video])
    plans = [
        adapter.prepare(HASH, 0, "bytes=0-599"),
        adapter.prepare(HASH, 0, "bytes=300-899"),
        adapter.prepare(HASH, 0, "bytes=500-"),
    ]
    bodies = await asyncio.gather(*(_collect(p) for p in plans))

    assert bodies[0] == PAYLOAD[0:600]
    assert bodies[1] == PAYLOAD[300:900]
    assert bodies[2] == PAYLOAD[500:]
    assert video.closed_readers == 3


@pytest.mark.asyncio
async def test_empty_file_streams_nothing(registry, adapter, make_file, add_ready_session):
    empty = make_file("empty.txt", b"")
    add_ready_session(registry, HASH, [empty])
    plan = adapter.prepare(HASH, 0)

    assert plan.headers["Content-Length"] == "0"
    assert await _collect(plan) == b""
    assert empty.reads == []


@pytest.mark.asyncio
async def test_closing_body_stops_engine_reads(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    body = adapter.prepare(HASH, 0).iter_body()

    first = await body.__anext__()
    assert first == PAYLOAD[:100]
    await body.aclose()
    assert video.closed_readers == 1


@pytest.mark.asyncio
async def test_engine_read_error_is_converted(registry, adapter, video, add_ready_session):
    video.fail_after = 200
    add_ready_session(registry, HASH, [video])

    with pytest.raises(EngineFailureError, match="payload vanished"):
        await _collect(adapter.prepare(HASH, 0))
    assert video.closed_readers == 1


@pytest.mark.asyncio
async def test_short_engine_read_is_an_error(registry, adapter, video, add_ready_session):
    add_ready_session(registry, HASH, [video])
    plan = adapter.prepare(HASH, 0)

    async def truncated(start, end):
        yield PAYLOAD[start : start + 10]

    video.open_range = truncated
    with pytest.raises(EngineFailureError, match="short"):
        await _collect(plan)
