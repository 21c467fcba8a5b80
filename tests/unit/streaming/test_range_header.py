"""Tests for Range header parsing."""

from __future__ import annotations

import pytest

from btstream.streaming.ranges import ByteRange, parse_range_header
from btstream.utils.exceptions import InvalidRangeError, RangeNotSatisfiableError

pytestmark = [pytest.mark.unit, pytest.mark.streaming]


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("bytes=0-0", ByteRange(0, 0)),
        ("bytes=0-99", ByteRange(0, 99)),
        ("bytes=10-", ByteRange(10, 99)),
        ("bytes=99-99", ByteRange(99, 99)),
        ("BYTES = 5 - 9", ByteRange(5, 9)),
    ],
)
def test_valid_ranges(header, expected):
    assert parse_range_header(header, 100) == expected


def test_single_byte_range_headers():
    byte_range = parse_range_header("bytes=0-0", 100)
    assert byte_range.size == 1
    assert byte_range.content_range(100) == "bytes 0-0/100"


@pytest.mark.parametrize(
    "header",
    [
        "bytes=-500",
        "bytes=0-1,5-9",
        "items=0-10",
        "bytes=abc-def",
        "bytes=",
        "0-10",
        "bytes=1.5-2",
        "",
        "   ",
        "bytes=\u0661-\u0662",
    ],
)
def test_malformed_ranges_are_rejected(header):
    with pytest.raises(InvalidRangeError) as exc_info:
        parse_range_header(header, 100)
    assert not isinstance(exc_info.value, RangeNotSatisfiableError)
    assert exc_info.value.status == 400


@pytest.mark.parametrize(
    "header",
    [
        "bytes=5-2",
        "bytes=100-110",
        "bytes=100-",
        "bytes=0-100",
    ],
)
def test_unsatisfiable_ranges_are_not_clamped(header):
    with pytest.raises(RangeNotSatisfiableError) as exc_info:
        parse_range_header(header, 100)
    assert exc_info.value.status == 416
    assert exc_info.value.length == 100


def test_any_range_on_empty_file_is_unsatisfiable():
    with pytest.raises(RangeNotSatisfiableError):
        parse_range_header("bytes=0-", 0)
