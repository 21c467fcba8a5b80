"""HTTP byte-range streaming over torrent files."""

from __future__ import annotations

from btstream.streaming.adapter import RangeStreamingAdapter, StreamPlan
from btstream.streaming.ranges import ByteRange, parse_range_header

__all__ = [
    "ByteRange",
    "RangeStreamingAdapter",
    "StreamPlan",
    "parse_range_header",
]
