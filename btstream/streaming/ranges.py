"""HTTP `Range` header parsing.

Only a single `bytes=<start>-[<end>]` range is accepted. Anything else is
rejected rather than clamped, so a client never receives bytes it did not ask
for.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from btstream.utils.exceptions import InvalidRangeError, RangeNotSatisfiableError

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d+)\s*-\s*(\d*)\s*$", re.IGNORECASE | re.ASCII)


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range inside a file."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    def content_range(self, length: int) -> str:
        return f"bytes {self.start}-{self.end}/{length}"


def parse_range_header(header: str, length: int) -> ByteRange:
    """Parse a `Range` header against a file of `length` bytes.

    Raises:
        InvalidRangeError: The header is not a single `bytes=<start>-[<end>]` range
        RangeNotSatisfiableError: The range is well formed but outside `[0, length-1]`

    """
    match = _RANGE_RE.match(header)
    if match is None:
        msg = f"Malformed Range header: {header!r}"
        raise InvalidRangeError(msg)

    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else length - 1

    if start >= length or end >= length or end < start:
        msg = f"Range {start}-{end} not satisfiable for {length} bytes"
        raise RangeNotSatisfiableError(msg, length, {"start": start, "end": end})

    return ByteRange(start, end)
