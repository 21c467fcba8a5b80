"""Bencoding (BEP 3) encoder and decoder.

Byte strings decode to `bytes`, integers to `int`, lists to `list` and
dictionaries to `dict` with `bytes` keys. The encoder also accepts `str`
(encoded as UTF-8) and always writes dictionary keys in sorted order, so
re-encoding a decoded info dictionary reproduces the bytes it was hashed from.
"""

from __future__ import annotations

from typing import Any


class BencodeDecodeError(ValueError):
    """Raised when data is not valid bencoding."""


class BencodeEncodeError(TypeError):
    """Raised when a value cannot be bencoded."""


class BencodeDecoder:
    """Decoder for one bencoded value."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def decode(self) -> Any:
        """Decode the value starting at the current position."""
        if self.pos >= len(self.data):
            msg = "Unexpected end of data"
            raise BencodeDecodeError(msg)

        token = self.data[self.pos : self.pos + 1]
        if token == b"i":
            return self._decode_int()
        if token == b"l":
            return self._decode_list()
        if token == b"d":
            return self._decode_dict()
        if token.isdigit():
            return self._decode_bytes()
        msg = f"Invalid token {token!r} at offset {self.pos}"
        raise BencodeDecodeError(msg)

    def _decode_int(self) -> int:
        end = self.data.find(b"e", self.pos)
        if end == -1:
            msg = f"Unterminated integer at offset {self.pos}"
            raise BencodeDecodeError(msg)
        raw = self.data[self.pos + 1 : end]
        digits = raw[1:] if raw.startswith(b"-") else raw
        if (
            not digits.isdigit()
            or (len(digits) > 1 and digits.startswith(b"0"))
            or raw == b"-0"
        ):
            msg = f"Invalid integer {raw!r} at offset {self.pos}"
            raise BencodeDecodeError(msg)
        self.pos = end + 1
        return int(raw)

    def _decode_bytes(self) -> bytes:
        colon = self.data.find(b":", self.pos)
        if colon == -1:
            msg = f"Missing ':' in string at offset {self.pos}"
            raise BencodeDecodeError(msg)
        raw_length = self.data[self.pos : colon]
        if not raw_length.isdigit():
            msg = f"Invalid string length {raw_length!r} at offset {self.pos}"
            raise BencodeDecodeError(msg)
        length = int(raw_length)
        start = colon + 1
        if start + length > len(self.data):
            msg = f"String at offset {self.pos} runs past end of data"
            raise BencodeDecodeError(msg)
        self.pos = start + length
        return self.data[start : self.pos]

    def _decode_list(self) -> list[Any]:
        self.pos += 1
        items = []
        while self._peek() != b"e":
            items.append(self.decode())
        self.pos += 1
        return items

    def _decode_dict(self) -> dict[bytes, Any]:
        self.pos += 1
        result: dict[bytes, Any] = {}
        while self._peek() != b"e":
            if not self._peek().isdigit():
                msg = f"Dictionary key at offset {self.pos} is not a string"
                raise BencodeDecodeError(msg)
            key = self._decode_bytes()
            result[key] = self.decode()
        self.pos += 1
        return result

    def _peek(self) -> bytes:
        if self.pos >= len(self.data):
            msg = "Unexpected end of data"
            raise BencodeDecodeError(msg)
        return self.data[self.pos : self.pos + 1]


class BencodeEncoder:
    """Encoder for Python values."""

    def encode(self, value: Any) -> bytes:
        out: list[bytes] = []
        self._encode(value, out)
        return b"".join(out)

    def _encode(self, value: Any, out: list[bytes]) -> None:
        if isinstance(value, bool):
            msg = "Booleans cannot be bencoded"
            raise BencodeEncodeError(msg)
        if isinstance(value, int):
            out.append(b"i%de" % value)
        elif isinstance(value, (bytes, bytearray)):
            out.append(b"%d:" % len(value))
            out.append(bytes(value))
        elif isinstance(value, str):
            self._encode(value.encode("utf-8"), out)
        elif isinstance(value, (list, tuple)):
            out.append(b"l")
            for item in value:
                self._encode(item, out)
            out.append(b"e")
        elif isinstance(value, dict):
            out.append(b"d")
            for key, item in sorted(
                ((self._key(k), v) for k, v in value.items()), key=lambda kv: kv[0]
            ):
                self._encode(key, out)
                self._encode(item, out)
            out.append(b"e")
        else:
            msg = f"Cannot bencode {type(value).__name__}"
            raise BencodeEncodeError(msg)

    @staticmethod
    def _key(key: Any) -> bytes:
        if isinstance(key, bytes):
            return key
        if isinstance(key, str):
            return key.encode("utf-8")
        msg = f"Dictionary keys must be bytes or str, not {type(key).__name__}"
        raise BencodeEncodeError(msg)


def decode(data: bytes) -> Any:
    """Decode a complete bencoded value; trailing bytes are an error."""
    decoder = BencodeDecoder(data)
    value = decoder.decode()
    if decoder.pos != len(data):
        msg = f"Trailing data after offset {decoder.pos}"
        raise BencodeDecodeError(msg)
    return value


def encode(value: Any) -> bytes:
    """Bencode a value."""
    return BencodeEncoder().encode(value)
