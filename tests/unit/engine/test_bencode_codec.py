"""Tests for the bencoding codec."""

from __future__ import annotations

import pytest

from btstream.engine.bencode import (
    BencodeDecodeError,
    BencodeDecoder,
    BencodeEncodeError,
    BencodeEncoder,
    decode,
    encode,
)

pytestmark = [pytest.mark.unit, pytest.mark.engine]


class TestBencodeDecoder:
    """Test cases for BencodeDecoder."""

    def test_decode_scalars(self):
        assert BencodeDecoder(b"6:coding").decode() == b"coding"
        assert BencodeDecoder(b"0:").decode() == b""
        assert BencodeDecoder(b"i0e").decode() == 0
        assert BencodeDecoder(b"i-50e").decode() == -50
        assert BencodeDecoder(b"i999999999999999999999e").decode() == 999999999999999999999

    def test_decode_nested(self):
        """Lists and dictionaries nest, dictionary keys stay bytes."""
        data = b"d5:filesld6:lengthi5e4:pathl3:s01eee4:name4:Showe"
        assert decode(data) == {
            b"files": [{b"length": 5, b"path": [b"s01"]}],
            b"name": b"Show",
        }

    def test_decoder_stops_after_one_value(self):
        decoder = BencodeDecoder(b"i1ei2e")
        assert decoder.decode() == 1
        assert decoder.pos == 3

    @pytest.mark.parametrize(
        "data",
        [
            b"",
            b"i03e",
            b"i-0e",
            b"i-e",
            b"ie",
            b"i42",
            b"5hello",
            b"10:short",
            b"l4:spam",
            b"d3:fooe",
            b"di1e3:fooe",
            b"x",
        ],
    )
    def test_invalid_data(self, data):
        with pytest.raises(BencodeDecodeError):
            decode(data)

    def test_trailing_data_is_rejected(self):
        with pytest.raises(BencodeDecodeError, match="Trailing"):
            decode(b"i1eextra")


class TestBencodeEncoder:
    """Test cases for BencodeEncoder."""

    def test_encode_values(self):
        encoder = BencodeEncoder()
        assert encoder.encode(b"spam") == b"4:spam"
        assert encoder.encode("café") == b"5:caf\xc3\xa9"
        assert encoder.encode(-3) == b"i-3e"
        assert encoder.encode([b"a", 1, []]) == b"l1:ai1elee"

    def test_dictionary_keys_are_sorted(self):
        assert encode({"zeta": 1, b"alpha": 2, "mid": b""}) == b"d5:alphai2e3:mid0:4:zetai1ee"

    @pytest.mark.parametrize("value", [1.5, None, True, {1: b"x"}, object()])
    def test_unencodable_values(self, value):
        with pytest.raises(BencodeEncodeError):
            encode(value)

    def test_reencoding_decoded_info_is_stable(self):
        """The info hash depends on re-encoding producing the original bytes."""
        raw = b"d6:lengthi10e4:name8:clip.mp412:piece lengthi16384e6:pieces0:e"
        assert encode(decode(raw)) == raw
