"""Magnet URI parsing (BEP 9) utilities."""

from __future__ import annotations

import base64
import binascii
import urllib.parse
from dataclasses import dataclass, field


@dataclass
class MagnetInfo:
    """Information extracted from a magnet link (BEP 9)."""

    info_hash: str  # lowercase hex
    display_name: str | None
    trackers: list[str] = field(default_factory=list)
    web_seeds: list[str] = field(default_factory=list)


def _hex_or_base32_to_hex(btih: str) -> str:
    """Decode btih which can be hex (40 chars) or base32 (32 chars)."""
    btih = btih.strip()
    try:
        if len(btih) == 40:
            return bytes.fromhex(btih).hex()
        if len(btih) == 32:
            return base64.b32decode(btih.upper()).hex()
    except (ValueError, binascii.Error) as e:
        msg = f"Invalid info hash in magnet URI: {btih}"
        raise ValueError(msg) from e
    msg = f"Info hash must be 40 hex or 32 base32 characters, got {len(btih)}"
    raise ValueError(msg)


def parse_magnet(uri: str) -> MagnetInfo:
    """Parse a magnet URI and return `MagnetInfo`.

    Supports: xt=urn:btih:<hash>, dn, tr (multiple), ws (multiple).

    Raises:
        ValueError: If the URI is not a magnet link or lacks a BitTorrent info hash

    """
    parsed = urllib.parse.urlparse(uri.strip())
    if parsed.scheme != "magnet":
        msg = "Not a magnet URI"
        raise ValueError(msg)

    qs = urllib.parse.parse_qs(parsed.query)
    btih_value = None
    for xt in qs.get("xt", []):
        if xt.startswith("urn:btih:"):
            btih_value = xt.split("urn:btih:", 1)[1]
            break
    if not btih_value:
        msg = "Magnet URI missing xt=urn:btih"
        raise ValueError(msg)

    return MagnetInfo(
        info_hash=_hex_or_base32_to_hex(btih_value),
        display_name=qs.get("dn", [None])[0],
        trackers=qs.get("tr", []),
        web_seeds=qs.get("ws", []),
    )


def generate_magnet_link(
    info_hash: str,
    display_name: str | None = None,
    trackers: list[str] | None = None,
) -> str:
    """Generate a magnet URI for a hex info hash.

    Args:
        info_hash: 40-character hex info hash
        display_name: Optional display name (dn parameter)
        trackers: Optional list of tracker URLs (tr parameters)

    Returns:
        Complete magnet URI string

    """
    parts = [f"magnet:?xt=urn:btih:{info_hash.lower()}"]

    if display_name:
        parts.append(f"dn={urllib.parse.quote(display_name)}")

    for tracker in trackers or []:
        encoded_tracker = urllib.parse.quote(tracker, safe=":/?#[]@!$'()*+,;=")
        parts.append(f"tr={encoded_tracker}")

    return "&".join(parts)
