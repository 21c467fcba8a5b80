"""Torrent engine contract and the bundled local library engine."""

from __future__ import annotations

from btstream.engine.library import LibraryEngine, LibraryTorrent, load_torrent_file
from btstream.engine.magnet import MagnetInfo, generate_magnet_link, parse_magnet
from btstream.engine.types import (
    TorrentEngineProtocol,
    TorrentFileProtocol,
    TorrentHandleProtocol,
)

__all__ = [
    "LibraryEngine",
    "LibraryTorrent",
    "MagnetInfo",
    "TorrentEngineProtocol",
    "TorrentFileProtocol",
    "TorrentHandleProtocol",
    "generate_magnet_link",
    "load_torrent_file",
    "parse_magnet",
]
