"""Torrent sessions: data model, registry and metadata resolution."""

from __future__ import annotations

from btstream.session.models import (
    FileEntry,
    ResolvedTorrent,
    Session,
    SessionState,
)
from btstream.session.registry import SessionRegistry
from btstream.session.resolver import MetadataResolver

__all__ = [
    "FileEntry",
    "MetadataResolver",
    "ResolvedTorrent",
    "Session",
    "SessionRegistry",
    "SessionState",
]
