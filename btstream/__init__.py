"""btstream - stream files out of torrents over HTTP byte ranges."""

from __future__ import annotations

__version__ = "0.1.0"
