"""Command line interface for btstream."""

from __future__ import annotations

from btstream.cli.main import cli, main

__all__ = ["cli", "main"]
