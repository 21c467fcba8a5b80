"""Configuration management.

This module handles configuration loading and validation.
"""

from __future__ import annotations

from btstream.config.config import (
    ConfigManager,
    get_config,
    init_config,
    reload_config,
    set_config,
)
from btstream.models import Config

__all__ = [
    "Config",
    "ConfigManager",
    "get_config",
    "init_config",
    "reload_config",
    "set_config",
]
