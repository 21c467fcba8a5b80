"""Shared utilities and infrastructure.

This module contains common utilities used throughout the application.
"""

from __future__ import annotations

from btstream.utils.exceptions import (
    BTStreamError,
    ConfigurationError,
    EngineFailureError,
    InvalidRangeError,
    InvalidRequestError,
    NotFoundError,
    RangeNotSatisfiableError,
    ResolutionTimeoutError,
)
from btstream.utils.logging_config import correlation_scope, setup_logging

__all__ = [
    # Exceptions
    "BTStreamError",
    "ConfigurationError",
    "EngineFailureError",
    "InvalidRangeError",
    "InvalidRequestError",
    "NotFoundError",
    "RangeNotSatisfiableError",
    "ResolutionTimeoutError",
    # Logging
    "correlation_scope",
    "setup_logging",
]
