"""Rich logging integration for btstream.

Provides the Rich console handler and a plain file formatter.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler


class CorrelationRichHandler(RichHandler):
    """RichHandler that prefixes messages with the request correlation id."""

    LEVEL_COLORS: dict[str, str] = {
        "DEBUG": "dim",
        "INFO": "cyan",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold red",
    }

    def __init__(
        self,
        *args: Any,
        console: Console | None = None,
        show_correlation_id: bool = True,
        **kwargs: Any,
    ) -> None:
        """Initialize RichHandler.

        Args:
            *args: Positional arguments for RichHandler
            console: Optional Rich Console instance
            show_correlation_id: Prefix records that carry a correlation id
            **kwargs: Keyword arguments for RichHandler

        """
        if console is None:
            console = Console(file=sys.stdout, markup=False)
        self.show_correlation_id = show_correlation_id
        super().__init__(*args, console=console, **kwargs)

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        """Render message, prefixing the correlation id when one is bound."""
        corr_id = getattr(record, "correlation_id", None)
        if self.show_correlation_id and corr_id and corr_id != "no-correlation-id":
            message = f"[{corr_id[:8]}] {message}"
        return super().render_message(record, message)


_MARKUP_PATTERN = re.compile(r"\[/?[a-z#][^\]]*\]")


def strip_rich_markup(text: str) -> str:
    """Strip Rich markup tags like [red] or [/bold] from text for file logging."""
    return _MARKUP_PATTERN.sub("", text)


class FileFormatter(logging.Formatter):
    """Formatter for file output that strips Rich markup."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record, stripping Rich markup for file output."""
        return strip_rich_markup(super().format(record))


def create_rich_handler(
    console: Console | None = None,
    level: int | str = logging.INFO,
    show_path: bool = False,
    rich_tracebacks: bool = True,
) -> logging.Handler:
    """Create a RichHandler with correlation id support.

    Args:
        console: Optional Rich Console instance
        level: Log level
        show_path: Whether to show file paths in log output
        rich_tracebacks: Whether to use rich tracebacks

    Returns:
        Configured RichHandler instance

    """
    return CorrelationRichHandler(
        console=console,
        level=level,
        show_path=show_path,
        rich_tracebacks=rich_tracebacks,
    )
