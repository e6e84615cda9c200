"""Rich logging integration for btclient."""

from __future__ import annotations

import logging
import sys
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text


class CorrelationRichHandler(RichHandler):
    """RichHandler that appends the correlation id to each message."""

    def __init__(
        self,
        *args: Any,
        console: Console | None = None,
        show_correlation: bool = False,
        **kwargs: Any,
    ) -> None:
        """Initialize handler.

        Args:
            *args: Positional arguments for RichHandler
            console: Optional Rich Console instance
            show_correlation: Whether to append the correlation id
            **kwargs: Keyword arguments for RichHandler

        """
        if console is None:
            console = Console(file=sys.stderr)
        self.show_correlation = show_correlation
        super().__init__(*args, console=console, **kwargs)

    def render_message(self, record: logging.LogRecord, message: str) -> Any:
        """Render message text, optionally tagged with the correlation id."""
        text = super().render_message(record, message)
        corr = getattr(record, "correlation_id", None)
        if (
            self.show_correlation
            and corr
            and corr != "no-correlation-id"
            and isinstance(text, Text)
        ):
            text.append(f" ({corr[:8]})", style="dim")
        return text


def create_rich_handler(
    level: int | str = logging.INFO,
    console: Console | None = None,
    show_correlation: bool = False,
) -> CorrelationRichHandler:
    """Create a configured Rich console handler."""
    return CorrelationRichHandler(
        level=level,
        console=console,
        show_correlation=show_correlation,
        rich_tracebacks=True,
        show_path=False,
        markup=False,
    )
