"""Logging setup for the dxfix CLI."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Install a single rich handler on the package logger.

    Library modules only call ``logging.getLogger(__name__)``; handlers are
    configured here, once, by the CLI.

    Args:
        verbose: Log at DEBUG instead of WARNING.
        console: Console to log to. Defaults to a stderr console.
    """
    logger = logging.getLogger("dxfix")

    # Clear existing handlers to prevent duplicate logs across invocations
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=verbose,
        markup=False,
        rich_tracebacks=verbose,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
