"""Logging setup for the command line entry point."""

import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", console: Console | None = None) -> None:
    """
    Route the root logger through rich.

    Safe to call more than once; previously installed handlers are replaced.
    """
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # psycopg_pool logs every pool maintenance task at INFO
    logging.getLogger("psycopg").setLevel(logging.WARNING)
