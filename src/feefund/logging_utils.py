"""Logging setup for the feefund CLI and embedding applications."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: int = logging.INFO, console: Console | None = None) -> None:
    """Install a rich handler on the root logger unless handlers are already present."""
    root = logging.getLogger()
    if root.handlers:
        return
    handler = RichHandler(console=console or Console(stderr=True), show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)
    root.setLevel(level)
    # keep transport chatter out of DEBUG runs
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    logging.getLogger("httpcore").setLevel(max(level, logging.WARNING))
