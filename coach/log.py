"""Logging setup.

Logs go to stderr through Rich so they never interleave with the MCP
stdio transport on stdout.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_HANDLER_NAME = "coach-rich"


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a Rich stderr handler to the ``coach`` logger tree.

    Safe to call more than once; the handler is only installed the first
    time and later calls just update the level.

    Args:
        level: Logging level name (e.g. "INFO", "DEBUG").

    Returns:
        The configured ``coach`` logger.
    """
    root = logging.getLogger("coach")
    root.setLevel(level.upper())

    if not any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)

    return root
