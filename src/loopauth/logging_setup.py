# Logging setup — Rich console handler for the CLI and library users.
# Created: 2026-10-12

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn", "uvicorn.access", "uvicorn.error")

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Install a RichHandler on the root logger (once) and quiet chatty libraries."""
    global _configured

    root = logging.getLogger()
    root.setLevel(level.upper())

    if not _configured:
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        root.addHandler(handler)
        _configured = True

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
