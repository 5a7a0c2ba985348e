"""Logging setup for the CLI and long-running job hosts."""
from __future__ import annotations

import logging
import threading

from rich.console import Console
from rich.logging import RichHandler

# Stage-boundary messages go here; job hosts filter on this name.
GADGET_LOGGER = "zkvm_blueprint.gadget"

_configured = False
_lock = threading.Lock()


def configure_logging(level: str | int = "INFO") -> None:
    """Install a stderr RichHandler on the package logger (idempotent)."""
    global _configured
    root = logging.getLogger("zkvm_blueprint")
    root.setLevel(level if isinstance(level, int) else level.upper())
    with _lock:
        if _configured:
            return
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)
        _configured = True


__all__ = ["GADGET_LOGGER", "configure_logging"]
