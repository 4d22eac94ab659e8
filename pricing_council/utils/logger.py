"""Logging setup for the CLI and the API server.

Records are single-line so analysis runs for several organizations can be
grepped by their `[stage]` tags. Call setup_logging() once at startup.
"""

from __future__ import annotations

import logging
from typing import Optional

FORMATS = {
    "text": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    "short": "%(levelname)s %(message)s",
}

QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "pymongo": logging.WARNING,
    "langgraph": logging.INFO,
    "uvicorn.access": logging.WARNING,
}


def setup_logging(level: str = "INFO", fmt: str = "text", log_file: Optional[str] = None) -> None:
    """Attach a stderr handler (and optionally a file handler) to the root logger."""
    root = logging.getLogger()
    if getattr(root, "_pricing_council_configured", False):
        return

    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level '{level}'")
    if fmt not in FORMATS:
        raise ValueError(f"Unknown log format '{fmt}' (expected one of {sorted(FORMATS)})")

    formatter = logging.Formatter(FORMATS[fmt], datefmt="%Y-%m-%dT%H:%M:%S")
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(numeric)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
    root._pricing_council_configured = True
