"""Logging configuration for the dashboard server and the terminal client."""

from __future__ import annotations

import logging
from pathlib import Path
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Per-request INFO lines from these libraries drown out the poll loops.
_CHATTY_LOGGERS = ("httpx", "httpcore")


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Log to stdout and, when ``log_file`` is set, append to that file as well."""

    resolved = getattr(logging, level.upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=handlers, force=True)
    chatty_level = resolved if resolved <= logging.DEBUG else max(resolved, logging.WARNING)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["LOG_FORMAT", "configure_logging", "get_logger"]
