"""Logging utilities for gamepipe commands and builds."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "gamepipe"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the gamepipe hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the gamepipe logger with console output and optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI is invoked multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("[gamepipe] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        logger.addHandler(build_file_handler(log_file, level=level))

    return logger


class ThreadFilter(logging.Filter):
    """Pass only records emitted from one thread."""

    def __init__(self, thread_id: int) -> None:
        super().__init__()
        self.thread_id = thread_id

    def filter(self, record: logging.LogRecord) -> bool:
        return record.thread == self.thread_id


def build_file_handler(
    log_file: Path, *, level: int = logging.DEBUG, thread_id: int | None = None
) -> logging.FileHandler:
    """Return a file handler using the detailed gamepipe log format.

    With ``thread_id`` the handler only records that thread's messages, so
    builds running side by side in a thread pool keep separate logs.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    if thread_id is not None:
        file_handler.addFilter(ThreadFilter(thread_id))
    return file_handler


__all__ = ["ThreadFilter", "build_file_handler", "configure_logging", "get_logger"]
