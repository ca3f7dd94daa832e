"""Logging utilities for covgate commands."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

_LOGGER_NAME = "covgate"
_CONSOLE_FORMAT = "[covgate] %(levelname)s %(message)s"
# Blame workers log from pool threads, so verbose output names the thread.
_VERBOSE_FORMAT = "[covgate] %(levelname)s %(threadName)s %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the covgate hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure console output and an optional file sink that always records DEBUG."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI is invoked multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(
        logging.Formatter(_VERBOSE_FORMAT if verbose else _CONSOLE_FORMAT)
    )
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


@contextmanager
def log_stage(logger: logging.Logger, stage: str) -> Iterator[None]:
    """Log the start, duration and failure of one pipeline stage."""
    logger.debug("%s: started", stage)
    started = time.perf_counter()
    try:
        yield
    except Exception:
        logger.debug("%s: failed after %.2fs", stage, time.perf_counter() - started)
        raise
    logger.info("%s: done in %.2fs", stage, time.perf_counter() - started)


__all__ = ["configure_logging", "get_logger", "log_stage"]
