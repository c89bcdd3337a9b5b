"""Logger hierarchy and handler setup shared by the CLI and service."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT_LOGGER = "infraplan"

CONSOLE_FORMAT = "[infraplan] %(levelname)s %(message)s"
# Verbose console lines also name the emitting component (builder, policy, ...).
VERBOSE_CONSOLE_FORMAT = "[infraplan] %(levelname)s %(component)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class _ComponentFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        prefix = ROOT_LOGGER + "."
        record.component = record.name[len(prefix):] if record.name.startswith(prefix) else record.name
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """`get_logger("builder")` -> the `infraplan.builder` logger."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Route `infraplan.*` records to stderr, plus `log_file` when given.

    Safe to call repeatedly: handlers from an earlier call are closed first.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False
    _drop_handlers(logger)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.addFilter(_ComponentFilter())
    console.setFormatter(logging.Formatter(VERBOSE_CONSOLE_FORMAT if verbose else CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(sink)
        logger.setLevel(logging.DEBUG)

    return logger


def _drop_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


__all__ = ["configure_logging", "get_logger"]
