"""
Logging helpers for mapsync.

Library modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves; the package only attaches a NullHandler, so
records reach whatever the host application set up on the root logger.
``setup_logging`` is for entry points (the CLI) that own the process.
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, Mapping

PACKAGE_LOGGER = "mapsync"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class MapSyncFormatter(logging.Formatter):
    """One line per record: time, level, short logger name, message, context."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = False, include_timestamp: bool = True):
        super().__init__()
        self.use_colors = use_colors
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        parts = []
        if self.include_timestamp:
            moment = datetime.fromtimestamp(record.created, UTC)
            parts.append(moment.strftime("%H:%M:%S.") + f"{int(record.msecs):03d}")

        level = f"{record.levelname:8}"
        if self.use_colors and record.levelname in self.COLORS:
            level = f"{self.COLORS[record.levelname]}{level}{self.RESET}"
        parts.append(level)
        parts.append(f"[{short_name(record.name):20}]")
        parts.append(record.getMessage())

        context = getattr(record, "context", None)
        if context:
            parts.append("| " + format_context(context))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def short_name(name: str) -> str:
    """Logger name without the package prefix."""
    prefix = PACKAGE_LOGGER + "."
    return name[len(prefix):] if name.startswith(prefix) else name


def format_context(context: Mapping[str, Any]) -> str:
    return ", ".join(f"{key}={value}" for key, value in context.items())


class _MapSyncHandler(logging.Handler):
    """Marker mixin so setup_logging can replace only its own handlers."""


class _ConsoleHandler(logging.StreamHandler, _MapSyncHandler):
    """Writes to whatever ``sys.stderr`` is when the record is emitted."""

    def __init__(self) -> None:
        super().__init__(sys.stderr)

    def emit(self, record: logging.LogRecord) -> None:
        self.stream = sys.stderr
        super().emit(record)


class _FileHandler(logging.FileHandler, _MapSyncHandler):
    pass


def setup_logging(
    level: LogLevel = "INFO",
    log_file: str | Path | None = None,
    console_output: bool = True,
) -> logging.Logger:
    """Attach console and/or file handlers to the ``mapsync`` logger.

    Calling it again replaces the handlers a previous call installed and
    leaves any others (including the host's) alone. Propagation to the
    root logger is not changed.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        if isinstance(handler, _MapSyncHandler):
            package_logger.removeHandler(handler)
            handler.close()

    if console_output:
        console = _ConsoleHandler()
        console.setFormatter(MapSyncFormatter(use_colors=sys.stderr.isatty()))
        package_logger.addHandler(console)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(MapSyncFormatter())
        package_logger.addHandler(file_handler)

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``mapsync`` namespace (the prefix is added when missing)."""
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def log_operation(logger: logging.Logger, operation: str, details: Mapping[str, Any] | None = None) -> None:
    """INFO record for a completed operation; ``details`` travel as record context."""
    logger.info(operation, extra={"context": dict(details or {})})


def log_error(
    logger: logging.Logger,
    operation: str,
    error: BaseException,
    context: Mapping[str, Any] | None = None,
) -> None:
    """ERROR record with the traceback of ``error`` attached."""
    logger.error(
        f"{operation} failed: {type(error).__name__}: {error}",
        exc_info=error,
        extra={"context": dict(context or {})},
    )
