# src/logging/logger.py - v2
"""Logger factory with JSON and text formatters.

Handlers installed by setup_logging() stamp each record with the current
batch context (job, operation, asset) through ContextFilter.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from rpgmview.logging.context import get_context

ROOT_LOGGER = "rpgmview"

# Third-party loggers that are chatty at DEBUG
NOISY_LOGGERS = ("PIL",)

TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s%(context_tag)s - %(message)s"
TEXT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    context = getattr(record, "context", None)
    if context is None:
        context = get_context().as_dict()
    return context


class ContextFilter(logging.Filter):
    """Attach the current LogContext to each record as `record.context`."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "context"):
            record.context = get_context().as_dict()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with batch context when present."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _record_context(record)
        if context:
            log_entry["context"] = context

        data = getattr(record, "data", None)
        if data:
            log_entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable single-line format for terminals."""

    def __init__(self) -> None:
        super().__init__(fmt=TEXT_FORMAT, datefmt=TEXT_DATEFMT)

    def format(self, record: logging.LogRecord) -> str:
        context = _record_context(record)
        tag = ""
        if "job_id" in context:
            tag += f" [job {context['job_id']}]"
        if "operation" in context:
            tag += f" ({context['operation']})"
        record.context_tag = tag
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the package root. Configured by setup_logging()."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 5,
) -> None:
    """Configure the rpgmview logger tree.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_format: "json" or "text".
        log_file: Optional rotating log file, in addition to stderr.
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
    """
    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    package_logger.handlers.clear()

    formatter: logging.Formatter = JsonFormatter() if log_format == "json" else TextFormatter()
    context_filter = ContextFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        from rpgmview.logging.handlers import create_rotating_handler

        handlers.append(
            create_rotating_handler(log_file, rotation=rotation, retention=retention)
        )

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        package_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
