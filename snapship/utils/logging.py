"""
Logging Utility - Structured Logging

Provides centralized logging configuration for the backup job. Log records go
to stdout and to a timestamped file under the log directory, either as
human-readable text or as one JSON object per line.

Usage:
    from snapship.utils.logging import get_logger, setup_logging

    log_path = setup_logging(level="info", format_type="json", log_dir="logs")
    logger = get_logger(__name__)
    logger.info("Backup started", extra={"rows": 100})

Components never call setup_logging themselves; they receive a logger at
construction and the CLI or scheduler owns the handlers.
"""

import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

import orjson

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes present on every LogRecord; anything else came in through `extra=`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}

_HANDLER_TAG = "_snapship_handler"


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON line, including `extra=` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return orjson.dumps(payload, default=str).decode("utf-8")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def _build_formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    level: Union[int, str] = "INFO",
    format_type: str = "text",
    log_dir: Optional[str] = "logs",
    max_bytes: int = 0,
    backup_count: int = 5,
) -> Optional[Path]:
    """Configure application-wide logging.

    Safe to call more than once: handlers installed by a previous call are
    closed and replaced.

    Args:
        level: Log level name or number (DEBUG, INFO, WARN, WARNING, ERROR, CRITICAL)
        format_type: Log format ('json' or 'text')
        log_dir: Directory for the log file, or None for stdout only
        max_bytes: Rotate the log file at this size; 0 disables rotation
        backup_count: Rotated files to keep

    Returns:
        Path of the log file, or None when logging to stdout only
    """
    if isinstance(level, str):
        name = level.upper()
        if name == "WARN":
            name = "WARNING"
        level = getattr(logging, name, logging.INFO)

    root = logging.getLogger()
    shutdown_logging()
    root.setLevel(level)

    formatter = _build_formatter(format_type)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    setattr(console, _HANDLER_TAG, True)
    root.addHandler(console)

    if log_dir is None:
        return None

    directory = Path(log_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        root.error("Failed to create logs directory %s: %s", directory, e)
        return None

    stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_path = directory / f"app_{stamp}.log"

    if max_bytes > 0:
        file_handler: logging.Handler = RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    else:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")

    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_TAG, True)
    root.addHandler(file_handler)

    return log_path


def shutdown_logging() -> None:
    """Close and detach handlers installed by setup_logging."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()
