"""
Logging setup for the App Store CLI.

Console output goes to stderr (colored on a terminal). ``--log-file`` adds
a rotating file, one JSON object per line with ``--json-logs``. Records
emitted inside a ``LogContext`` carry its fields in both outputs.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s%(context)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d] %(message)s%(context)s"

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore")


def _context_of(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_data", None) or {}


class ContextFormatter(logging.Formatter):
    """Plain text formatter that appends LogContext fields as key=value."""

    def format(self, record: logging.LogRecord) -> str:
        context = _context_of(record)
        record.context = (
            " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
            if context else ""
        )
        return super().format(record)


class ColoredFormatter(ContextFormatter):
    """ContextFormatter with the level name colored for terminals."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        record.levelname = f"{self.COLORS.get(record.levelno, '')}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    """One JSON object per record; context fields go under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _context_of(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def setup_logging(
    level: int = logging.WARNING,
    log_file: Optional[Union[str, Path]] = None,
    json_logs: bool = False,
) -> None:
    """
    Configure the root logger for a CLI run.

    Args:
        level: Console level
        log_file: Also log to this rotating file, always at DEBUG
        json_logs: Write the file as JSON lines instead of text
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    formatter_cls = ColoredFormatter if sys.stderr.isatty() else ContextFormatter
    console.setFormatter(formatter_cls(CONSOLE_FORMAT))
    root.addHandler(console)

    root_level = level
    if log_file:
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter() if json_logs else ContextFormatter(FILE_FORMAT))
        root.addHandler(file_handler)
        root_level = logging.DEBUG

    root.setLevel(root_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class LogContext:
    """
    Attach fields to every record logged inside the block.

    The record factory is process-global, so only wrap synchronous
    sections; a context held across an ``await`` leaks into other tasks.

    Example:
        with LogContext(app_id="io.zos.notes", operation="install"):
            logger.info("Installed Notes 1.1.0")
    """

    def __init__(self, **fields: Any):
        self.fields = fields
        self._previous = None

    def __enter__(self) -> "LogContext":
        previous = self._previous = logging.getLogRecordFactory()
        fields = self.fields

        def factory(*args, **kwargs):
            record = previous(*args, **kwargs)
            record.extra_data = {**getattr(record, "extra_data", {}), **fields}
            return record

        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, *exc_info) -> None:
        logging.setLogRecordFactory(self._previous)
