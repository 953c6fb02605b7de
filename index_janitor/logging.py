"""Central logging helpers.

This module keeps logger configuration in one place so the cleanup loop, the
snapshot job and the CLI all print consistent, grep-friendly messages. Lines
are either pipe-separated text or one JSON object per line for log shippers.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER_NAME = "index_janitor"


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON line with caller file and line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "file": record.filename,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _configure_root_logger(logger: logging.Logger) -> None:
    """Attach a simple console handler to ``logger`` if none exist."""

    if logger.handlers:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger that writes through the package handler.

    Loggers under ``index_janitor.*`` propagate to the package logger, which
    owns the single console handler; other names get their own handler the
    first time they are requested.
    """

    name = name if name else ROOT_LOGGER_NAME
    root = logging.getLogger(ROOT_LOGGER_NAME)
    _configure_root_logger(root)
    root.propagate = False

    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)

    logger = logging.getLogger(name)
    _configure_root_logger(logger)
    logger.propagate = False
    return logger


def configure_logging(level: str = "INFO", json_format: bool = True) -> logging.Logger:
    """Set level and output format for the package logger.

    Unknown level names fall back to INFO.
    """

    root = get_logger(ROOT_LOGGER_NAME)
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    root.setLevel(resolved)

    formatter: logging.Formatter
    if json_format:
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(_LOG_FORMAT, _DATE_FORMAT)
    for handler in root.handlers:
        handler.setFormatter(formatter)
    return root


__all__ = ["JsonFormatter", "configure_logging", "get_logger"]
