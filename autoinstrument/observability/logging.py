"""
Diagnostic logging for the instrumentation layer itself.

Everything the engine has to say about its own health (hook installed,
adapter attach failure, sink raised) goes through loggers under the
``autoinstrument`` namespace.  Output is a single JSON object per line when
``AUTOINSTRUMENT_LOG_FORMAT=json``, coloured text otherwise, with guaranteed
keys: ``timestamp``, ``level``, ``logger``, ``message``, ``service``.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from ..constants import (
    APP_VERSION,
    ENV_LOG_FILE,
    ENV_LOG_FORMAT,
    ENV_LOG_LEVEL,
    LOG_BACKUP_COUNT,
    LOG_MAX_BYTES,
    SERVICE_NAME,
)
from .pii import SecretScrubber

ROOT_LOGGER_NAME = "autoinstrument"


# ── JSON Formatter ───────────────────────────────────────────────


class _JsonFormatter(logging.Formatter):
    """Emit each record as a single-line JSON object."""

    # Keys that are promoted from ``extra`` to the top-level JSON.
    _PROMOTE_KEYS = frozenset(
        {
            "title",
            "status_code",
            "response_time_ms",
            "is_slow",
            "method",
            "path",
            "request_id",
            "framework",
            "error_type",
            "event",
        }
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
            "version": APP_VERSION,
            "thread": record.threadName,
        }

        # Add source location for DEBUG / ERROR+
        if record.levelno <= logging.DEBUG or record.levelno >= logging.ERROR:
            entry["func"] = record.funcName
            entry["line"] = record.lineno
            entry["file"] = record.pathname

        for key in self._PROMOTE_KEYS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
            entry["error_type"] = record.exc_info[0].__name__

        return json.dumps(entry, default=str, ensure_ascii=False)


# ── Plain Formatter (dev / console) ─────────────────────────────


class _DevFormatter(logging.Formatter):
    """Human-readable coloured output for local development."""

    _COLORS = {
        "DEBUG": "\033[36m",     # cyan
        "INFO": "\033[32m",      # green
        "WARNING": "\033[33m",   # yellow
        "ERROR": "\033[31m",     # red
        "CRITICAL": "\033[35m",  # magenta
    }
    _RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self._COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        status = getattr(record, "status_code", None)
        suffix = f" [{status}]" if status is not None else ""
        base = (
            f"{color}{ts} {record.levelname:<8}{self._RESET} "
            f"{record.name} {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


# ── Logger Factory ───────────────────────────────────────────────


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``autoinstrument`` namespace.

    Handlers are attached once, to the namespace root, so every module
    logger shares the same output configuration.

    Args:
        name: Usually ``__name__`` of the calling module.
    """
    _configure_root()
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def _configure_root(level: Optional[int] = None) -> logging.Logger:
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    if level is None:
        level = _env_level()
    logger.setLevel(level)

    if logger.handlers:
        for h in logger.handlers:
            h.setLevel(level)
        return logger

    use_json = os.environ.get(ENV_LOG_FORMAT, "").lower() == "json"

    # ── Console handler: JSON or coloured ────────────────────────
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(_JsonFormatter() if use_json else _DevFormatter())
    console_handler.addFilter(SecretScrubber())
    logger.addHandler(console_handler)

    # ── Optional JSON file handler ───────────────────────────────
    log_file = os.environ.get(ENV_LOG_FILE, "")
    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(_JsonFormatter())
        file_handler.addFilter(SecretScrubber())
        logger.addHandler(file_handler)

    # Own handlers attached; keep lines from repeating through the host's root.
    logger.propagate = False
    return logger


def _env_level() -> int:
    raw = os.environ.get(ENV_LOG_LEVEL, "").strip().upper()
    if not raw:
        return logging.INFO
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO
