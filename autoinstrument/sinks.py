"""
Reference sink that writes events to a stdlib logger.

Real deployments hand ``configure`` a client that ships events to a log
service; ``LoggingSink`` is the drop-in for local development and for hosts
that already collect process logs.
"""

import logging
from typing import Any, Dict, Optional

from .observability import get_logger

_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
}


class LoggingSink:
    """Forward each event to *logger* at the matching level."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or get_logger("events")

    def _log(self, level: str, event: Dict[str, Any]) -> None:
        self.logger.log(
            _LEVELS[level],
            "%s: %s",
            event.get("title", ""),
            event.get("message", ""),
            extra={
                "title": event.get("title"),
                "status_code": event.get("status_code"),
                "response_time_ms": event.get("response_time_ms"),
                "is_slow": event.get("is_slow"),
                "method": event.get("method"),
                "path": event.get("path"),
                "request_id": event.get("request_id"),
                "event": event,
            },
        )

    def critical(self, event: Dict[str, Any]) -> None:
        self._log("critical", event)

    def error(self, event: Dict[str, Any]) -> None:
        self._log("error", event)

    def warning(self, event: Dict[str, Any]) -> None:
        self._log("warning", event)

    def info(self, event: Dict[str, Any]) -> None:
        self._log("info", event)
