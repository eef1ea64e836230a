"""
Secret scrubbing filter for diagnostic log records.

Request URLs and exception messages end up in the engine's own diagnostics;
this filter masks bearer tokens and ``key=value`` secrets before the line is
written.  Installed on every handler created by ``get_logger``.
"""

import logging
import re
from typing import FrozenSet, Pattern

from ..constants import REDACTED

_SENSITIVE_PATTERNS: list[tuple[Pattern, str]] = [
    # Bearer tokens / Authorization headers
    (re.compile(r"(Bearer\s+)[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE), rf"\1{REDACTED}"),
    # Generic API keys / tokens in key=value or key:value (query strings too)
    (
        re.compile(
            r"(?i)(api[_-]?key|token|secret|password|passwd|authorization|"
            r"access_token|refresh_token|private_key)"
            r"(\s*[:=]\s*)"
            r"(['\"]?)([^\s'\"&]{4,})\3"
        ),
        rf"\1\2\3{REDACTED}\3",
    ),
]

# Record attribute names that are always fully redacted when present.
_REDACT_ATTRS: FrozenSet[str] = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "authorization",
    }
)


class SecretScrubber(logging.Filter):
    """Logging filter that scrubs secrets from log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        msg = record.getMessage()
        record.msg = _scrub_text(msg)
        record.args = None  # prevent double-formatting

        for attr in _REDACT_ATTRS:
            if hasattr(record, attr):
                setattr(record, attr, REDACTED)

        return True


def _scrub_text(text: str) -> str:
    """Apply all sensitive-data patterns to *text* and return the result."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text
