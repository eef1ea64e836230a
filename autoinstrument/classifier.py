"""
Severity classification for completed requests.

Maps status code, elapsed time and any captured error to a sink level and a
human-readable message.  Rules are evaluated in order, first match wins.
"""

from typing import NamedTuple, Optional

CRITICAL = "critical"
ERROR = "error"
WARNING = "warning"
INFO = "info"

LEVELS = (CRITICAL, ERROR, WARNING, INFO)


class Classification(NamedTuple):
    level: str
    message: str
    is_slow: bool


def classify(
    status_code: int,
    elapsed_ms: int,
    error: Optional[BaseException],
    threshold_ms: int,
) -> Classification:
    """Classify a finished request.

    ============================  ========  ====================================
    condition                     level     message
    ============================  ========  ====================================
    status >= 500                 critical  error message, else generic
    status >= 400                 error     404 text, else error message, else
                                            generic
    elapsed > threshold           warning   ``Slow request detected (Nms)``
    otherwise                     info      ``Request completed successfully``
    ============================  ========  ====================================

    ``is_slow`` is computed independently of the branch taken.
    """
    is_slow = elapsed_ms > threshold_ms
    error_message = _error_message(error)

    if status_code >= 500:
        return Classification(CRITICAL, error_message or "Server error occurred", is_slow)
    if status_code >= 400:
        if status_code == 404:
            return Classification(ERROR, "Route not found", is_slow)
        return Classification(ERROR, error_message or "Client error", is_slow)
    if is_slow:
        return Classification(WARNING, f"Slow request detected ({elapsed_ms}ms)", is_slow)
    return Classification(INFO, "Request completed successfully", is_slow)


def _error_message(error: Optional[BaseException]) -> str:
    if error is None:
        return ""
    return str(error)
