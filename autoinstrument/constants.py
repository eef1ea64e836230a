"""
Centralised constants for the autoinstrument package.

Defaults, markers and limits live here so they can be imported by any
module without circular dependencies.
"""

# ── Version ──────────────────────────────────────────────────────
APP_VERSION = "0.4.0"
SERVICE_NAME = "autoinstrument"

# ── Instrumentation defaults ─────────────────────────────────────
DEFAULT_IGNORE_PATHS = ("/health", "/metrics")
DEFAULT_SLOW_REQUEST_THRESHOLD_MS = 1000
DEFAULT_REDACT_FIELDS = (
    "password",
    "token",
    "authorization",
    "secret",
    "apikey",
    "api_key",
)

# Replacement written in place of any redacted value.
REDACTED = "[REDACTED]"

# Request / response bodies larger than this are not attached to events.
MAX_CAPTURED_BODY_BYTES = 64 * 1024

# ── Markers ──────────────────────────────────────────────────────
# Set on a framework module once its application class has been replaced.
MODULE_MARKER = "__autoinstrument_wrapped__"
# Set on an application instance once hooks are attached.
APP_MARKER = "_autoinstrument_instrumented"
# Key under which the RequestTrace is stored in the WSGI environ / ASGI scope.
TRACE_KEY = "autoinstrument.trace"

# ── Event titles for process-level hooks ─────────────────────────
UNCAUGHT_EXCEPTION_TITLE = "Uncaught Exception"
UNHANDLED_REJECTION_TITLE = "Unhandled Rejection"

# ── Environment variables ────────────────────────────────────────
ENV_PREFIX = "AUTOINSTRUMENT_"
ENV_CONFIG_PATH = "AUTOINSTRUMENT_CONFIG"
ENV_LOG_FILE = "AUTOINSTRUMENT_LOG_FILE"
ENV_LOG_FORMAT = "AUTOINSTRUMENT_LOG_FORMAT"
ENV_LOG_LEVEL = "AUTOINSTRUMENT_LOG_LEVEL"

# ── Diagnostic log rotation ──────────────────────────────────────
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3
