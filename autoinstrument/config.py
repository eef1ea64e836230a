"""
Instrumentation configuration: defaults, merge rules and bootstrap loading.

``InstrumentationConfig`` is immutable; every ``configure`` /
``update_config`` call produces a new instance by overlaying the supplied
options on the previous one.  Options left unset (or ``None``) keep their
previous value.  Option shapes are not validated.

Bootstrap helpers read the same options from the environment or from a JSON
file whose string values may contain ``${ENV_VAR:-default}`` placeholders.
"""

import dataclasses
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .constants import (
    DEFAULT_IGNORE_PATHS,
    DEFAULT_REDACT_FIELDS,
    DEFAULT_SLOW_REQUEST_THRESHOLD_MS,
    ENV_PREFIX,
)
from .observability import get_logger
from .payload import default_build_request_payload

logger = get_logger(__name__)


class ConfigError(Exception):
    """Raised when an options file is missing or invalid."""


@dataclass(frozen=True)
class InstrumentationConfig:
    """Process-wide instrumentation options."""

    ignore_paths: Tuple[str, ...] = DEFAULT_IGNORE_PATHS
    should_ignore: Optional[Callable[[Any, Any], bool]] = None
    slow_request_threshold: int = DEFAULT_SLOW_REQUEST_THRESHOLD_MS
    redact_fields: Tuple[str, ...] = DEFAULT_REDACT_FIELDS
    build_request_payload: Callable[[Any], Dict[str, Any]] = default_build_request_payload
    context_hook: Optional[Callable[[Any], Optional[Dict[str, Any]]]] = None

    def merged(self, options: Optional[Mapping[str, Any]] = None) -> "InstrumentationConfig":
        """Return a copy with every non-``None`` option overlaid."""
        changes = normalise_options(options or {})
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def is_ignored_path(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.ignore_paths or ())


# camelCase spellings accepted alongside the field names
_ALIASES: Dict[str, str] = {
    "ignorePaths": "ignore_paths",
    "shouldIgnore": "should_ignore",
    "slowRequestThreshold": "slow_request_threshold",
    "slowRequestThresholdMs": "slow_request_threshold",
    "slow_request_threshold_ms": "slow_request_threshold",
    "redactFields": "redact_fields",
    "buildRequestPayload": "build_request_payload",
    "contextHook": "context_hook",
}

_FIELDS = frozenset(f.name for f in dataclasses.fields(InstrumentationConfig))
_TUPLE_FIELDS = frozenset({"ignore_paths", "redact_fields"})


def normalise_options(options: Mapping[str, Any]) -> Dict[str, Any]:
    """Map option names onto config fields and drop unset values."""
    out: Dict[str, Any] = {}
    for key, value in options.items():
        name = _ALIASES.get(key, key)
        if name not in _FIELDS:
            logger.debug("Ignoring unknown instrumentation option %r", key)
            continue
        if value is None:
            continue
        if name in _TUPLE_FIELDS and isinstance(value, (list, set, frozenset)):
            value = tuple(value)
        elif name in _TUPLE_FIELDS and isinstance(value, str):
            value = (value,)
        out[name] = value
    return out


# ── Bootstrap loading ────────────────────────────────────────────


def load_options(path: str) -> Dict[str, Any]:
    """
    Load instrumentation options from a JSON file and resolve
    ``${ENV_VAR:-default}`` placeholders in all string values.

    Only data options make sense in a file: ``ignore_paths``,
    ``slow_request_threshold`` and ``redact_fields`` (camelCase accepted).
    Keys come back normalised to field names.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    full_path = Path(path)
    if not full_path.exists():
        raise ConfigError(f"Options file not found: {full_path}")

    try:
        with open(full_path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {full_path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Options file must contain a JSON object: {full_path}")

    options = normalise_options(_resolve(data))
    threshold = options.get("slow_request_threshold")
    if isinstance(threshold, str):
        try:
            options["slow_request_threshold"] = int(threshold)
        except ValueError as exc:
            raise ConfigError(
                f"slow_request_threshold must be an integer in {full_path}: {threshold!r}"
            ) from exc
    return options


def options_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Read options from ``AUTOINSTRUMENT_*`` variables.

    Malformed values are logged and skipped so the defaults stay in force.
    """
    env = os.environ if environ is None else environ
    options: Dict[str, Any] = {}

    for name in ("ignore_paths", "redact_fields"):
        raw = env.get(ENV_PREFIX + name.upper(), "")
        items = [item.strip() for item in raw.split(",") if item.strip()]
        if items:
            options[name] = tuple(items)

    raw_threshold = env.get(ENV_PREFIX + "SLOW_REQUEST_THRESHOLD", "").strip()
    if raw_threshold:
        try:
            options["slow_request_threshold"] = int(raw_threshold)
        except ValueError:
            logger.warning(
                "Ignoring non-integer %sSLOW_REQUEST_THRESHOLD=%r", ENV_PREFIX, raw_threshold
            )

    return options


# ── Private helpers ──────────────────────────────────────────────

_PLACEHOLDER_RE = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")


def _resolve(obj: Any) -> Any:
    """Recursively resolve ``${ENV_VAR:-default}`` in string values."""
    if isinstance(obj, str):
        return _PLACEHOLDER_RE.sub(_replace_match, obj)
    elif isinstance(obj, dict):
        return {k: _resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve(v) for v in obj]
    return obj


def _replace_match(m: re.Match) -> str:
    var = m.group(1)
    default = m.group(2) if m.group(2) is not None else ""
    return os.environ.get(var, default)
