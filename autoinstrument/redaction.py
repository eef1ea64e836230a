"""
Recursive key-based redaction of request and response data.

Every key whose lowercased name contains one of the configured terms has its
value replaced with ``[REDACTED]``, at any nesting depth.  Sequence elements
are recursed wholesale.  There is no cycle detection: a self-referential
structure recurses until Python raises ``RecursionError``.
"""

import dataclasses
from collections.abc import Mapping
from typing import Any, Iterable, Tuple

from .constants import REDACTED

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def redact(value: Any, redact_fields: Iterable[str]) -> Any:
    """Return a redacted copy of *value*.

    Args:
        value: Any tree of mappings, sequences and scalars.
        redact_fields: Case-insensitive substrings matched against key names.
    """
    terms = _normalise_terms(redact_fields)
    return _redact(value, terms)


def is_sensitive_key(key: Any, redact_fields: Iterable[str]) -> bool:
    """``True`` if *key* contains any of *redact_fields* (case-insensitive)."""
    return _matches(str(key).lower(), _normalise_terms(redact_fields))


def _redact(value: Any, terms: Tuple[str, ...]) -> Any:
    value = _to_plain(value)

    if isinstance(value, Mapping):
        out = {}
        for key, item in value.items():
            if _matches(str(key).lower(), terms):
                out[key] = REDACTED
            else:
                out[key] = _redact(item, terms)
        return out

    if isinstance(value, _SEQUENCE_TYPES):
        return [_redact(item, terms) for item in value]

    return value


def _to_plain(value: Any) -> Any:
    """Convert model-like wrappers (pydantic, ORM rows, dataclasses) to dicts."""
    if value is None or isinstance(value, (str, bytes, int, float, bool)):
        return value
    if isinstance(value, (Mapping,) + _SEQUENCE_TYPES):
        return value
    for method in ("model_dump", "to_dict"):
        convert = getattr(value, method, None)
        if callable(convert):
            return convert()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _matches(key: str, terms: Tuple[str, ...]) -> bool:
    return any(term in key for term in terms)


def _normalise_terms(redact_fields: Iterable[str]) -> Tuple[str, ...]:
    return tuple(str(f).lower() for f in (redact_fields or ()) if f)
