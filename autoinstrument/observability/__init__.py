"""
Observability package — diagnostic logging for the instrumentation engine.

Provides:
- ``get_logger``: namespaced logger with JSON or coloured console output
- ``SecretScrubber``: filters secrets from diagnostic log records
"""

from .logging import get_logger
from .pii import SecretScrubber

__all__ = [
    "get_logger",
    "SecretScrubber",
]
