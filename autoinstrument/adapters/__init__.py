"""
Framework adapters.

Submodules import their framework at module level, so they are loaded on
demand by ``autoinstrument.loader`` rather than from here.
"""

from .base import FrameworkAdapter, RequestTrace, ResponseSnapshot, describe_error

__all__ = [
    "FrameworkAdapter",
    "RequestTrace",
    "ResponseSnapshot",
    "describe_error",
]
