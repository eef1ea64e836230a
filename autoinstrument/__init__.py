"""
autoinstrument - automatic request/error instrumentation for web frameworks.

    import autoinstrument

    autoinstrument.install()
    autoinstrument.configure(sink, slow_request_threshold=500)

    from flask import Flask   # imported after install(): instrumented
"""

__version__ = "0.4.0"

from .config import ConfigError, InstrumentationConfig
from .controller import (
    InstrumentationContext,
    configure,
    get_context,
    reset_context,
    update_config,
)
from .loader import install, instrument_app, instrument_module, uninstall
from .process_hooks import install_process_hooks
from .sinks import LoggingSink

__all__ = [
    "ConfigError",
    "InstrumentationConfig",
    "InstrumentationContext",
    "LoggingSink",
    "configure",
    "get_context",
    "install",
    "install_process_hooks",
    "instrument_app",
    "instrument_module",
    "reset_context",
    "uninstall",
    "update_config",
]
