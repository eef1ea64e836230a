"""
Instrumentation controller — the sink and configuration adapters consult.

An ``InstrumentationContext`` is handed to every adapter at wrap time.
Adapters read ``context.config`` and ``context.sink`` on each request rather
than copying them, so later ``configure`` / ``update_config`` calls reach
applications that were instrumented earlier.

The module-level functions operate on one process-wide default context.
"""

import time
from typing import Any, Callable, Dict, Optional

from .classifier import LEVELS
from .config import InstrumentationConfig
from .observability import get_logger

logger = get_logger(__name__)


class InstrumentationContext:
    """Holds the active sink and merged configuration.

    Usage::

        context = InstrumentationContext()
        context.configure(sink, ignore_paths=["/healthz"])
    """

    def __init__(
        self,
        sink: Any = None,
        config: Optional[InstrumentationConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            sink: Object exposing ``critical``/``error``/``warning``/``info``.
            config: Starting configuration (defaults when omitted).
            clock: Monotonic time source in seconds.
        """
        self.sink = sink
        self.config = config or InstrumentationConfig()
        self.clock = clock

    @property
    def active(self) -> bool:
        """``True`` once a sink has been registered."""
        return self.sink is not None

    def configure(self, sink: Any, **options: Any) -> None:
        """Register *sink* (replacing any previous one) and merge *options*."""
        self.sink = sink
        self.config = self.config.merged(options)
        logger.info("Auto-instrumentation configured")

    def update_config(self, **options: Any) -> None:
        """Merge *options* without touching the sink."""
        self.config = self.config.merged(options)
        logger.info("Auto-instrumentation config updated")

    def emit(self, level: str, event: Dict[str, Any]) -> None:
        """Forward *event* to ``sink.<level>``; sink failures never propagate.

        Runs on the request path (on the event loop for ASGI apps), so sinks
        must return quickly.
        """
        sink = self.sink
        if sink is None:
            return
        if level not in LEVELS:
            logger.warning("Unknown event level %r, sending as critical", level)
            level = "critical"
        try:
            getattr(sink, level)(event)
        except Exception:
            logger.exception(
                "Sink %s.%s raised while sending %r",
                type(sink).__name__,
                level,
                event.get("title"),
            )


# ── Process-wide default context ─────────────────────────────────

_default_context = InstrumentationContext()


def get_context() -> InstrumentationContext:
    """Return the process-wide default context."""
    return _default_context


def reset_context() -> InstrumentationContext:
    """Replace the default context with a fresh one (testing)."""
    global _default_context
    _default_context = InstrumentationContext()
    return _default_context


def configure(sink: Any, **options: Any) -> None:
    """Register *sink* on the default context and merge *options*."""
    _default_context.configure(sink, **options)


def update_config(**options: Any) -> None:
    """Merge *options* into the default context's configuration."""
    _default_context.update_config(**options)
