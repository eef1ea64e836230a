"""
Shared request lifecycle for framework adapters.

Each adapter knows how to attach to one framework and how to translate that
framework's request into a ``RequestView``.  Everything after that (ignore
rules, payload building, classification, emission) lives here so a new
framework means one new adapter and no changes to shared logic.

Lifecycle, as driven by the adapters::

    trace = adapter.on_request_start(path)        # None -> not instrumented
    adapter.on_request_error(trace, exc)          # zero or more times
    adapter.on_request_complete(trace, view, request, response)   # once
"""

import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..classifier import classify
from ..constants import APP_MARKER
from ..controller import InstrumentationContext
from ..observability import get_logger
from ..payload import RequestView, build_final_payload
from ..redaction import redact

logger = get_logger(__name__)


@dataclass
class RequestTrace:
    """Per-request instrumentation state."""

    start_time: float
    error: Optional[BaseException] = None
    logged: bool = False
    status_code: Optional[int] = None
    response_headers: Dict[str, str] = field(default_factory=dict)
    response_body: Any = None


@dataclass
class ResponseSnapshot:
    """What ``should_ignore`` sees of the response."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None


def describe_error(exc: BaseException) -> Dict[str, Any]:
    """Return the error details attached to an event."""
    return {
        "message": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        "name": type(exc).__name__,
        "code": getattr(exc, "code", None),
    }


class FrameworkAdapter:
    """Base class for framework adapters.

    Subclasses set ``framework`` and ``factory_name`` and implement
    ``instrument(app)``.
    """

    #: Module whose ``factory_name`` attribute gets replaced.
    framework: str = ""
    #: Application class inside that module.
    factory_name: str = ""

    def __init__(self, context: InstrumentationContext):
        self.context = context

    # ── wrapping ─────────────────────────────────────────────────

    def wrap_factory(self, factory: type) -> type:
        """Return a subclass of *factory* whose instances are instrumented."""
        adapter = self

        class Instrumented(factory):  # type: ignore[valid-type, misc]
            def __init__(self, *args: Any, **kwargs: Any) -> None:
                super().__init__(*args, **kwargs)
                adapter.attach(self)

        Instrumented.__name__ = factory.__name__
        Instrumented.__qualname__ = factory.__qualname__
        Instrumented.__module__ = factory.__module__
        Instrumented.__doc__ = factory.__doc__
        Instrumented.__wrapped__ = factory
        return Instrumented

    def attach(self, app: Any) -> Any:
        """Instrument *app* once; failures leave the app untouched."""
        if getattr(app, APP_MARKER, False):
            return app
        try:
            self.instrument(app)
            setattr(app, APP_MARKER, True)
            logger.debug("Instrumented %s application %r", self.framework, app)
        except Exception:
            logger.exception("Failed to instrument %s application", self.framework)
        return app

    def instrument(self, app: Any) -> None:
        raise NotImplementedError

    # ── lifecycle ────────────────────────────────────────────────

    def on_request_start(self, path: str) -> Optional[RequestTrace]:
        """Start timing a request, or return ``None`` if it is not instrumented."""
        if not self.context.active:
            return None
        if self.context.config.is_ignored_path(path or ""):
            return None
        return RequestTrace(start_time=self.context.clock())

    def on_request_error(self, trace: RequestTrace, exc: BaseException) -> None:
        """Correlate *exc* with the request; the first error wins."""
        if trace.error is None:
            trace.error = exc
        if trace.status_code is None:
            trace.status_code = 500

    def on_request_complete(
        self,
        trace: RequestTrace,
        view: RequestView,
        request: Any = None,
        response: Optional[ResponseSnapshot] = None,
    ) -> None:
        """Build, classify and emit the event for a finished request.

        Runs at most once per trace.  Any failure is logged and swallowed so
        the response is never affected.
        """
        if trace.logged:
            return
        trace.logged = True
        try:
            self._emit(trace, view, request, response)
        except Exception:
            logger.exception("Failed to build log event for %s %s", view.method, view.path)

    def _emit(
        self,
        trace: RequestTrace,
        view: RequestView,
        request: Any,
        response: Optional[ResponseSnapshot],
    ) -> None:
        config = self.context.config
        elapsed_ms = int(round((self.context.clock() - trace.start_time) * 1000))
        status_code = trace.status_code
        if status_code is None:
            status_code = 500 if trace.error is not None else 200

        if response is None:
            response = ResponseSnapshot(
                status_code=status_code,
                headers=dict(trace.response_headers),
                body=trace.response_body,
            )
        if config.should_ignore is not None and config.should_ignore(request, response):
            return

        payload = build_final_payload(view, config)
        result = classify(status_code, elapsed_ms, trace.error, config.slow_request_threshold)

        event: Dict[str, Any] = {
            "title": f"{view.method} {view.url}",
            **payload,
            "body": redact(view.body, config.redact_fields),
            "response": redact(response.body, config.redact_fields),
            "response_time_ms": elapsed_ms,
            "status_code": status_code,
            "is_slow": result.is_slow,
            "level": result.level,
            "message": result.message,
        }
        if trace.error is not None:
            event["error"] = describe_error(trace.error)

        self.context.emit(result.level, event)
