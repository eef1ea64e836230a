"""
Starlette / FastAPI adapter — instruments the ASGI response call sites.

ASGI has no single "response finished" hook, so the middleware patches the
per-request ``send`` callable.  ``http.response.start`` records status and
headers, ``http.response.body`` buffers the body, and the final body message
completes the request.  A request can reach completion from several call
sites (final body, exception, the app returning early); the ``logged`` flag
on the trace keeps emission to exactly one event.

The middleware is spliced in when the app builds its middleware stack, at
the outer end of the host's middleware (just inside
``ServerErrorMiddleware``), so requests answered early by host middleware
are still reported.  Exceptions raised downstream are correlated to the trace
and re-raised so Starlette's own error handling still produces the response;
exceptions the app's registered exception handlers turn into a response are
correlated by wrapping those handlers.
"""

import functools
import inspect
import json
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qsl

from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..constants import MAX_CAPTURED_BODY_BYTES, TRACE_KEY
from ..observability import get_logger
from ..payload import RequestView
from .base import FrameworkAdapter, RequestTrace

logger = get_logger(__name__)


class StarletteAdapter(FrameworkAdapter):
    """Attach ``InstrumentationMiddleware`` to a Starlette application."""

    framework = "starlette.applications"
    factory_name = "Starlette"

    def instrument(self, app: Starlette) -> None:
        app.build_middleware_stack = self._wrap_build(app, app.build_middleware_stack)

    def _wrap_build(self, app: Starlette, build: Callable) -> Callable:
        adapter = self

        @functools.wraps(build)
        def build_middleware_stack():
            user_middleware = app.user_middleware
            exception_handlers = app.exception_handlers
            # user_middleware[0] ends up outermost.
            app.user_middleware = [
                Middleware(InstrumentationMiddleware, adapter=adapter),
                *user_middleware,
            ]
            app.exception_handlers = {
                key: adapter._capture_handled(handler)
                for key, handler in exception_handlers.items()
            }
            try:
                return build()
            finally:
                app.user_middleware = user_middleware
                app.exception_handlers = exception_handlers

        return build_middleware_stack

    def _capture_handled(self, handler: Callable) -> Callable:
        """Wrap an exception handler so the exception is stashed on the trace."""
        if inspect.iscoroutinefunction(handler):

            @functools.wraps(handler)
            async def capture(request, exc):
                self._record_handled(request.scope, exc)
                return await handler(request, exc)

        else:

            @functools.wraps(handler)
            def capture(request, exc):
                self._record_handled(request.scope, exc)
                return handler(request, exc)

        return capture

    def _record_handled(self, scope: Scope, exc: Exception) -> None:
        # HTTPException is how routes answer 4xx, not a failure.
        if isinstance(exc, HTTPException):
            return
        try:
            trace = scope.get(TRACE_KEY)
            if trace is not None and not trace.logged:
                self.on_request_error(trace, exc)
        except Exception:
            logger.exception("ASGI handled-error capture failed")


class FastAPIAdapter(StarletteAdapter):
    framework = "fastapi"
    factory_name = "FastAPI"


class InstrumentationMiddleware:
    """Pure ASGI middleware driving the adapter lifecycle for HTTP requests."""

    def __init__(self, app: ASGIApp, adapter: FrameworkAdapter):
        self.app = app
        self.adapter = adapter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        trace = self._start(scope)
        if trace is None:
            await self.app(scope, receive, send)
            return

        request_body = _BodyBuffer()
        response_body = _BodyBuffer()

        async def receive_wrapper() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                request_body.feed(message.get("body", b""))
            return message

        async def send_wrapper(message: Message) -> None:
            if not trace.logged:
                self._observe(scope, trace, message, request_body, response_body)
            await send(message)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except Exception as exc:
            self.adapter.on_request_error(trace, exc)
            self._complete(scope, trace, request_body, response_body)
            raise
        # The app returned without finishing a response body.
        self._complete(scope, trace, request_body, response_body)

    def _start(self, scope: Scope) -> Optional[RequestTrace]:
        try:
            trace = self.adapter.on_request_start(scope.get("path", ""))
        except Exception:
            logger.exception("ASGI request start instrumentation failed")
            return None
        if trace is not None:
            scope[TRACE_KEY] = trace
        return trace

    def _observe(
        self,
        scope: Scope,
        trace: RequestTrace,
        message: Message,
        request_body: "_BodyBuffer",
        response_body: "_BodyBuffer",
    ) -> None:
        try:
            if message["type"] == "http.response.start":
                trace.status_code = message["status"]
                trace.response_headers = _decode_headers(message.get("headers", []))
            elif message["type"] == "http.response.body":
                response_body.feed(message.get("body", b""))
                if not message.get("more_body", False):
                    self._complete(scope, trace, request_body, response_body)
        except Exception:
            logger.exception("ASGI send instrumentation failed")

    def _complete(
        self,
        scope: Scope,
        trace: RequestTrace,
        request_body: "_BodyBuffer",
        response_body: "_BodyBuffer",
    ) -> None:
        if trace.logged:
            return
        try:
            request = Request(scope)
            content_type = request.headers.get("content-type", "")
            trace.response_body = response_body.decode(
                trace.response_headers.get("content-type", "")
            )
            view = build_view(request, request_body.decode(content_type))
        except Exception:
            trace.logged = True
            logger.exception("Failed to translate ASGI request")
            return
        self.adapter.on_request_complete(trace, view, request)


# ── Request translation ──────────────────────────────────────────


def build_view(request: Request, body: Any = None) -> RequestView:
    """Translate a Starlette request into a ``RequestView``."""
    scope = request.scope
    state = scope.get("state") or {}
    query_string = scope.get("query_string", b"").decode("latin-1")
    path = scope.get("path", "")
    client = scope.get("client")
    return RequestView(
        method=scope.get("method", ""),
        url=f"{path}?{query_string}" if query_string else path,
        path=path,
        ip=client[0] if client else None,
        headers=dict(request.headers),
        id=state.get("request_id"),
        query=dict(request.query_params),
        params=dict(scope.get("path_params") or {}),
        body=body,
        session=scope.get("session"),
        user=state.get("user") or scope.get("user"),
        auth=state.get("auth") or scope.get("auth"),
        locals=state.get("locals"),
        context=state.get("context"),
        current_user=state.get("current_user"),
        account=state.get("account"),
        profile=state.get("profile"),
        admin=state.get("admin"),
        raw=request,
    )


class _BodyBuffer:
    """Bounded capture of a streamed body."""

    def __init__(self, limit: int = MAX_CAPTURED_BODY_BYTES):
        self.limit = limit
        self.overflow = False
        self._chunks = bytearray()

    def feed(self, chunk: bytes) -> None:
        if self.overflow or not chunk:
            return
        if len(self._chunks) + len(chunk) > self.limit:
            self.overflow = True
            self._chunks.clear()
            return
        self._chunks.extend(chunk)

    def decode(self, content_type: str) -> Any:
        if self.overflow or not self._chunks:
            return None
        raw = bytes(self._chunks)
        media_type = content_type.split(";", 1)[0].strip().lower()
        if media_type == "application/json" or media_type.endswith("+json"):
            try:
                return json.loads(raw)
            except ValueError:
                return None
        if media_type == "application/x-www-form-urlencoded":
            return dict(parse_qsl(raw.decode("latin-1"), keep_blank_values=True))
        if media_type.startswith("text/"):
            return raw.decode("utf-8", errors="replace")
        return None


def _decode_headers(raw_headers: Any) -> Dict[str, str]:
    return {k.decode("latin-1"): v.decode("latin-1") for k, v in raw_headers}
