"""
Flask adapter — instruments an app through its native lifecycle hooks.

Flask already guarantees a single completion notification per request
context (``teardown_request``), so no response methods are patched:

* ``before_request`` (first in the chain): start timing, apply ignore paths.
* ``handle_user_exception`` (wrapped on the instance): stash route errors
  before the app's own error handlers turn them into a response.
* ``got_request_exception`` signal: stash errors no handler took.
* ``after_request`` (registered first, so it runs last): record the final
  status, headers and body.
* ``teardown_request``: build and emit the event.
"""

import functools
from typing import Any, Callable, Optional

from flask import Flask, g, got_request_exception, request, session
from werkzeug.exceptions import HTTPException

from ..constants import MAX_CAPTURED_BODY_BYTES, TRACE_KEY
from ..observability import get_logger
from ..payload import RequestView
from .base import FrameworkAdapter, RequestTrace

logger = get_logger(__name__)


class FlaskAdapter(FrameworkAdapter):
    """Attach instrumentation hooks to a ``flask.Flask`` application."""

    framework = "flask"
    factory_name = "Flask"

    def instrument(self, app: Flask) -> None:
        # Ahead of any before_request function the host registers.
        app.before_request_funcs.setdefault(None, []).insert(0, self._before)
        app.after_request(self._after)
        app.teardown_request(self._teardown)
        got_request_exception.connect(self._on_exception, app, weak=False)
        app.handle_user_exception = self._capture_user_exceptions(app, app.handle_user_exception)

    # ── hooks ────────────────────────────────────────────────────

    def _before(self) -> None:
        try:
            trace = self.on_request_start(request.path)
            if trace is not None:
                request.environ[TRACE_KEY] = trace
        except Exception:
            logger.exception("Flask before_request instrumentation failed")

    def _capture_user_exceptions(self, app: Flask, handle: Callable) -> Callable:
        @functools.wraps(handle)
        def handle_user_exception(e):
            # abort() and routing errors are responses, not failures.
            if not isinstance(e, HTTPException):
                self._on_exception(app, e)
            return handle(e)

        return handle_user_exception

    def _on_exception(self, sender: Flask, exception: BaseException, **extra: Any) -> None:
        try:
            trace = _current_trace()
            if trace is not None:
                self.on_request_error(trace, exception)
        except Exception:
            logger.exception("Flask error capture failed")

    def _after(self, response):
        try:
            trace = _current_trace()
            if trace is not None:
                trace.status_code = response.status_code
                trace.response_headers = dict(response.headers)
                trace.response_body = _response_body(response)
        except Exception:
            logger.exception("Flask after_request instrumentation failed")
        return response

    def _teardown(self, exc: Optional[BaseException] = None) -> None:
        try:
            trace = request.environ.pop(TRACE_KEY, None)
            if trace is None:
                return
            if exc is not None:
                self.on_request_error(trace, exc)
            self.on_request_complete(trace, build_view(), request._get_current_object())
        except Exception:
            logger.exception("Flask teardown instrumentation failed")


# ── Request translation ──────────────────────────────────────────


def build_view() -> RequestView:
    """Translate the active Flask request into a ``RequestView``."""
    url = request.full_path if request.query_string else request.path
    return RequestView(
        method=request.method,
        url=url,
        path=request.path,
        ip=request.remote_addr,
        headers=dict(request.headers),
        id=g.get("request_id"),
        query=request.args.to_dict(),
        params=dict(request.view_args or {}),
        body=_request_body(),
        session=_session_or_none(),
        user=g.get("user") or getattr(request, "user", None),
        auth=g.get("auth"),
        locals=g.get("locals"),
        context=g.get("context"),
        current_user=g.get("current_user") or getattr(request, "current_user", None),
        account=g.get("account"),
        profile=g.get("profile"),
        admin=g.get("admin"),
        raw=request._get_current_object(),
    )


def _current_trace() -> Optional[RequestTrace]:
    return request.environ.get(TRACE_KEY)


def _request_body() -> Any:
    if request.is_json:
        return request.get_json(silent=True)
    if request.form:
        return request.form.to_dict()
    return None


def _response_body(response) -> Any:
    if response.is_streamed or response.direct_passthrough:
        return None
    length = response.content_length
    if length is not None and length > MAX_CAPTURED_BODY_BYTES:
        return None
    if response.is_json:
        return response.get_json(silent=True)
    if response.mimetype and response.mimetype.startswith("text/"):
        return response.get_data(as_text=True)
    return None


def _session_or_none() -> Any:
    # The cookie session always exists; only report one the app actually used.
    if session or getattr(session, "sid", None):
        return session._get_current_object()
    return None
