"""
Process-level error hooks.

Forward exceptions that escape every handler (``sys.excepthook``,
``threading.excepthook``) and exceptions asyncio could not deliver to anyone
(loop exception handler) to the sink as ``critical`` events.  Each hook
chains to whatever handler was installed before it.
"""

import asyncio
import sys
import threading
import traceback
from typing import Any, Dict, Optional

from .constants import UNCAUGHT_EXCEPTION_TITLE, UNHANDLED_REJECTION_TITLE
from .controller import InstrumentationContext, get_context
from .observability import get_logger

logger = get_logger(__name__)

_installed = False
_previous_excepthook = None
_previous_threading_excepthook = None


def exception_event(title: str, exc: BaseException) -> Dict[str, Any]:
    """Build the ``critical`` event for an escaped exception."""
    return {
        "title": title,
        "message": str(exc) or type(exc).__name__,
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }


def install_process_hooks(
    context: Optional[InstrumentationContext] = None,
    *,
    uncaught: bool = True,
    unhandled: bool = True,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> None:
    """Install the uncaught-exception and unhandled-async-exception hooks.

    Args:
        context: Context to report through (default context when omitted).
        uncaught: Chain ``sys.excepthook`` and ``threading.excepthook``.
        unhandled: Install an exception handler on *loop*.
        loop: Event loop to watch; skipped when omitted.
    """
    global _installed, _previous_excepthook, _previous_threading_excepthook

    if uncaught and not _installed:
        _previous_excepthook = sys.excepthook
        _previous_threading_excepthook = threading.excepthook

        def _excepthook(exc_type, exc, tb):
            _report(context, UNCAUGHT_EXCEPTION_TITLE, exc)
            _previous_excepthook(exc_type, exc, tb)

        def _threading_excepthook(args):
            if args.exc_value is not None:
                _report(context, UNCAUGHT_EXCEPTION_TITLE, args.exc_value)
            _previous_threading_excepthook(args)

        sys.excepthook = _excepthook
        threading.excepthook = _threading_excepthook
        _installed = True
        logger.info("Uncaught exception hooks installed")

    if unhandled and loop is not None:
        watch_event_loop(loop, context)


def uninstall_process_hooks() -> None:
    """Restore the hooks that were active before ``install_process_hooks``."""
    global _installed
    if not _installed:
        return
    sys.excepthook = _previous_excepthook
    threading.excepthook = _previous_threading_excepthook
    _installed = False


def watch_event_loop(
    loop: asyncio.AbstractEventLoop,
    context: Optional[InstrumentationContext] = None,
) -> None:
    """Report exceptions that reach *loop*'s exception handler."""
    previous = loop.get_exception_handler()

    def _handler(loop: asyncio.AbstractEventLoop, ctx: Dict[str, Any]) -> None:
        exc = ctx.get("exception")
        if exc is not None:
            _report(context, UNHANDLED_REJECTION_TITLE, exc)
        if previous is not None:
            previous(loop, ctx)
        else:
            loop.default_exception_handler(ctx)

    loop.set_exception_handler(_handler)


def _report(
    context: Optional[InstrumentationContext], title: str, exc: BaseException
) -> None:
    if isinstance(exc, KeyboardInterrupt):
        return
    try:
        (context or get_context()).emit("critical", exception_event(title, exc))
    except Exception:
        logger.exception("Failed to report %s", title)
