"""
Canonical request context extraction.

Adapters translate their framework's request into a ``RequestView``; the
functions here turn a view into the context dict attached to every event.
Identity lookups accept both mapping keys and attributes so ORM rows, plain
dicts and framework user objects all work.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from .redaction import redact

if TYPE_CHECKING:  # pragma: no cover
    from .config import InstrumentationConfig


@dataclass
class RequestView:
    """Framework-agnostic view of one inbound request."""

    method: str = ""
    url: str = ""
    path: str = ""
    ip: Optional[str] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    id: Optional[str] = None
    query: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    session: Any = None
    user: Any = None
    auth: Any = None
    locals: Any = None
    context: Any = None
    current_user: Any = None
    account: Any = None
    profile: Any = None
    admin: Any = None
    # The framework's own request object, for custom builders and hooks.
    raw: Any = None

    def get(self, header: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = header.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default


def default_build_request_payload(view: RequestView) -> Dict[str, Any]:
    """Build the canonical request context for *view*."""
    return {
        "method": view.method,
        "url": view.url,
        "path": view.path,
        "ip": view.ip,
        "user_agent": view.get("User-Agent"),
        "request_id": view.id or view.get("X-Request-ID"),
        "user": find_user(view),
        "admin": find_admin(view),
        "session": _session_summary(view.session),
        "query": view.query,
        "params": view.params,
    }


def find_user(view: RequestView) -> Any:
    """Return the first candidate user object carrying an id, email or username.

    Candidates are checked in order: ``user``, ``auth.user``, ``session.user``,
    ``locals.user``, ``context.user``, ``current_user``, ``account``,
    ``profile``.
    """
    candidates = (
        view.user,
        _lookup(view.auth, "user"),
        _lookup(view.session, "user"),
        _lookup(view.locals, "user"),
        _lookup(view.context, "user"),
        view.current_user,
        view.account,
        view.profile,
    )
    for candidate in candidates:
        if candidate is not None and _has_identity(candidate):
            return candidate
    return None


def find_admin(view: RequestView) -> Any:
    """Explicit admin, else an admin-flagged user, else ``session.admin``."""
    if view.admin:
        return view.admin
    if view.user is not None and (
        _lookup(view.user, "is_admin") or _lookup(view.user, "isAdmin")
    ):
        return view.user
    return _lookup(view.session, "admin") or None


def build_final_payload(view: RequestView, config: "InstrumentationConfig") -> Dict[str, Any]:
    """Run the configured builder, merge the context hook on top, then redact."""
    context = dict(config.build_request_payload(view) or {})
    if config.context_hook is not None:
        extra = config.context_hook(view)
        if extra:
            context.update(extra)
    return redact(context, config.redact_fields)


# ── Private helpers ──────────────────────────────────────────────


def _lookup(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _has_identity(candidate: Any) -> bool:
    return bool(
        _lookup(candidate, "id")
        or _lookup(candidate, "email")
        or _lookup(candidate, "username")
    )


def _session_summary(session: Any) -> Optional[Dict[str, Any]]:
    # Only the id ever leaves the process, never the session body.
    if session is None:
        return None
    session_id = getattr(session, "sid", None) or _lookup(session, "id")
    return {"id": session_id}
