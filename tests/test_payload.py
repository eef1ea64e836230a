"""Tests for payload.py — canonical context extraction and identity lookup."""

from types import SimpleNamespace

from autoinstrument.config import InstrumentationConfig
from autoinstrument.constants import REDACTED
from autoinstrument.payload import (
    RequestView,
    build_final_payload,
    default_build_request_payload,
    find_admin,
    find_user,
)


def _view(**kwargs) -> RequestView:
    defaults = dict(
        method="GET",
        url="/orders?page=2",
        path="/orders",
        ip="10.0.0.1",
        headers={"User-Agent": "curl/8.0", "X-Request-ID": "rid-1"},
        query={"page": "2"},
        params={},
    )
    defaults.update(kwargs)
    return RequestView(**defaults)


class TestDefaultBuildRequestPayload:
    def test_extracts_canonical_fields(self):
        payload = default_build_request_payload(_view())
        assert payload == {
            "method": "GET",
            "url": "/orders?page=2",
            "path": "/orders",
            "ip": "10.0.0.1",
            "user_agent": "curl/8.0",
            "request_id": "rid-1",
            "user": None,
            "admin": None,
            "session": None,
            "query": {"page": "2"},
            "params": {},
        }

    def test_explicit_id_wins_over_header(self):
        payload = default_build_request_payload(_view(id="explicit"))
        assert payload["request_id"] == "explicit"

    def test_header_lookup_is_case_insensitive(self):
        view = _view(headers={"user-agent": "ua", "x-request-id": "r"})
        payload = default_build_request_payload(view)
        assert payload["user_agent"] == "ua"
        assert payload["request_id"] == "r"

    def test_session_summary_keeps_only_id(self):
        view = _view(session={"id": "s-1", "cart": ["a"], "user": {"id": 9}})
        assert default_build_request_payload(view)["session"] == {"id": "s-1"}

    def test_session_sid_attribute(self):
        session = SimpleNamespace(sid="abc")
        assert default_build_request_payload(_view(session=session))["session"] == {"id": "abc"}


class TestFindUser:
    def test_first_match_wins(self):
        view = _view(user={"id": 1}, session={"user": {"id": 2}})
        assert find_user(view) == {"id": 1}

    def test_skips_candidates_without_identity(self):
        view = _view(user={"name": "anon"}, session={"user": {"email": "a@b.c"}})
        assert find_user(view) == {"email": "a@b.c"}

    def test_candidate_order(self):
        view = _view(
            auth=SimpleNamespace(user={"username": "from-auth"}),
            locals={"user": {"id": "from-locals"}},
            current_user={"id": "current"},
        )
        assert find_user(view) == {"username": "from-auth"}

    def test_attribute_style_objects(self):
        user = SimpleNamespace(id=None, email=None, username="bob")
        assert find_user(_view(profile=user)) is user

    def test_none_when_nothing_qualifies(self):
        assert find_user(_view(user={"id": 0}, account={})) is None


class TestFindAdmin:
    def test_explicit_admin(self):
        assert find_admin(_view(admin={"id": "root"})) == {"id": "root"}

    def test_flagged_user(self):
        user = {"id": 1, "is_admin": True}
        assert find_admin(_view(user=user)) is user

    def test_session_admin(self):
        assert find_admin(_view(session={"admin": {"id": 5}})) == {"id": 5}

    def test_none(self):
        assert find_admin(_view(user={"id": 1})) is None


class TestBuildFinalPayload:
    def test_context_hook_overrides_and_is_redacted(self):
        config = InstrumentationConfig(
            context_hook=lambda view: {"tenant": "acme", "path": "/override", "api_key": "k"}
        )
        payload = build_final_payload(_view(), config)
        assert payload["tenant"] == "acme"
        assert payload["path"] == "/override"
        assert payload["api_key"] == REDACTED

    def test_hook_returning_none(self):
        config = InstrumentationConfig(context_hook=lambda view: None)
        assert build_final_payload(_view(), config)["method"] == "GET"

    def test_custom_builder(self):
        config = InstrumentationConfig(build_request_payload=lambda view: {"only": view.path})
        assert build_final_payload(_view(), config) == {"only": "/orders"}

    def test_user_fields_redacted(self):
        view = _view(user={"id": 1, "password": "pw"})
        payload = build_final_payload(view, InstrumentationConfig())
        assert payload["user"] == {"id": 1, "password": REDACTED}
