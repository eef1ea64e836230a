"""Tests for redaction.py — recursive key-based masking."""

from dataclasses import dataclass

import pytest

from autoinstrument.constants import DEFAULT_REDACT_FIELDS, REDACTED
from autoinstrument.redaction import is_sensitive_key, redact


class TestRedact:
    def test_nested_body_with_default_fields(self):
        body = {"password": "x", "nested": {"token": "y", "ok": "z"}}
        assert redact(body, DEFAULT_REDACT_FIELDS) == {
            "password": REDACTED,
            "nested": {"token": REDACTED, "ok": "z"},
        }

    def test_match_is_case_insensitive_substring(self):
        data = {"X-Api_Key": "k", "UserPassword": "p", "Authorization": "Bearer t"}
        result = redact(data, ["api_key", "PASSWORD", "authorization"])
        assert result == {"X-Api_Key": REDACTED, "UserPassword": REDACTED, "Authorization": REDACTED}

    def test_sequences_are_redacted_element_wise(self):
        data = [{"secret": 1, "name": "a"}, [{"token": 2}], "plain"]
        assert redact(data, ["secret", "token"]) == [
            {"secret": REDACTED, "name": "a"},
            [{"token": REDACTED}],
            "plain",
        ]

    def test_matching_key_redacts_whole_subtree(self):
        data = {"secrets": {"a": 1, "b": [1, 2]}}
        assert redact(data, ["secret"]) == {"secrets": REDACTED}

    @pytest.mark.parametrize("value", [None, 0, 1.5, True, "text", b"bytes"])
    def test_scalars_pass_through(self, value):
        assert redact(value, DEFAULT_REDACT_FIELDS) == value

    def test_non_matching_values_preserved(self):
        data = {"count": 3, "ratio": 0.25, "flag": False, "name": "é", "empty": None}
        assert redact(data, DEFAULT_REDACT_FIELDS) == data

    def test_input_is_not_mutated(self):
        data = {"password": "x", "inner": {"token": "y"}}
        redact(data, DEFAULT_REDACT_FIELDS)
        assert data == {"password": "x", "inner": {"token": "y"}}

    def test_model_like_objects_are_converted(self):
        class Document:
            def to_dict(self):
                return {"email": "a@b.c", "password_hash": "h"}

        assert redact({"doc": Document()}, ["password"]) == {
            "doc": {"email": "a@b.c", "password_hash": REDACTED}
        }

    def test_dataclasses_are_converted(self):
        @dataclass
        class Credentials:
            username: str
            api_key: str

        assert redact(Credentials("bob", "k"), ["api_key"]) == {
            "username": "bob",
            "api_key": REDACTED,
        }

    def test_tuples_and_sets_become_lists(self):
        assert redact(({"token": 1},), ["token"]) == [{"token": REDACTED}]
        assert redact({"tags": {"a"}}, ["token"]) == {"tags": ["a"]}

    def test_empty_redact_fields_keeps_everything(self):
        data = {"password": "x"}
        assert redact(data, []) == data

    def test_cyclic_input_is_not_guarded(self):
        data = {"name": "loop"}
        data["self"] = data
        with pytest.raises(RecursionError):
            redact(data, ["token"])


class TestIsSensitiveKey:
    def test_matches_substring(self):
        assert is_sensitive_key("refresh_token", ["token"])

    def test_non_string_key(self):
        assert not is_sensitive_key(42, ["token"])
