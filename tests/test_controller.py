"""Tests for controller.py — sink registration, config merging, emission."""

import logging

import pytest

from autoinstrument import controller
from autoinstrument.controller import InstrumentationContext


class TestInstrumentationContext:
    def test_inactive_until_sink_registered(self, sink):
        ctx = InstrumentationContext()
        assert not ctx.active
        ctx.configure(sink)
        assert ctx.active
        assert ctx.sink is sink

    def test_configure_replaces_sink_and_merges(self, sink):
        ctx = InstrumentationContext()
        ctx.configure(object(), slow_request_threshold=10)
        ctx.configure(sink, ignore_paths=["/x"])
        assert ctx.sink is sink
        assert ctx.config.slow_request_threshold == 10
        assert ctx.config.ignore_paths == ("/x",)

    def test_update_config_keeps_sink(self, sink):
        ctx = InstrumentationContext()
        ctx.configure(sink)
        ctx.update_config(slow_request_threshold=5)
        assert ctx.sink is sink
        assert ctx.config.slow_request_threshold == 5

    def test_update_config_before_configure(self):
        ctx = InstrumentationContext()
        ctx.update_config(redact_fields=["pin"])
        assert not ctx.active
        assert ctx.config.redact_fields == ("pin",)

    def test_emit_dispatches_by_level(self, context, sink):
        context.emit("warning", {"title": "t"})
        assert sink.events == [("warning", {"title": "t"})]

    def test_emit_without_sink_is_noop(self, idle_context):
        idle_context.emit("info", {"title": "t"})

    def test_sink_failure_is_swallowed_and_logged(self, caplog):
        class BrokenSink:
            def info(self, event):
                raise ConnectionError("collector down")

        ctx = InstrumentationContext(sink=BrokenSink())
        with caplog.at_level(logging.ERROR, logger="autoinstrument"):
            ctx.emit("info", {"title": "GET /"})
        assert "BrokenSink.info raised" in caplog.text

    def test_unknown_level_sent_as_critical(self, context, sink):
        context.emit("fatal", {"title": "t"})
        assert sink.levels == ["critical"]


class TestDefaultContext:
    @pytest.fixture(autouse=True)
    def _fresh_default(self):
        controller.reset_context()
        yield
        controller.reset_context()

    def test_module_level_configure(self, sink):
        controller.configure(sink, slow_request_threshold=42)
        ctx = controller.get_context()
        assert ctx.sink is sink
        assert ctx.config.slow_request_threshold == 42

    def test_module_level_update_config(self, sink):
        controller.configure(sink)
        controller.update_config(ignore_paths=["/a"])
        assert controller.get_context().config.ignore_paths == ("/a",)
        assert controller.get_context().sink is sink
