"""
Test fixtures and configuration for pytest
"""

import logging

import pytest

from autoinstrument.controller import InstrumentationContext
from autoinstrument.observability.logging import ROOT_LOGGER_NAME


class RecordingSink:
    """Sink that keeps every event it receives, tagged with its level."""

    def __init__(self):
        self.events = []

    def _record(self, level, event):
        self.events.append((level, event))

    def critical(self, event):
        self._record("critical", event)

    def error(self, event):
        self._record("error", event)

    def warning(self, event):
        self._record("warning", event)

    def info(self, event):
        self._record("info", event)

    @property
    def levels(self):
        return [level for level, _ in self.events]

    @property
    def last(self):
        return self.events[-1][1]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture(autouse=True)
def _diagnostics_reach_caplog(monkeypatch):
    """caplog listens on the root logger; let the engine's records through."""
    monkeypatch.setattr(logging.getLogger(ROOT_LOGGER_NAME), "propagate", True)


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def context(sink, clock):
    """An active context with a recording sink and a controllable clock."""
    ctx = InstrumentationContext(clock=clock)
    ctx.configure(sink)
    return ctx


@pytest.fixture
def idle_context(clock):
    """A context with no sink registered."""
    return InstrumentationContext(clock=clock)
