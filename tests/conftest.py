"""
Shared fixtures for the termjobs test suite.

Engines built here never start a render thread (threaded=False) unless a
test asks for one, so frames are produced only by explicit tick()/flush()
calls and output is deterministic.
"""
from __future__ import annotations

import io
import logging

import pytest

from termjobs.engine import ProgressEngine
from termjobs.tui.terminal import Terminal
from termjobs.utils.config import EngineConfig
from termjobs.utils.osc import ProgressState


class RecordingStream(io.StringIO):
    """StringIO that counts write() calls and can pretend to be a TTY."""

    def __init__(self, tty: bool = True) -> None:
        super().__init__()
        self.tty = tty
        self.writes: list[str] = []

    def write(self, text: str) -> int:
        self.writes.append(text)
        return super().write(text)

    def isatty(self) -> bool:
        return self.tty


class BrokenStream(RecordingStream):
    """A TTY whose writes always fail."""

    def write(self, text: str) -> int:
        raise OSError("stream closed")


class RecordingSink:
    """ProgressSink that keeps every report."""

    def __init__(self) -> None:
        self.reports: list[tuple[float | None, ProgressState]] = []

    def report_progress(self, fraction, state) -> None:
        self.reports.append((fraction, state))


@pytest.fixture
def stream() -> RecordingStream:
    return RecordingStream(tty=True)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_engine(sink):
    """Factory for engines writing to a recording stream; stopped at teardown."""
    engines: list[ProgressEngine] = []

    def factory(stream=None, width: int = 80, threaded: bool = False, **config) -> ProgressEngine:
        stream = stream if stream is not None else RecordingStream(tty=True)
        engine = ProgressEngine(
            config=EngineConfig(**config),
            terminal=Terminal(stream, width=width),
            sink=sink,
            threaded=threaded,
        )
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine, stream) -> ProgressEngine:
    """Interactive, manually ticked engine on an 80-column terminal."""
    return make_engine(stream=stream)


@pytest.fixture
def text_engine(make_engine) -> ProgressEngine:
    """Engine whose stream is not a TTY, so it runs in text mode."""
    return make_engine(stream=RecordingStream(tty=False))


@pytest.fixture(autouse=True)
def _no_color(monkeypatch):
    """Most assertions compare plain text; colour tests re-enable it."""
    monkeypatch.setenv("NO_COLOR", "1")


@pytest.fixture(autouse=True)
def _quiet_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
