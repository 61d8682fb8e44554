"""
termjobs - Live, hierarchical progress display for terminal programs.

This package renders a tree of jobs (spinners, messages, progress bars,
rates, ETAs) to the terminal and repaints it in place from a background
thread while worker threads update their jobs.

Purpose:
    Long-running command-line tools need to show several concurrent tasks
    at once without their output tearing. termjobs keeps every job in one
    locked tree, renders it through per-job Jinja2 templates and writes a
    single frame at a time.

Package Structure:
    - engine.py: ProgressEngine and the default process-wide engine
    - tui/: job model, tree, metrics, templates, flex layout, scheduler
    - utils/: configuration, formatting, styling, diagnostics, OSC
      progress reporting and logging integration

Usage:
    >>> import termjobs
    >>> job = termjobs.JobSpec().prop("message", "Fetching").with_progress_total(10).start()
    >>> for i in range(10):
    ...     job.progress_current(i + 1)
    >>> job.set_status(termjobs.Status.DONE)
    >>> termjobs.stop()
"""

from typing import Callable, TypeVar

from .engine import ProgressEngine, get_engine, reset_engine
from .errors import JobNotFoundError, TermJobsError
from .tui.handle import JobHandle
from .tui.model import DoneBehavior, JobSnapshot, JobSpec, Status
from .tui.scheduler import OutputMode
from .utils.config import EngineConfig
from .utils.log_handler import ProgressLogHandler, install_log_handler
from .utils.osc import OscProgressSink, ProgressSink, ProgressState

__version__ = "0.1.0"

T = TypeVar("T")


# ============================================================
# Default-engine shortcuts
# ============================================================

def start(spec: JobSpec) -> JobHandle:
    """Start a root job on the default engine."""
    return get_engine().start(spec)


def pause() -> None:
    get_engine().pause()


def resume() -> None:
    get_engine().resume()


def is_paused() -> bool:
    return get_engine().is_paused()


def flush() -> None:
    get_engine().flush()


def stop() -> None:
    """Render the final frame and stop the default engine's loop."""
    get_engine().stop()


def stop_clear() -> None:
    """Erase the progress region and stop the default engine's loop."""
    get_engine().stop_clear()


def set_interval(seconds: float) -> None:
    get_engine().set_interval(seconds)


def interval() -> float:
    return get_engine().interval()


def set_output_mode(mode: OutputMode) -> None:
    get_engine().set_output_mode(mode)


def output_mode() -> OutputMode:
    return get_engine().output_mode()


def with_terminal_lock(body: Callable[[], T]) -> T:
    """Run body with the progress region cleared and the terminal locked."""
    return get_engine().with_terminal_lock(body)


def println(text: str) -> None:
    get_engine().println(text)


def job_count() -> int:
    return get_engine().job_count()


def active_jobs() -> int:
    return get_engine().active_jobs()


__all__ = [
    "DoneBehavior",
    "EngineConfig",
    "JobHandle",
    "JobNotFoundError",
    "JobSnapshot",
    "JobSpec",
    "OscProgressSink",
    "OutputMode",
    "ProgressEngine",
    "ProgressLogHandler",
    "ProgressSink",
    "ProgressState",
    "Status",
    "TermJobsError",
    "active_jobs",
    "flush",
    "get_engine",
    "install_log_handler",
    "interval",
    "is_paused",
    "job_count",
    "output_mode",
    "pause",
    "println",
    "reset_engine",
    "resume",
    "set_interval",
    "set_output_mode",
    "start",
    "stop",
    "stop_clear",
    "with_terminal_lock",
]
