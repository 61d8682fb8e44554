"""
Engine wiring and the process-wide default engine.

Purpose:
    A ProgressEngine bundles one job tree with the renderer, terminal,
    output lock, diagnostics emitter and scheduler that display it. Most
    programs use the default engine, created lazily the first time a job is
    started; tests and embedders construct their own.

Design Decisions:
    - Components are passed to each other explicitly; nothing but
      get_engine() touches module-level state
    - Text mode is chosen when configured or when the output stream is not
      a terminal
    - The SIGWINCH handler is installed only for threaded interactive
      engines, and only from the main thread
"""

import logging
import threading
from typing import Callable, Optional, TypeVar

from .tui.handle import JobHandle
from .tui.job_tree import JobTree
from .tui.model import JobSpec
from .tui.scheduler import OutputMode, Scheduler
from .tui.templates import TemplateRenderer
from .tui.terminal import OutputCoordinator, Terminal
from .utils.config import EngineConfig
from .utils.diagnostics import DiagnosticsEmitter
from .utils.osc import OscProgressSink, ProgressSink

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProgressEngine:
    """
    One independent progress display.

    Attributes:
        config: Settings the engine was built with.
        terminal: Output stream wrapper.
        tree: Registry of jobs.
        coordinator: Terminal lock shared with println and logging.
        renderer: Template renderer.
        diagnostics: JSONL frame log.
        scheduler: Render loop.

    Example:
        >>> engine = ProgressEngine()
        >>> job = engine.start(JobSpec().prop("message", "Indexing"))
        >>> job.set_status(Status.DONE)
        >>> engine.stop()
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        terminal: Optional[Terminal] = None,
        sink: Optional[ProgressSink] = None,
        threaded: bool = True,
    ) -> None:
        self.config = config if config is not None else EngineConfig.from_env()
        self.terminal = terminal if terminal is not None else Terminal()
        self.tree = JobTree()
        self.coordinator = OutputCoordinator()
        self.renderer = TemplateRenderer()
        self.diagnostics = DiagnosticsEmitter(self.config.trace_log, raw=self.config.trace_raw)

        text_mode = self.config.text_mode or not self.terminal.is_interactive()
        mode = OutputMode.TEXT if text_mode else OutputMode.UI
        if sink is None:
            sink = OscProgressSink(self.terminal.stream)

        self.scheduler = Scheduler(
            self.tree,
            self.renderer,
            self.terminal,
            self.coordinator,
            interval=self.config.interval,
            mode=mode,
            sink=sink,
            diagnostics=self.diagnostics,
            threaded=threaded,
            disabled=self.config.disabled,
        )
        if threaded and mode is OutputMode.UI and not self.config.disabled:
            self.scheduler.install_resize_handler()
        logger.debug("progress engine created (mode=%s, disabled=%s)", mode.value, self.config.disabled)

    # --- jobs ---

    def start(self, spec: JobSpec, parent_id: Optional[int] = None) -> JobHandle:
        """
        Register a job and return its handle.

        Raises:
            JobNotFoundError: If parent_id names a job that is gone.
        """
        job_id = self.tree.insert(spec, parent_id)
        self.scheduler.notify(structural=True)
        return JobHandle(self, job_id)

    def job_count(self) -> int:
        """Number of root jobs currently registered."""
        return len(self.tree)

    def active_jobs(self) -> int:
        """Number of jobs (at any depth) with running status."""
        return self.tree.count_active()

    # --- output ---

    def with_terminal_lock(self, body: Callable[[], T]) -> T:
        return self.coordinator.with_terminal_lock(body)

    def println(self, text: str) -> None:
        """Write a line above the progress region."""
        line = text if text.endswith("\n") else text + "\n"
        self.with_terminal_lock(lambda: self.terminal.write(line))

    # --- scheduler control ---

    def pause(self) -> None:
        self.scheduler.pause()

    def resume(self) -> None:
        self.scheduler.resume()

    def is_paused(self) -> bool:
        return self.scheduler.is_paused

    def flush(self) -> None:
        self.scheduler.flush()

    def stop(self) -> None:
        self.scheduler.stop()

    def stop_clear(self) -> None:
        self.scheduler.stop_clear()

    def set_interval(self, seconds: float) -> None:
        self.scheduler.set_interval(seconds)

    def interval(self) -> float:
        return self.scheduler.interval

    def set_output_mode(self, mode: OutputMode) -> None:
        self.scheduler.set_output_mode(mode)

    def output_mode(self) -> OutputMode:
        return self.scheduler.mode

    def close(self) -> None:
        """Stop rendering and release the diagnostics file."""
        self.stop()
        self.diagnostics.close()


# ============================================================
# Process-wide default engine
# ============================================================

_default_engine: Optional[ProgressEngine] = None
_default_lock = threading.Lock()


def get_engine() -> ProgressEngine:
    """Return the default engine, creating it from the environment on first use."""
    global _default_engine
    with _default_lock:
        if _default_engine is None:
            _default_engine = ProgressEngine()
        return _default_engine


def reset_engine() -> None:
    """Stop and discard the default engine; the next get_engine() builds a fresh one."""
    global _default_engine
    with _default_lock:
        engine, _default_engine = _default_engine, None
    if engine is not None:
        engine.close()
