"""
Background rendering loop for the live progress region.

This module owns the thread that repaints the job tree in place, and the
text-mode path that prints finished jobs when there is no terminal to
repaint.

Purpose:
    Worker threads only mutate their jobs and call notify(). The scheduler
    wakes on notify or on a timer, snapshots the tree, composes a frame and
    writes it over the previous one. When nothing is left running the thread
    exits, and the next notify starts a new one.

Architecture:
    - Producer side: JobHandle mutations -> JobTree -> Scheduler.notify()
    - Consumer side: one daemon thread running tick() every interval
    - Output: frames go through the OutputCoordinator lock; foreign output
      (println, logging) suspends the region and requests a redraw
    - Lock order: coordinator.lock, then _render_lock, then the tree lock.
      Every frame, text emission and OSC report happens with the first two
      held, so a notify() from inside with_terminal_lock() only re-enters
      the terminal lock it already owns

Design Decisions:
    - A frame is written only when it differs byte-for-byte from the last
      one written, so an idle tree costs no terminal I/O
    - Frames are spaced at least half an interval apart however many
      notifications arrive
    - A failed terminal write switches the scheduler to text mode instead of
      raising into whichever worker happened to trigger the frame
"""

import logging
import signal
import threading
import time
from enum import Enum
from typing import Optional, Set, Tuple

from ..utils.diagnostics import DiagnosticsEmitter
from ..utils.osc import NullProgressSink, ProgressSink, ProgressState
from .job_tree import JobTree
from .layout import rows_consumed
from .model import Status, TreeSnapshot
from .templates import TemplateRenderer
from .terminal import OutputCoordinator, Terminal

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.2
# Upper bound on waiting for the loop thread during stop()
JOIN_TIMEOUT = 2.0


class OutputMode(str, Enum):
    """How progress reaches the terminal."""
    UI = "ui"
    TEXT = "text"


def aggregate_progress(snapshot: TreeSnapshot) -> Optional[Tuple[float, ProgressState]]:
    """
    Collapse the whole tree into one fraction and state for the OSC sink.

    The first root job's overall fraction wins when it has progress.
    Otherwise every job contributes its own fraction, or an estimate from
    its status (pending 0, running 0.5, finished 1).

    Returns:
        Optional[Tuple[float, ProgressState]]: None for an empty tree.
    """
    jobs = list(snapshot.walk())
    if not jobs:
        return None

    if any(job.status is Status.FAILED for job in jobs):
        state = ProgressState.ERROR
    elif any(job.status is Status.WARN for job in jobs):
        state = ProgressState.WARNING
    else:
        state = ProgressState.NORMAL

    first = snapshot.roots[0].progress.overall_fraction
    if first is not None:
        return first, state

    fractions = []
    for job in jobs:
        fraction = job.progress.overall_fraction
        if fraction is None:
            if job.status.is_terminal:
                fraction = 1.0
            elif job.status is Status.PENDING:
                fraction = 0.0
            else:
                fraction = 0.5
        fractions.append(fraction)
    return sum(fractions) / len(fractions), state


class Scheduler:
    """
    Paints the job tree to the terminal.

    Attributes:
        tree: The job registry being displayed.
        renderer: Template renderer used for every frame.
        terminal: Output stream wrapper.
        coordinator: Shared terminal lock.
        sink: Receives aggregate progress (OSC 9;4).
        diagnostics: Receives every written frame.
        threaded: When False no thread is ever started and frames are only
                  produced by explicit tick()/flush() calls.
        disabled: When True nothing is ever rendered.

    Example:
        >>> scheduler = Scheduler(tree, TemplateRenderer(), Terminal(), OutputCoordinator())
        >>> scheduler.notify()   # starts the loop if needed
        >>> scheduler.stop()     # final frame, loop exits
    """

    def __init__(
        self,
        tree: JobTree,
        renderer: TemplateRenderer,
        terminal: Terminal,
        coordinator: OutputCoordinator,
        interval: float = DEFAULT_INTERVAL,
        mode: OutputMode = OutputMode.UI,
        sink: Optional[ProgressSink] = None,
        diagnostics: Optional[DiagnosticsEmitter] = None,
        threaded: bool = True,
        disabled: bool = False,
    ) -> None:
        self.tree = tree
        self.renderer = renderer
        self.terminal = terminal
        self.coordinator = coordinator
        self.sink = sink if sink is not None else NullProgressSink()
        self.diagnostics = diagnostics if diagnostics is not None else DiagnosticsEmitter()
        self.threaded = threaded
        self.disabled = disabled
        self._mode = OutputMode(mode)
        self._interval = interval

        # Thread lifecycle
        self._state_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._wake = threading.Event()
        self._halt = threading.Event()
        self._resized = threading.Event()

        # One frame (or text emission) at a time; taken after coordinator.lock
        self._render_lock = threading.Lock()
        self._paused = False

        # Drawn-region bookkeeping, guarded by coordinator.lock
        self._lines_drawn = 0
        self._last_frame: Optional[str] = None

        self._last_report: Optional[Tuple[int, ProgressState]] = None
        # Text mode: (job id, terminal_since) pairs already printed
        self._printed: Set[Tuple[int, Optional[float]]] = set()
        self._text_failed = False

        coordinator.attach(self)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def interval(self) -> float:
        return self._interval

    def set_interval(self, seconds: float) -> None:
        """Change the frame cadence; takes effect on the next wait."""
        self._interval = max(float(seconds), 0.001)
        self._wake.set()

    @property
    def mode(self) -> OutputMode:
        return self._mode

    def set_output_mode(self, mode: OutputMode) -> None:
        mode = OutputMode(mode)
        if mode is self._mode:
            return
        if mode is OutputMode.TEXT:
            # Leave no half-painted region behind
            self.suspend_output()
        self._mode = mode
        self.notify(structural=True)

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_running(self) -> bool:
        """True while the loop thread exists."""
        with self._state_lock:
            return self._thread is not None

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def notify(self, structural: bool = False) -> None:
        """
        Tell the scheduler that job state changed.

        Args:
            structural: True for insert/remove/status changes. Text mode
                        only acts on these; plain progress updates are
                        never printed there.
        """
        if self.disabled:
            return
        if self._mode is OutputMode.TEXT:
            if structural:
                self.emit_text()
            return
        if not self.threaded:
            return
        # Set before checking the thread so a loop deciding to exit sees it
        self._wake.set()
        self._ensure_running()

    def notify_resize(self) -> None:
        """Request an immediate repaint at the new terminal width."""
        self._resized.set()
        self._wake.set()

    def install_resize_handler(self) -> bool:
        """
        Repaint on SIGWINCH.

        Only possible on platforms with SIGWINCH and from the main thread.
        An existing handler is chained.

        Returns:
            bool: True if the handler was installed.
        """
        if not hasattr(signal, "SIGWINCH"):
            return False
        if threading.current_thread() is not threading.main_thread():
            return False
        previous = signal.getsignal(signal.SIGWINCH)

        def on_resize(signum, frame):
            self.notify_resize()
            if callable(previous):
                previous(signum, frame)

        try:
            signal.signal(signal.SIGWINCH, on_resize)
        except (OSError, ValueError) as exc:
            logger.debug("cannot install SIGWINCH handler: %s", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _ensure_running(self) -> None:
        with self._state_lock:
            if self._thread is not None or self._halt.is_set():
                return
            self._thread = threading.Thread(target=self._run, name="termjobs-scheduler", daemon=True)
            self._thread.start()

    def _run(self) -> None:
        try:
            while not self._halt.is_set():
                started = time.monotonic()
                self._wake.clear()
                if self._resized.is_set():
                    self._resized.clear()
                    self._forget_frame()
                live = self.tick()
                if self._halt.is_set():
                    break
                if not live:
                    with self._state_lock:
                        # A notify that raced with this frame keeps the loop alive
                        if not self._wake.is_set():
                            self._thread = None
                            return
                    continue
                self._wake.wait(self._interval)
                if self._resized.is_set():
                    continue
                # Frames are spaced at least half an interval apart
                gap = self._interval / 2 - (time.monotonic() - started)
                if gap > 0 and self._halt.wait(gap):
                    break
        finally:
            with self._state_lock:
                if self._thread is threading.current_thread():
                    self._thread = None

    def tick(self) -> bool:
        """
        Produce one frame.

        Returns:
            bool: True while the tree still has live jobs (the loop keeps
                  going), False once everything finished or the scheduler is
                  halting, disabled or in text mode.
        """
        with self.coordinator.lock, self._render_lock:
            if self.disabled or self._halt.is_set():
                return False
            if self._mode is OutputMode.TEXT:
                self._emit_text_locked()
                return False
            if self._paused:
                return True
            self.tree.reap()
            snapshot = self.tree.snapshot_all()
            self._render_ui(snapshot)
            return snapshot.has_live

    def flush(self) -> None:
        """Render right now, outside the timer cadence."""
        if self.disabled:
            return
        if self._mode is OutputMode.TEXT:
            self.emit_text()
        else:
            self.tick()

    # ------------------------------------------------------------------
    # Interactive output
    # ------------------------------------------------------------------

    def _render_ui(self, snapshot: TreeSnapshot) -> None:
        # Caller holds coordinator.lock and _render_lock
        width = self.terminal.width()
        frame = self.renderer.compose(snapshot, width)
        self._report(snapshot)
        if frame == self._last_frame:
            return
        try:
            self._write_frame(frame, width)
        except (OSError, ValueError) as exc:
            self._degrade(exc)
            return
        self._last_frame = frame
        self.diagnostics.emit(frame, snapshot.roots)

    def _write_frame(self, frame: str, width: int) -> None:
        # Caller holds coordinator.lock
        out = Terminal.clear_sequence(self._lines_drawn)
        rows = 0
        if frame:
            out += frame + "\n"
            rows = sum(rows_consumed(line, width) for line in frame.split("\n"))
        if out:
            self.terminal.write(out)
        self._lines_drawn = rows

    def _erase(self) -> Optional[Exception]:
        # Caller holds coordinator.lock
        rows, self._lines_drawn = self._lines_drawn, 0
        self._last_frame = None
        if rows <= 0:
            return None
        try:
            self.terminal.write(Terminal.clear_sequence(rows))
        except (OSError, ValueError) as exc:
            return exc
        return None

    def _degrade(self, exc: Exception) -> None:
        if self._mode is OutputMode.TEXT:
            return
        self._mode = OutputMode.TEXT
        with self.coordinator.lock:
            self._lines_drawn = 0
            self._last_frame = None
        logger.warning("terminal write failed (%s), switching to text output", exc)

    def suspend_output(self) -> None:
        """Erase the drawn region (called with the terminal lock held)."""
        if self._mode is not OutputMode.UI:
            return
        with self.coordinator.lock:
            failure = self._erase()
        if failure is not None:
            self._degrade(failure)

    def request_redraw(self) -> None:
        """Forget the last frame so the next tick repaints."""
        self._forget_frame()
        if self.is_running:
            self._wake.set()

    def _forget_frame(self) -> None:
        with self.coordinator.lock:
            self._last_frame = None

    def pause(self) -> None:
        """Stop painting and erase the region until resume()."""
        with self.coordinator.lock:
            self._paused = True
        self.suspend_output()

    def resume(self) -> None:
        with self.coordinator.lock:
            self._paused = False
            self._last_frame = None
        self.notify()

    def _report(self, snapshot: TreeSnapshot) -> None:
        # Caller holds coordinator.lock; the sink writes to the same terminal
        aggregate = aggregate_progress(snapshot)
        if aggregate is None:
            self._clear_report()
            return
        fraction, state = aggregate
        key = (int(round(fraction * 100)), state)
        if key == self._last_report:
            return
        self._last_report = key
        self.sink.report_progress(fraction, state)

    def _clear_report(self) -> None:
        if self._last_report is None:
            return
        self._last_report = None
        self.sink.report_progress(None, ProgressState.NONE)

    # ------------------------------------------------------------------
    # Text output
    # ------------------------------------------------------------------

    def emit_text(self) -> None:
        """Print lines for jobs that finished since the last call."""
        if self.disabled:
            return
        with self.coordinator.lock, self._render_lock:
            self._emit_text_locked()

    def _emit_text_locked(self) -> None:
        snapshot = self.tree.snapshot_all()
        width = self.terminal.width()

        finished = []
        for job in snapshot.walk():
            if not job.status.is_terminal or not job.should_display:
                continue
            key = (job.id, job.terminal_since)
            if key in self._printed:
                continue
            self._printed.add(key)
            finished.append(job)
        # Completion order, not tree order
        finished.sort(key=lambda job: job.terminal_since or 0.0)

        if finished:
            lines = [self.renderer.render_job(job, width, text_mode=True) for job in finished]
            text = "\n".join(lines)
            self._write_text(text + "\n")
            self.diagnostics.emit(text, snapshot.roots)

        self.tree.reap()
        # Forget printed keys for jobs that no longer exist
        self._printed = {key for key in self._printed if key[0] in self.tree}

    def _write_text(self, text: str) -> None:
        with self.coordinator.lock:
            try:
                self.terminal.write(text)
            except (OSError, ValueError) as exc:
                failure = exc
            else:
                return
        if not self._text_failed:
            self._text_failed = True
            logger.warning("cannot write progress output: %s", failure)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Render the final state, stop the loop and forget every job."""
        self._shutdown(clear=False)

    def stop_clear(self) -> None:
        """Stop the loop and erase the region; diagnostics still get the final state."""
        self._shutdown(clear=True)

    def _shutdown(self, clear: bool) -> None:
        self._halt.set()
        self._wake.set()
        self._join()

        with self.coordinator.lock, self._render_lock:
            if not self.disabled:
                if self._mode is OutputMode.TEXT:
                    self._emit_text_locked()
                else:
                    self._final_frame(clear)
            self.tree.clear()
            self._printed.clear()
            self._paused = False
        self._halt.clear()
        self._resized.clear()

    def _join(self) -> None:
        with self._state_lock:
            thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(JOIN_TIMEOUT)
        if thread.is_alive():
            logger.warning("progress loop did not stop within %.1fs", JOIN_TIMEOUT)

    def _final_frame(self, clear: bool) -> None:
        self.tree.reap()
        snapshot = self.tree.snapshot_all()
        width = self.terminal.width()
        frame = self.renderer.compose(snapshot, width)

        failure = None
        with self.coordinator.lock:
            try:
                if clear:
                    failure = self._erase()
                elif frame != self._last_frame:
                    self._write_frame(frame, width)
            except (OSError, ValueError) as exc:
                failure = exc
            # The final frame stays on screen; later output starts below it
            self._lines_drawn = 0
            self._last_frame = None
            self._clear_report()

        if failure is not None:
            self._degrade(failure)
        self.diagnostics.emit(frame, snapshot.roots)
