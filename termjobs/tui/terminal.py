"""
Terminal access and the shared output lock.

Purpose:
    The live progress region is repainted in place by moving the cursor up
    over the previously drawn rows. Any other text written to the same
    terminal while that happens would be overwritten or torn. The
    OutputCoordinator owns the one lock that every writer takes, and lets
    the scheduler clear its region before foreign output and repaint after.

Design Decisions:
    - A re-entrant lock, so a logging handler that fires while the lock is
      already held by the same thread cannot deadlock
    - Listeners (the scheduler) are notified synchronously while the lock is
      held: clearing happens before the body runs, and the redraw request is
      issued on every exit path including exceptions
"""

import os
import shutil
import sys
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, TextIO, TypeVar

T = TypeVar("T")

DEFAULT_WIDTH = 80

CURSOR_UP = "\033[{n}A"
CARRIAGE_RETURN = "\r"
CLEAR_TO_END = "\033[J"


class Terminal:
    """
    Thin wrapper around the output stream.

    Attributes:
        stream: Text stream frames are written to (stderr by default).
        fixed_width: Width override; when None the width is queried on every
                     call so resizes are picked up.
    """

    def __init__(self, stream: Optional[TextIO] = None, width: Optional[int] = None) -> None:
        self.stream = stream if stream is not None else sys.stderr
        self.fixed_width = width

    def width(self) -> int:
        """Current terminal width in columns."""
        if self.fixed_width is not None:
            return self.fixed_width
        try:
            return os.get_terminal_size(self.stream.fileno()).columns
        except (AttributeError, OSError, ValueError):
            # Not a real terminal (pipe, StringIO, closed stream)
            return shutil.get_terminal_size((DEFAULT_WIDTH, 24)).columns

    def is_interactive(self) -> bool:
        try:
            return self.stream.isatty()
        except (AttributeError, ValueError):
            return False

    def write(self, text: str) -> None:
        """Write text and flush. Errors propagate to the caller."""
        self.stream.write(text)
        self.stream.flush()

    @staticmethod
    def clear_sequence(rows: int) -> str:
        """Escape sequence moving up over rows lines and erasing to the end of screen."""
        if rows <= 0:
            return ""
        return CURSOR_UP.format(n=rows) + CARRIAGE_RETURN + CLEAR_TO_END


class OutputCoordinator:
    """
    The terminal lock plus the listeners that must react to foreign output.

    A listener implements suspend_output() (erase whatever it has drawn)
    and request_redraw() (paint again on the next occasion).

    Example:
        >>> coordinator.with_terminal_lock(lambda: print("hello", file=sys.stderr))
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._listeners: List[object] = []

    def attach(self, listener) -> None:
        self._listeners.append(listener)

    def detach(self, listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def with_terminal_lock(self, body: Callable[[], T]) -> T:
        """
        Run body with exclusive access to the terminal.

        Listeners clear their region first and are asked to repaint
        afterwards, even if body raises.

        Returns:
            Whatever body returns.
        """
        with self.locked():
            return body()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Context-manager form of with_terminal_lock."""
        with self.lock:
            for listener in list(self._listeners):
                listener.suspend_output()
            try:
                yield
            finally:
                for listener in list(self._listeners):
                    listener.request_redraw()
