"""
Aggregate progress reporting to the terminal (OSC 9;4).

Some terminals show a progress indicator in the tab or taskbar when they
receive ESC ] 9 ; 4 ; <state> ; <percent> ESC \\. The scheduler computes one
aggregate fraction for all jobs and hands it to a ProgressSink whenever the
rounded percentage or the state changes.

Detection follows the terminal's own environment markers; unknown terminals
get nothing, since an unsupported OSC sequence can show up as garbage.
"""

import os
import sys
from enum import Enum
from typing import Mapping, Optional, Protocol, TextIO


class ProgressState(Enum):
    """OSC 9;4 state codes."""
    NONE = 0
    NORMAL = 1
    ERROR = 2
    INDETERMINATE = 3
    WARNING = 4


class ProgressSink(Protocol):
    """Anything that can display an aggregate progress fraction."""

    def report_progress(self, fraction: Optional[float], state: ProgressState) -> None:
        ...


class NullProgressSink:
    """Discards every report."""

    def report_progress(self, fraction: Optional[float], state: ProgressState) -> None:
        return None


_SUPPORTED_PROGRAMS = {"ghostty", "vscode", "iTerm.app"}
_UNSUPPORTED_PROGRAMS = {"WezTerm", "Alacritty"}


def terminal_supports_osc_progress(environ: Optional[Mapping[str, str]] = None) -> bool:
    """
    Guess whether the hosting terminal understands OSC 9;4.

    Args:
        environ: Environment to inspect (defaults to os.environ).

    Returns:
        bool: True for Ghostty, VS Code, iTerm2, Windows Terminal and
              VTE-based terminals.
    """
    env = os.environ if environ is None else environ
    program = env.get("TERM_PROGRAM", "")
    if program in _SUPPORTED_PROGRAMS:
        return True
    if program in _UNSUPPORTED_PROGRAMS:
        return False
    return "WT_SESSION" in env or "VTE_VERSION" in env


def osc_sequence(fraction: Optional[float], state: ProgressState) -> str:
    """Build the escape sequence for a fraction in [0, 1] (None means 0)."""
    percent = int(round(min(max(fraction or 0.0, 0.0), 1.0) * 100))
    return f"\x1b]9;4;{state.value};{percent}\x1b\\"


class OscProgressSink:
    """
    Writes OSC 9;4 sequences to a stream.

    Attributes:
        stream: Destination (stderr by default).
        enabled: Whether anything is written. Defaults to terminal detection
                 combined with the stream being a TTY.
    """

    def __init__(self, stream: Optional[TextIO] = None, enabled: Optional[bool] = None) -> None:
        self.stream = stream if stream is not None else sys.stderr
        if enabled is None:
            try:
                is_tty = self.stream.isatty()
            except (AttributeError, ValueError):
                is_tty = False
            enabled = is_tty and terminal_supports_osc_progress()
        self.enabled = enabled

    def report_progress(self, fraction: Optional[float], state: ProgressState) -> None:
        if not self.enabled:
            return
        try:
            self.stream.write(osc_sequence(fraction, state))
            self.stream.flush()
        except (OSError, ValueError):
            # The progress region reports the same failure on its next write
            self.enabled = False
