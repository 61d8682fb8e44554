"""
Environment-driven configuration.

All runtime switches are read from environment variables once, when the
engine is created, into a frozen EngineConfig. Nothing else in the package
reads os.environ for behaviour.

Variables:
    TERMJOBS_TRACE_LOG     Path of the JSONL diagnostics log (off when unset)
    TERMJOBS_TRACE_RAW     Keep ANSI escapes in diagnostics
    TERMJOBS_TEXT_MODE     Force line-per-completion text output
    CI                     Same as TERMJOBS_TEXT_MODE (set by CI services)
    TERMJOBS_NO_PROGRESS   Disable all progress output
    TERMJOBS_INTERVAL_MS   Refresh interval in milliseconds (default 200)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 0.2

_TRUE_VALUES = {"1", "true", "yes", "on"}


def env_flag(environ: Mapping[str, str], name: str) -> bool:
    """
    Interpret an environment variable as a boolean switch.

    Example:
        >>> env_flag({"TERMJOBS_TEXT_MODE": "True"}, "TERMJOBS_TEXT_MODE")
        True
        >>> env_flag({}, "TERMJOBS_TEXT_MODE")
        False
    """
    return environ.get(name, "").strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine settings.

    Attributes:
        trace_log: Diagnostics JSONL destination, or None.
        trace_raw: Keep ANSI escapes in diagnostics.
        text_mode: Print finished jobs line by line instead of repainting.
        disabled: Render nothing at all.
        interval: Seconds between frames.
    """
    trace_log: Optional[Path] = None
    trace_raw: bool = False
    text_mode: bool = False
    disabled: bool = False
    interval: float = DEFAULT_INTERVAL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a config from the process environment (or the given mapping)."""
        env = os.environ if environ is None else environ

        trace = env.get("TERMJOBS_TRACE_LOG")
        interval = DEFAULT_INTERVAL
        raw_interval = env.get("TERMJOBS_INTERVAL_MS")
        if raw_interval:
            try:
                interval = max(int(raw_interval), 1) / 1000.0
            except ValueError:
                logger.warning("ignoring invalid TERMJOBS_INTERVAL_MS=%r", raw_interval)

        return cls(
            trace_log=Path(trace) if trace else None,
            trace_raw=env_flag(env, "TERMJOBS_TRACE_RAW"),
            text_mode=env_flag(env, "TERMJOBS_TEXT_MODE") or env_flag(env, "CI"),
            disabled=env_flag(env, "TERMJOBS_NO_PROGRESS"),
            interval=interval,
        )
