"""
Logging integration.

Log records written straight to stderr while the progress region is on
screen end up painted over. ProgressLogHandler writes each record through
the engine's terminal lock instead: the region is erased, the record
printed, and the region repainted below it.
"""

import logging
from typing import Optional

from . import style

_LEVEL_STYLES = (
    (logging.ERROR, style.red),
    (logging.WARNING, style.yellow),
    (logging.INFO, style.cyan),
)


def styled_level(levelno: int, levelname: str) -> str:
    """Colour a level name by severity (dim for DEBUG and below)."""
    for threshold, paint in _LEVEL_STYLES:
        if levelno >= threshold:
            return paint(levelname)
    return style.dim(levelname)


class ProgressLogHandler(logging.Handler):
    """
    logging.Handler that prints above the progress region.

    Attributes:
        engine: Engine whose terminal and lock are used. None means the
                default engine, looked up on every record.

    Example:
        >>> install_log_handler(logging.INFO)
        >>> logging.getLogger("build").info("cache warmed")
    """

    def __init__(self, engine=None, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self.engine = engine
        self.setFormatter(logging.Formatter("%(message)s"))

    def _engine(self):
        if self.engine is not None:
            return self.engine
        from ..engine import get_engine
        return get_engine()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = f"{styled_level(record.levelno, record.levelname)} {self.format(record)}\n"
            engine = self._engine()
            engine.with_terminal_lock(lambda: engine.terminal.write(line))
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)


def install_log_handler(
    level: int = logging.INFO,
    logger: Optional[logging.Logger] = None,
    engine=None,
) -> ProgressLogHandler:
    """
    Attach a ProgressLogHandler to logger (the root logger by default).

    The logger's own level is lowered to level if it would otherwise
    filter those records out.

    Returns:
        ProgressLogHandler: The installed handler, for later removal.
    """
    target = logger if logger is not None else logging.getLogger()
    handler = ProgressLogHandler(engine, level)
    target.addHandler(handler)
    if target.level == logging.NOTSET or target.level > level:
        target.setLevel(level)
    return handler
