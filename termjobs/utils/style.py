"""
ANSI styling helpers used as template filters.

Each helper wraps text in an SGR escape and a trailing reset. Setting the
NO_COLOR environment variable turns every helper into the identity function.
"""

import os
from typing import Callable, Dict

# ANSI color codes for terminal output
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
CYAN = "\033[36m"
BRIGHT_GREEN = "\033[92m"
BOLD = "\033[1m"
DIM = "\033[2m"
UNDERLINE = "\033[4m"
RESET = "\033[0m"


def colors_enabled() -> bool:
    """Return False when the user opted out via NO_COLOR."""
    return not os.environ.get("NO_COLOR")


def _wrap(code: str, text) -> str:
    text = "" if text is None else str(text)
    if not text or not colors_enabled():
        return text
    return f"{code}{text}{RESET}"


def red(text) -> str:
    return _wrap(RED, text)


def green(text) -> str:
    return _wrap(GREEN, text)


def bright_green(text) -> str:
    return _wrap(BRIGHT_GREEN, text)


def yellow(text) -> str:
    return _wrap(YELLOW, text)


def blue(text) -> str:
    return _wrap(BLUE, text)


def magenta(text) -> str:
    return _wrap(MAGENTA, text)


def cyan(text) -> str:
    return _wrap(CYAN, text)


def bold(text) -> str:
    return _wrap(BOLD, text)


def dim(text) -> str:
    return _wrap(DIM, text)


def underline(text) -> str:
    return _wrap(UNDERLINE, text)


# Filter name -> function, registered on the template environment
STYLE_FILTERS: Dict[str, Callable[[object], str]] = {
    "cyan": cyan,
    "blue": blue,
    "green": green,
    "yellow": yellow,
    "red": red,
    "magenta": magenta,
    "bold": bold,
    "dim": dim,
    "underline": underline,
}
