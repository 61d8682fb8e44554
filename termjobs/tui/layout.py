"""
Visual width measurement and line fitting for terminal output.

Everything the renderer measures goes through this module. Terminal width is
counted in columns, not code points: escape sequences take no space, combining
marks take none either, and East-Asian wide characters take two.

Design Decisions:
    - Widths come from unicodedata (east_asian_width + combining/category),
      which ships with the interpreter and tracks its Unicode version
    - Escape sequences are preserved by truncate(), and a reset is appended
      after a cut so a colour never bleeds past the ellipsis
    - pad() never truncates and truncate() never pads; flex resolution
      combines the two
"""

import re
import unicodedata
from typing import Iterator, Tuple

# CSI (colours, cursor movement), OSC (titles, progress reports) terminated by
# BEL or ST, and the remaining two-byte escapes
ANSI_RE = re.compile(
    r"\x1b\[[0-?]*[ -/]*[@-~]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b[@-Z\\-_]"
)

ELLIPSIS = "…"
RESET = "\033[0m"


def strip_ansi(text: str) -> str:
    """Remove every escape sequence from text."""
    return ANSI_RE.sub("", text)


def char_width(ch: str) -> int:
    """
    Return the number of terminal columns a single code point occupies.

    Args:
        ch: A single character.

    Returns:
        int: 0 for control characters, combining marks and format characters
             (zero-width joiner, variation selectors); 2 for wide and fullwidth
             characters; 1 otherwise.

    Example:
        >>> char_width("a"), char_width("漢"), char_width("́")
        (1, 2, 0)
    """
    code = ord(ch)
    # C0/C1 controls and DEL draw nothing
    if code < 32 or 0x7F <= code < 0xA0:
        return 0
    if unicodedata.combining(ch):
        return 0
    category = unicodedata.category(ch)
    if category in ("Mn", "Me", "Cf"):
        return 0
    if unicodedata.east_asian_width(ch) in ("W", "F"):
        return 2
    return 1


def _segments(text: str) -> Iterator[Tuple[bool, str]]:
    """Split text into (is_escape, chunk) pairs in order."""
    pos = 0
    for match in ANSI_RE.finditer(text):
        if match.start() > pos:
            yield False, text[pos:match.start()]
        yield True, match.group(0)
        pos = match.end()
    if pos < len(text):
        yield False, text[pos:]


def visual_width(text: str) -> int:
    """
    Return the display width of text in terminal columns.

    Escape sequences are skipped entirely.

    Example:
        >>> visual_width("\033[31mred\033[0m")
        3
        >>> visual_width("日本")
        4
    """
    return sum(char_width(ch) for ch in strip_ansi(text))


def truncate(text: str, width: int, ellipsis: str = ELLIPSIS) -> str:
    """
    Cut text to at most width columns, ending in an ellipsis when cut.

    Escape sequences that appear before the cut point are kept so colours
    still apply to the visible part. When at least one was kept, a reset
    follows the ellipsis.

    Args:
        text: The text to fit, possibly styled.
        width: Maximum columns. Zero or less yields an empty string.
        ellipsis: Marker appended when text was cut.

    Returns:
        str: Text whose visual width is at most width.

    Example:
        >>> truncate("hello world", 8)
        'hello w…'
    """
    if width <= 0:
        return ""
    if visual_width(text) <= width:
        return text

    ellipsis_width = visual_width(ellipsis)
    if ellipsis_width > width:
        ellipsis, ellipsis_width = "", 0
    budget = width - ellipsis_width

    out = []
    used = 0
    saw_escape = False
    for is_escape, chunk in _segments(text):
        if is_escape:
            out.append(chunk)
            saw_escape = True
            continue
        for ch in chunk:
            w = char_width(ch)
            # A wide character that would straddle the budget is dropped whole
            if used + w > budget:
                break
            out.append(ch)
            used += w
        else:
            continue
        break

    out.append(ellipsis)
    if saw_escape:
        out.append(RESET)
    return "".join(out)


def pad(text: str, width: int) -> str:
    """Right-pad text with spaces to width columns. Never truncates."""
    missing = width - visual_width(text)
    if missing <= 0:
        return text
    return text + " " * missing


def indent(text: str, depth: int, size: int = 2) -> str:
    """Prefix every line of text with depth * size spaces."""
    if depth <= 0:
        return text
    prefix = " " * (depth * size)
    return "\n".join(prefix + line for line in text.split("\n"))


def rows_consumed(line: str, term_width: int) -> int:
    """
    Return how many terminal rows a line takes once the terminal wraps it.

    An empty line still occupies one row.

    Example:
        >>> rows_consumed("x" * 100, 80)
        2
    """
    if term_width <= 0:
        return 1
    width = visual_width(line)
    if width == 0:
        return 1
    return (width + term_width - 1) // term_width
