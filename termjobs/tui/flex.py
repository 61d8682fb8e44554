"""
Flex markers and progress bars.

Templates are evaluated before the available width is known to them, so
width-dependent pieces are emitted as markers and resolved afterwards, one
physical line at a time:

    flex       shrink to fit, ellipsis when cut
    flex_fill  shrink to fit, pad when short
    bar        progress bar sized to its share

A marker is written as <flex>text</flex>, except that the angle brackets
are the private-use code points U+E000 and U+E001. Those code points are
stripped from every value that reaches a template, so rendered text can
never contain a marker it did not get from a filter.

Resolution:
    1. Measure the line with all markers removed (the fixed width)
    2. remaining = line width - fixed width
    3. Split remaining evenly between the markers on that line; leftover
       columns go to the first marker
    4. If nothing remains, every marker collapses to empty and the line is
       left as wide as its fixed content
"""

import re
from dataclasses import dataclass
from typing import List
from urllib.parse import quote, unquote

from ..utils import style
from .layout import pad, truncate, visual_width

FLEX = "flex"
FLEX_FILL = "flex_fill"
BAR = "bar"

MARK_OPEN = "\ue000"
MARK_CLOSE = "\ue001"

MARKER_RE = re.compile(
    MARK_OPEN + r"(flex|flex_fill|bar)" + MARK_CLOSE + r"(.*?)" + MARK_OPEN + r"/\1" + MARK_CLOSE,
    re.DOTALL,
)


@dataclass(frozen=True)
class BarChars:
    """Glyphs used to draw a progress bar."""
    fill: str = "="
    head: str = ">"
    empty: str = " "
    left: str = "["
    right: str = "]"


BAR_STYLES = {
    "default": BarChars(),
    "blocks": BarChars(fill="█", head="▓", empty="░", left="", right=""),
    "thin": BarChars(fill="━", head="╸", empty="─", left="", right=""),
}


def scrub_markers(text: str) -> str:
    """Remove marker delimiters from text that did not come from a filter."""
    return text.replace(MARK_OPEN, "").replace(MARK_CLOSE, "")


def marker(kind: str, content: str) -> str:
    return f"{MARK_OPEN}{kind}{MARK_CLOSE}{content}{MARK_OPEN}/{kind}{MARK_CLOSE}"


def _single_line(text) -> str:
    # Markers are resolved per line, so their content must not span lines
    return " ".join(scrub_markers(str(text)).splitlines())


def flex(text) -> str:
    """Template filter: mark text as shrinkable."""
    return marker(FLEX, _single_line(text))


def flex_fill(text) -> str:
    """Template filter: mark text as shrinkable and padded to its share."""
    return marker(FLEX_FILL, _single_line(text))


def bar_placeholder(current: int, total: int, chars: BarChars) -> str:
    """Encode a progress bar whose width is decided during flex resolution."""
    fields = [str(current), str(total), chars.fill, chars.head, chars.empty, chars.left, chars.right]
    payload = ",".join(quote(f, safe="") for f in fields)
    return marker(BAR, payload)


def render_progress_bar(current: int, total: int, width: int, chars: BarChars = BarChars()) -> str:
    """
    Draw a bar exactly width columns wide (brackets included).

    The bar is fully filled only when current >= total. Before that the
    leading edge is drawn with the head glyph.

    Args:
        current: Completed units (clamped into [0, total]).
        total: Total units. Zero draws an empty bar.
        width: Columns to occupy. Zero or less returns "".
        chars: Glyph set.

    Returns:
        str: The bar wrapped in the dim style.

    Example:
        >>> strip_ansi(render_progress_bar(5, 10, 12))
        '[====>     ]'
    """
    if width <= 0:
        return ""
    left, right = chars.left, chars.right
    if visual_width(left) + visual_width(right) >= width:
        # Too narrow for brackets; spend every column on the bar itself
        left = right = ""
    inner = width - visual_width(left) - visual_width(right)

    ratio = 0.0
    if total > 0:
        ratio = min(max(current, 0), total) / total
    filled = int(round(inner * ratio))

    if ratio >= 1.0:
        content = chars.fill * inner
    elif filled > 0:
        content = chars.fill * (filled - 1) + chars.head + chars.empty * (inner - filled)
    else:
        content = chars.empty * inner
    return style.dim(f"{left}{content}{right}")


def _render_bar_marker(payload: str, width: int) -> str:
    parts = [unquote(p) for p in payload.split(",")]
    if len(parts) != 7:
        return ""
    try:
        current, total = int(parts[0]), int(parts[1])
    except ValueError:
        return ""
    chars = BarChars(*parts[2:])
    return render_progress_bar(current, total, width, chars)


def _shares(remaining: int, count: int) -> List[int]:
    if remaining <= 0:
        return [0] * count
    base, extra = divmod(remaining, count)
    shares = [base] * count
    shares[0] += extra
    return shares


def resolve_line(line: str, width: int) -> str:
    """
    Resolve every marker on a single physical line.

    Args:
        line: One line of rendered template output.
        width: Columns available to the line.

    Returns:
        str: The line with markers replaced by fitted content.

    Example:
        >>> resolve_line("ab " + flex_fill("xyz") + "|", 10)
        'ab xyz   |'
    """
    markers = list(MARKER_RE.finditer(line))
    if not markers:
        return line

    fixed = visual_width(MARKER_RE.sub("", line))
    shares = _shares(width - fixed, len(markers))

    out = []
    pos = 0
    for match, share in zip(markers, shares):
        out.append(line[pos:match.start()])
        kind, content = match.group(1), match.group(2)
        if kind == FLEX:
            out.append(truncate(content, share))
        elif kind == FLEX_FILL:
            out.append(pad(truncate(content, share), share))
        else:
            out.append(_render_bar_marker(content, share))
        pos = match.end()
    out.append(line[pos:])
    return "".join(out)


def resolve_flex(text: str, width: int) -> str:
    """Resolve markers in multi-line text, each line against the same width."""
    if MARK_OPEN not in text:
        return text
    return "\n".join(resolve_line(line, width) for line in text.split("\n"))
