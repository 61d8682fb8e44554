"""
Template evaluation and frame composition.

Purpose:
    Each job carries a Jinja2 body template. At render time the job's
    properties and a set of job-bound helper functions (spinner, progress
    bar, rate, ETA, ...) are passed in as the template context, the result
    is flex-resolved against the available width, and job lines are stacked
    into a frame with children indented under their parent.

Design Decisions:
    - One Environment per renderer with StrictUndefined: referencing an
      unknown property is an evaluation error. Any error raised while a
      body is compiled or evaluated (including arithmetic on property
      values) falls back to the job's message instead of reaching the
      render loop
    - Compiled templates are cached per body string
    - The helper functions read only the snapshot, so rendering the same
      snapshot twice produces identical bytes
"""

import functools
import logging
from typing import Any, Dict, List, Optional

from jinja2 import Environment, StrictUndefined, pass_context

from ..utils.format import format_bytes, format_count, format_duration, format_rate
from ..utils.style import STYLE_FILTERS, blue, bright_green, dim, red, yellow
from .flex import (
    BAR_STYLES,
    BarChars,
    bar_placeholder,
    flex,
    flex_fill,
    render_progress_bar,
    resolve_flex,
    scrub_markers,
)
from .layout import ELLIPSIS, indent
from .model import JobSnapshot, Status, TreeSnapshot
from .spinners import DEFAULT_SPINNER, get_spinner

logger = logging.getLogger(__name__)

# Columns added per nesting level
INDENT_SIZE = 2
# Context key carrying the line width for width-aware filters
WIDTH_KEY = "_line_width"


@pass_context
def truncate_text(context, value, length: Optional[int] = None, prefix_len: int = 20) -> str:
    """
    Template filter: hard-truncate text with an ellipsis.

    Without length the limit is the line width minus prefix_len, leaving
    room for whatever precedes the text on the line.
    """
    text = "" if value is None else str(value)
    if length is None:
        length = max(int(context.get(WIDTH_KEY, 80)) - prefix_len, 0)
    if len(text) <= length:
        return text
    if length > 1:
        return text[: length - 1] + ELLIPSIS
    return ELLIPSIS


class JobFunctions:
    """
    Helper functions exposed to one job's template.

    Bound to a single snapshot and line width; instances are created per
    render and discarded.
    """

    def __init__(self, job: JobSnapshot, width: int, text_mode: bool = False) -> None:
        self.job = job
        self.width = width
        self.text_mode = text_mode

    def spinner(self, name: str = DEFAULT_SPINNER) -> str:
        """Animation frame by elapsed time, frame 0 unless the job is running."""
        spinner = get_spinner(name)
        if self.job.status is not Status.RUNNING:
            return spinner.frames[0]
        return spinner.frame_at(self.job.taken_at - self.job.created_at)

    def icon(self, name: str = DEFAULT_SPINNER) -> str:
        """Status glyph: a spinner while running, a mark once settled."""
        status = self.job.status
        if status is Status.RUNNING:
            # Text mode never repaints, so an animation frame would be noise
            if self.text_mode:
                return " "
            return blue(self.spinner(name))
        if status is Status.PENDING:
            return dim(yellow("⏸"))
        if status is Status.DONE:
            return bright_green("✔")
        if status is Status.FAILED:
            return red("✗")
        if status is Status.WARN:
            return yellow("⚠")
        return " "

    def progress_bar(
        self,
        flex: bool = False,
        width: Optional[int] = None,
        hide_complete: bool = False,
        style: Optional[str] = None,
        fill: Optional[str] = None,
        head: Optional[str] = None,
        empty: Optional[str] = None,
        left: Optional[str] = None,
        right: Optional[str] = None,
    ) -> str:
        progress = self.job.progress.progress
        if progress is None:
            return ""
        if hide_complete and self.job.progress.is_complete:
            return ""

        base = BAR_STYLES.get(style or "default", BAR_STYLES["default"])
        chars = BarChars(
            fill=base.fill if fill is None else fill,
            head=base.head if head is None else head,
            empty=base.empty if empty is None else empty,
            left=base.left if left is None else left,
            right=base.right if right is None else right,
        )
        current, total = progress
        if flex:
            return bar_placeholder(current, total, chars)

        bar_width = self.width if width is None else int(width)
        if bar_width < 0:
            # Negative widths are relative to the line width
            bar_width = self.width + bar_width
        return render_progress_bar(current, total, max(bar_width, 0), chars)

    def elapsed(self) -> str:
        return format_duration(self.job.elapsed)

    def eta(self, hide_complete: bool = False) -> str:
        # eta_seconds is None once complete, so hide_complete needs no extra check
        seconds = self.job.progress.eta_seconds
        if seconds is None:
            return ""
        return format_duration(seconds)

    def rate(self) -> str:
        return format_rate(self.job.progress.effective_rate)

    def bytes(self, total: bool = True, hide_complete: bool = False) -> str:
        progress = self.job.progress.progress
        if progress is None:
            return ""
        if hide_complete and self.job.progress.is_complete:
            return ""
        current, limit = progress
        if total:
            return f"{format_bytes(current)} / {format_bytes(limit)}"
        return format_bytes(current)

    def percentage(self, decimals: int = 0, hide_complete: bool = False) -> str:
        fraction = self.job.progress.overall_fraction
        if fraction is None:
            return ""
        if hide_complete and fraction >= 1.0:
            return ""
        decimals = min(max(int(decimals), 0), 20)
        return f"{fraction * 100.0:.{decimals}f}%"

    def count_format(self, value: Optional[float] = None, decimals: int = 1) -> str:
        if value is None:
            progress = self.job.progress.progress
            if progress is None:
                return ""
            value = progress[0]
        return format_count(value, int(decimals))

    def context(self) -> Dict[str, Any]:
        """Template context: properties, cur/total, then the helper functions."""
        ctx: Dict[str, Any] = {
            key: scrub_markers(value) if isinstance(value, str) else value
            for key, value in self.job.props.items()
        }
        progress = self.job.progress.progress
        if progress is not None:
            ctx["cur"], ctx["total"] = progress
        ctx.update(
            spinner=self.spinner,
            icon=self.icon,
            progress_bar=self.progress_bar,
            elapsed=self.elapsed,
            eta=self.eta,
            rate=self.rate,
            bytes=self.bytes,
            percentage=self.percentage,
            count_format=self.count_format,
        )
        ctx[WIDTH_KEY] = self.width
        return ctx


class TemplateRenderer:
    """
    Renders job snapshots into lines and frames.

    One renderer is shared by the scheduler and text-mode output. It holds
    no per-job state besides the compiled template cache.
    """

    def __init__(self, cache_size: int = 256) -> None:
        self.env = Environment(autoescape=False, undefined=StrictUndefined)
        self.env.filters.update(STYLE_FILTERS)
        self.env.filters["flex"] = flex
        self.env.filters["flex_fill"] = flex_fill
        self.env.filters["truncate_text"] = truncate_text
        self._compile = functools.lru_cache(maxsize=cache_size)(self.env.from_string)

    def render_job(self, job: JobSnapshot, width: int, text_mode: bool = False) -> str:
        """
        Render one job's own body (no children) at the given width.

        Falls back to the job's message, or an empty string, when the
        template cannot be evaluated.
        """
        source = job.body_text if text_mode and job.body_text is not None else job.body
        try:
            template = self._compile(scrub_markers(source))
            text = template.render(JobFunctions(job, width, text_mode).context())
        except Exception as exc:
            # Any error raised while evaluating a body stays with that job
            logger.debug("template for job %s failed: %r", job.id, exc)
            text = scrub_markers(job.message or "")
        return resolve_flex(text, width)

    def render_lines(self, job: JobSnapshot, width: int, depth: int = 0, text_mode: bool = False) -> List[str]:
        """Render a job and its displayable descendants, indented by depth."""
        if not job.should_display:
            return []
        own_width = max(width - depth * INDENT_SIZE, 0)
        body = indent(self.render_job(job, own_width, text_mode), depth, INDENT_SIZE)
        lines = body.split("\n")
        # A collapsing job gets its last frame with its children folded away
        if job.should_display_children and not job.collapsed:
            for child in job.children:
                lines.extend(self.render_lines(child, width, depth + 1, text_mode))
        return lines

    def compose(self, snapshot: TreeSnapshot, width: int, text_mode: bool = False) -> str:
        """Compose a full frame: every displayable root with its subtree."""
        lines: List[str] = []
        for root in snapshot.roots:
            lines.extend(self.render_lines(root, width, 0, text_mode))
        return "\n".join(lines)
