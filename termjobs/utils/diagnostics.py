"""
Frame-by-frame diagnostics log.

This module appends one JSON object per rendered frame to a file, so a
run can be inspected or asserted on after the fact without scraping the
terminal.

Purpose:
    Progress output is repainted in place and leaves nothing behind to
    debug. When TERMJOBS_TRACE_LOG points at a file, every frame the
    scheduler writes is also recorded together with the job tree that
    produced it.

Line Format:
    {"rendered": "<frame text>", "jobs": [{"id": 1, "status": "running",
     "message": "Downloading", "progress": [5, 10], "children": [...]}]}

Design Decisions:
    - Append-only, one JSON object per line (JSONL)
    - Escape sequences are stripped from "rendered" unless raw output was
      requested, so the text compares cleanly in tests
    - Diagnostics must never break the progress display: the first I/O
      failure is logged once and the emitter switches itself off
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterable, Optional, TextIO

from ..tui.layout import strip_ansi
from ..tui.model import JobSnapshot

logger = logging.getLogger(__name__)


class DiagnosticsEmitter:
    """
    Append-only JSONL writer for rendered frames.

    Attributes:
        path: Destination file, or None when diagnostics are off.
        raw: Keep escape sequences in the rendered text.
        enabled: False once a write failed or when no path was given.

    Example:
        >>> emitter = DiagnosticsEmitter(Path("/tmp/frames.jsonl"))
        >>> emitter.emit("⠋ Downloading", snapshot.roots)
        # Appends: {"rendered": "⠋ Downloading", "jobs": [...]}
    """

    def __init__(self, path: Optional[Path] = None, raw: bool = False) -> None:
        self.path = Path(path) if path is not None else None
        self.raw = raw
        self.enabled = self.path is not None
        self._handle: Optional[TextIO] = None
        self._lock = threading.Lock()

    def _open(self) -> TextIO:
        if self._handle is None:
            # Ensure the parent directory exists before the first write
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
        return self._handle

    def emit(self, rendered: str, jobs: Iterable[JobSnapshot]) -> None:
        """
        Append one frame record.

        Args:
            rendered: The frame text as written to the terminal.
            jobs: Root job snapshots the frame was rendered from.
        """
        if not self.enabled:
            return
        record = {
            "rendered": rendered if self.raw else strip_ansi(rendered),
            "jobs": [job.to_dict() for job in jobs],
        }
        line = json.dumps(record, ensure_ascii=False)
        with self._lock:
            if not self.enabled:
                return
            try:
                handle = self._open()
                handle.write(line + "\n")
                handle.flush()
            except OSError as exc:
                self.enabled = False
                logger.warning("diagnostics disabled, cannot write %s: %s", self.path, exc)

    def close(self) -> None:
        with self._lock:
            if self._handle is not None:
                try:
                    self._handle.close()
                except OSError as exc:
                    logger.debug("closing diagnostics log failed: %s", exc)
                self._handle = None
