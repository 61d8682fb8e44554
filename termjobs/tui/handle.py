"""
Caller-facing handle for a registered job.

A JobHandle is a small value holding the engine and a job id. Every
operation goes through the engine's job tree, so handles may be copied and
shared between threads freely. Operations on a job that was already removed
do nothing.
"""

import time
from typing import Any, List, Optional

from ..errors import JobNotFoundError
from .model import JobSnapshot, JobSpec, JobState, Status, coerce_prop


class JobHandle:
    """
    Mutates one job and signals the scheduler.

    Example:
        >>> job = JobSpec().prop("message", "Downloading").with_progress_total(100).start()
        >>> for chunk in range(100):
        ...     job.progress_current(chunk + 1)
        >>> job.set_status(Status.DONE)
    """

    def __init__(self, engine, job_id: int) -> None:
        self._engine = engine
        self.id = job_id

    def __repr__(self) -> str:
        return f"JobHandle(id={self.id})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JobHandle):
            return NotImplemented
        return self.id == other.id and self._engine is other._engine

    def __hash__(self) -> int:
        return hash(self.id)

    def _mutate(self, fn, structural: bool = False) -> bool:
        changed = self._engine.tree.mutate(self.id, fn)
        if changed:
            self._engine.scheduler.notify(structural)
        return changed

    # --- properties and templates ---

    def prop(self, key: str, value: Any) -> "JobHandle":
        """Set a template property. Returns self for chaining."""
        value = coerce_prop(value)

        def apply(state: JobState) -> None:
            state.props[key] = value

        self._mutate(apply)
        return self

    def message(self, text: str) -> "JobHandle":
        """Shorthand for prop("message", text)."""
        return self.prop("message", text)

    def set_body(self, body: str) -> "JobHandle":
        def apply(state: JobState) -> None:
            state.body = body

        self._mutate(apply)
        return self

    def set_body_text(self, body_text: Optional[str]) -> "JobHandle":
        def apply(state: JobState) -> None:
            state.body_text = body_text

        self._mutate(apply)
        return self

    # --- status ---

    def set_status(self, status: Status) -> "JobHandle":
        """
        Move the job to a new status.

        Entering done/failed/warn stamps the completion time; the job's
        on_done policy is applied when the next frame is produced.
        """
        status = Status(status)
        now = time.monotonic()

        def apply(state: JobState) -> None:
            state.set_status(status, now)

        self._mutate(apply, structural=True)
        return self

    @property
    def status(self) -> Optional[Status]:
        """Current status, or None once the job has been removed."""
        snapshot = self.snapshot()
        return snapshot.status if snapshot is not None else None

    def is_running(self) -> bool:
        return self.status is Status.RUNNING

    # --- progress ---

    def progress_current(self, current: int) -> "JobHandle":
        now = time.monotonic()

        def apply(state: JobState) -> None:
            state.metrics.set_current(current, now)

        self._mutate(apply)
        return self

    def progress_total(self, total: int) -> "JobHandle":
        def apply(state: JobState) -> None:
            state.metrics.set_total(total)

        self._mutate(apply)
        return self

    def increment(self, amount: int = 1) -> "JobHandle":
        """Add amount to the current value atomically."""
        now = time.monotonic()

        def apply(state: JobState) -> None:
            state.metrics.increment(amount, now)

        self._mutate(apply)
        return self

    def start_operations(self, count: int) -> "JobHandle":
        """Split the job into count sequential operations, starting at the first."""
        now = time.monotonic()

        def apply(state: JobState) -> None:
            state.metrics.start_operations(count, now)

        self._mutate(apply)
        return self

    def next_operation(self) -> bool:
        """
        Advance to the next operation, resetting current/total.

        Returns:
            bool: False when the job was already on its last operation (or is
                  gone); nothing changes in that case.
        """
        now = time.monotonic()
        advanced = []

        def apply(state: JobState) -> None:
            advanced.append(state.metrics.next_operation(now))

        self._mutate(apply)
        return bool(advanced and advanced[0])

    def overall_progress(self) -> Optional[float]:
        """Completion across all operations in [0, 1], or None without progress."""
        snapshot = self.snapshot()
        if snapshot is None:
            return None
        return snapshot.progress.overall_fraction

    # --- structure ---

    def add(self, spec: JobSpec) -> "JobHandle":
        """
        Start a child job under this one.

        Raises:
            JobNotFoundError: If this job has been removed.
        """
        return self._engine.start(spec, parent_id=self.id)

    def remove(self) -> bool:
        """Remove this job and its descendants immediately."""
        removed = self._engine.tree.remove(self.id)
        if removed:
            self._engine.scheduler.notify(structural=True)
        return removed

    def children(self) -> List["JobHandle"]:
        try:
            child_ids = self._engine.tree.children_of(self.id)
        except JobNotFoundError:
            return []
        return [JobHandle(self._engine, child_id) for child_id in child_ids]

    def snapshot(self) -> Optional[JobSnapshot]:
        """Frozen copy of the job and its subtree, or None once removed."""
        try:
            return self._engine.tree.get(self.id)
        except JobNotFoundError:
            return None

    def println(self, text: str) -> None:
        """Print a line above the progress region without tearing it."""
        self._engine.println(text)
