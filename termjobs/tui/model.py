"""
Data models for progress jobs.

This module defines the value types shared by the job tree, the renderer,
the scheduler and the diagnostics emitter.

Purpose:
    A job exists in three shapes. JobSpec is the immutable builder a caller
    fills in before starting. JobState is the mutable record the tree owns
    while the job is registered. JobSnapshot is the frozen copy taken once
    per frame, which renderers read without holding any lock.

Design Decisions:
    - Status and DoneBehavior are str-valued enums so they serialize as
      their names in diagnostics
    - JobSpec setters return a new spec (dataclasses.replace), so a spec
      can be shared and reused as a template for many jobs
    - Snapshots are recursive and carry their own timestamp, which makes
      rendering a pure function of the snapshot
"""

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .metrics import ProgressMetrics, ProgressView

PropValue = Union[str, int, float, bool]

DEFAULT_BODY = "{{ icon() }} {{ message }}"


class Status(str, Enum):
    """Lifecycle state of a job."""
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    WARN = "warn"
    HIDE = "hide"

    @property
    def is_active(self) -> bool:
        return self is Status.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self in (Status.DONE, Status.FAILED, Status.WARN)

    @property
    def is_live(self) -> bool:
        """True while the job has not finished (hidden jobs are still working)."""
        return not self.is_terminal


class DoneBehavior(str, Enum):
    """
    What happens to a job once it reaches a terminal status.

    KEEP leaves it in the tree and on screen. COLLAPSE renders it once more
    with its children folded away, then removes it. HIDE removes it before
    the next frame.
    """
    KEEP = "keep"
    COLLAPSE = "collapse"
    HIDE = "hide"


def coerce_prop(value: Any) -> PropValue:
    """Keep str/int/float/bool values as they are and stringify anything else."""
    if isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@dataclass(frozen=True)
class JobSpec:
    """
    Immutable description of a job to start.

    Attributes:
        body: Template rendered for the job in interactive mode.
        body_text: Alternate template used in text mode, if set.
        status: Initial status (running by default).
        on_done: Policy applied once the job finishes.
        props: Initial template properties.
        progress_current: Initial current value, if any.
        progress_total: Initial total, if any.

    Example:
        >>> spec = JobSpec().prop("message", "Downloading").with_progress_total(100)
        >>> handle = spec.start()
    """
    body: str = DEFAULT_BODY
    body_text: Optional[str] = None
    status: Status = Status.RUNNING
    on_done: DoneBehavior = DoneBehavior.KEEP
    props: Mapping[str, PropValue] = field(default_factory=dict)
    progress_current: Optional[int] = None
    progress_total: Optional[int] = None

    def with_body(self, body: str) -> "JobSpec":
        return replace(self, body=body)

    def with_body_text(self, body_text: Optional[str]) -> "JobSpec":
        return replace(self, body_text=body_text)

    def with_status(self, status: Status) -> "JobSpec":
        return replace(self, status=Status(status))

    def with_on_done(self, on_done: DoneBehavior) -> "JobSpec":
        return replace(self, on_done=DoneBehavior(on_done))

    def prop(self, key: str, value: Any) -> "JobSpec":
        props = dict(self.props)
        props[key] = coerce_prop(value)
        return replace(self, props=props)

    def with_progress_current(self, current: int) -> "JobSpec":
        return replace(self, progress_current=int(current))

    def with_progress_total(self, total: int) -> "JobSpec":
        return replace(self, progress_total=int(total))

    def start(self, engine=None):
        """
        Register this spec as a new root job and return its handle.

        Args:
            engine: The ProgressEngine to register with. Defaults to the
                    process-wide engine, created on first use.

        Returns:
            JobHandle: Handle for the running job.
        """
        if engine is None:
            from ..engine import get_engine
            engine = get_engine()
        return engine.start(self)


@dataclass
class JobState:
    """
    Mutable record of a registered job. Owned by JobTree.

    Only code running under the tree lock (JobTree.mutate callbacks) may
    touch these fields.
    """
    id: int
    parent_id: Optional[int]
    body: str
    body_text: Optional[str]
    status: Status
    on_done: DoneBehavior
    props: Dict[str, PropValue]
    metrics: ProgressMetrics
    created_at: float
    updated_at: float
    children: List[int] = field(default_factory=list)
    # Monotonic time the job last entered a terminal status
    terminal_since: Optional[float] = None
    # Set once a collapsing job has been given its final frame
    collapsed: bool = False

    @classmethod
    def from_spec(cls, job_id: int, spec: JobSpec, parent_id: Optional[int], now: float) -> "JobState":
        metrics = ProgressMetrics(operation_started_at=now)
        if spec.progress_total is not None:
            metrics.set_total(spec.progress_total)
        if spec.progress_current is not None:
            metrics.set_current(spec.progress_current, now)
        status = Status(spec.status)
        return cls(
            id=job_id,
            parent_id=parent_id,
            body=spec.body,
            body_text=spec.body_text,
            status=status,
            on_done=DoneBehavior(spec.on_done),
            props={k: coerce_prop(v) for k, v in spec.props.items()},
            metrics=metrics,
            created_at=now,
            updated_at=now,
            terminal_since=now if status.is_terminal else None,
        )

    def set_status(self, status: Status, now: float) -> bool:
        """Apply a status transition. Returns False when nothing changed."""
        status = Status(status)
        if status is self.status:
            return False
        self.status = status
        if status.is_terminal:
            self.terminal_since = now
        else:
            # Re-opened jobs render normally again
            self.terminal_since = None
            self.collapsed = False
        return True

    def copy(self) -> "JobState":
        return replace(
            self,
            props=dict(self.props),
            metrics=self.metrics.copy(),
            children=list(self.children),
        )


@dataclass(frozen=True)
class JobSnapshot:
    """
    Frozen view of one job and its visible-or-not children.

    Attributes:
        id: Job id.
        parent_id: Parent job id, None for roots.
        status: Status at snapshot time.
        on_done: Done policy.
        body: Interactive template.
        body_text: Text-mode template, if any.
        props: Read-only property mapping.
        progress: Frozen progress numbers.
        created_at: Monotonic start time.
        updated_at: Monotonic time of the last mutation.
        terminal_since: Monotonic time the job finished, if finished.
        collapsed: True while a collapsing job gets its final frame.
        taken_at: Monotonic time the snapshot was taken.
        children: Child snapshots in insertion order.
    """
    id: int
    parent_id: Optional[int]
    status: Status
    on_done: DoneBehavior
    body: str
    body_text: Optional[str]
    props: Mapping[str, PropValue]
    progress: ProgressView
    created_at: float
    updated_at: float
    terminal_since: Optional[float]
    collapsed: bool
    taken_at: float
    children: Tuple["JobSnapshot", ...] = ()

    @property
    def message(self) -> Optional[str]:
        value = self.props.get("message")
        return value if isinstance(value, str) else None

    @property
    def elapsed(self) -> float:
        end = self.terminal_since if self.terminal_since is not None else self.taken_at
        return max(end - self.created_at, 0.0)

    @property
    def should_display(self) -> bool:
        if self.status is Status.HIDE:
            return False
        return self.status.is_live or self.on_done is not DoneBehavior.HIDE

    @property
    def should_display_children(self) -> bool:
        return self.status.is_live or self.on_done is DoneBehavior.KEEP

    def walk(self) -> Iterator["JobSnapshot"]:
        """Yield this job and all descendants in pre-order."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> Dict[str, Any]:
        """Diagnostics representation: id, status, message, progress, children."""
        progress = self.progress.progress
        return {
            "id": self.id,
            "status": self.status.value,
            "message": self.message,
            "progress": list(progress) if progress is not None else None,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def capture(cls, state: JobState, children: Tuple["JobSnapshot", ...], now: float) -> "JobSnapshot":
        return cls(
            id=state.id,
            parent_id=state.parent_id,
            status=state.status,
            on_done=state.on_done,
            body=state.body,
            body_text=state.body_text,
            props=MappingProxyType(dict(state.props)),
            progress=state.metrics.view(now),
            created_at=state.created_at,
            updated_at=state.updated_at,
            terminal_since=state.terminal_since,
            collapsed=state.collapsed,
            taken_at=now,
            children=children,
        )


@dataclass(frozen=True)
class TreeSnapshot:
    """Ordered forest of root job snapshots taken under one lock acquisition."""
    roots: Tuple[JobSnapshot, ...] = ()
    taken_at: float = field(default_factory=time.monotonic)

    def walk(self) -> Iterator[JobSnapshot]:
        for root in self.roots:
            yield from root.walk()

    @property
    def has_live(self) -> bool:
        return any(job.status.is_live for job in self.walk())

    def __len__(self) -> int:
        return len(self.roots)
