"""
Thread-safe registry of every live job and its parent/child structure.

Purpose:
    Worker threads mutate their own jobs while the scheduler thread renders
    all of them. The tree is the single place that state lives, and one
    re-entrant lock serializes every read and write. The scheduler never
    renders from live state: it takes a snapshot under the lock and renders
    the copy.

Design Decisions:
    - Ids come from a process-wide counter and are never reused
    - Roots and children keep insertion order (plain lists of ids)
    - mutate() backs up the record first and restores it if the callback
      raises, so a job is either fully updated or untouched
    - Done-policy evaluation (reap) lives here because it has to inspect and
      restructure the tree atomically
"""

import itertools
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from ..errors import JobNotFoundError
from .model import DoneBehavior, JobSnapshot, JobSpec, JobState, TreeSnapshot

logger = logging.getLogger(__name__)

# Shared by every tree in the process so ids stay unique across engines
_ids = itertools.count(1)


class JobTree:
    """
    Forest of JobState records guarded by a single lock.

    Example:
        >>> tree = JobTree()
        >>> parent = tree.insert(JobSpec().prop("message", "build"))
        >>> child = tree.insert(JobSpec().prop("message", "compile"), parent)
        >>> tree.children_of(parent) == [child]
        True
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._jobs: Dict[int, JobState] = {}
        self._roots: List[int] = []

    def insert(self, spec: JobSpec, parent_id: Optional[int] = None, now: Optional[float] = None) -> int:
        """
        Register a job built from spec, optionally under a parent.

        Args:
            spec: The job description.
            parent_id: Parent job id, or None for a new root.
            now: Monotonic timestamp override (tests).

        Returns:
            int: The new job id.

        Raises:
            JobNotFoundError: If parent_id is not registered.
        """
        now = time.monotonic() if now is None else now
        with self._lock:
            if parent_id is not None and parent_id not in self._jobs:
                raise JobNotFoundError(parent_id)
            job_id = next(_ids)
            self._jobs[job_id] = JobState.from_spec(job_id, spec, parent_id, now)
            if parent_id is None:
                self._roots.append(job_id)
            else:
                self._jobs[parent_id].children.append(job_id)
            return job_id

    def get(self, job_id: int, now: Optional[float] = None) -> JobSnapshot:
        """Return a snapshot of one job (with its subtree)."""
        now = time.monotonic() if now is None else now
        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            return self._capture(job_id, now)

    def mutate(self, job_id: int, fn: Callable[[JobState], None], now: Optional[float] = None) -> bool:
        """
        Apply fn to the job's record atomically.

        Args:
            job_id: Target job.
            fn: Callback receiving the mutable JobState. Must be quick; it
                runs with the tree lock held.
            now: Timestamp recorded as updated_at.

        Returns:
            bool: False if the job is not registered (removed jobs are
                  silently ignored), True otherwise.
        """
        now = time.monotonic() if now is None else now
        with self._lock:
            state = self._jobs.get(job_id)
            if state is None:
                return False
            backup = state.copy()
            try:
                fn(state)
            except Exception:
                self._jobs[job_id] = backup
                raise
            state.updated_at = now
            return True

    def remove(self, job_id: int) -> bool:
        """Detach a job from its parent (or the roots) and drop its whole subtree."""
        with self._lock:
            state = self._jobs.get(job_id)
            if state is None:
                return False
            if state.parent_id is None:
                self._roots.remove(job_id)
            else:
                parent = self._jobs.get(state.parent_id)
                if parent is not None:
                    parent.children.remove(job_id)
            self._drop(job_id)
            return True

    def _drop(self, job_id: int) -> None:
        state = self._jobs.pop(job_id)
        for child_id in state.children:
            self._drop(child_id)

    def _capture(self, job_id: int, now: float) -> JobSnapshot:
        state = self._jobs[job_id]
        children = tuple(self._capture(child_id, now) for child_id in state.children)
        return JobSnapshot.capture(state, children, now)

    def snapshot_all(self, now: Optional[float] = None) -> TreeSnapshot:
        """Copy the whole forest under one lock acquisition."""
        now = time.monotonic() if now is None else now
        with self._lock:
            roots = tuple(self._capture(job_id, now) for job_id in self._roots)
        return TreeSnapshot(roots=roots, taken_at=now)

    def has_live(self) -> bool:
        with self._lock:
            return any(state.status.is_live for state in self._jobs.values())

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for state in self._jobs.values() if state.status.is_active)

    def children_of(self, job_id: int) -> List[int]:
        with self._lock:
            if job_id not in self._jobs:
                raise JobNotFoundError(job_id)
            return list(self._jobs[job_id].children)

    def reap(self) -> List[int]:
        """
        Apply done policies to finished jobs.

        Hide jobs are removed right away. Collapse jobs are flagged on the
        first pass (so the next frame renders them once more) and removed on
        the following pass. Keep jobs stay.

        Returns:
            List[int]: Ids of removed jobs (subtree roots only).
        """
        removed = []
        with self._lock:
            for job_id in list(self._jobs):
                state = self._jobs.get(job_id)
                # Already dropped along with an ancestor earlier in this pass
                if state is None or not state.status.is_terminal:
                    continue
                if state.on_done is DoneBehavior.HIDE:
                    self.remove(job_id)
                    removed.append(job_id)
                elif state.on_done is DoneBehavior.COLLAPSE:
                    if state.collapsed:
                        self.remove(job_id)
                        removed.append(job_id)
                    else:
                        state.collapsed = True
        if removed:
            logger.debug("reaped finished jobs %s", removed)
        return removed

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()
            self._roots.clear()

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._roots)
