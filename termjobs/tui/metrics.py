"""
Progress bookkeeping, throughput estimation and ETA for a single job.

Purpose:
    A job reports raw counters (current, total) and optionally walks through
    several sequential operations. Templates want derived numbers: a clamped
    progress pair, a smoothed rate, an ETA and an overall fraction that only
    moves forward across operations. This module turns the raw counters into
    those numbers.

Design Decisions:
    - ProgressMetrics is mutable and lives inside the job tree, so it is only
      ever touched while the tree lock is held
    - ProgressView is the frozen copy handed to renderers and diagnostics
    - The stored current value is never clamped; clamping to [0, total]
      happens when the view is built, so late total updates are honoured
    - Rate uses a bounded window of timestamped samples. The slope across the
      window is blended into the previous rate by exponential smoothing, which
      keeps the ETA from jumping on every update
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional, Tuple

# Samples kept for the slope
WINDOW_SIZE = 16
# Samples older than this are dropped (at least two are always kept)
WINDOW_SECONDS = 10.0
# Updates closer together than this do not add a sample
MIN_SAMPLE_INTERVAL = 0.1
# Weight of the newest slope in the smoothed rate
SMOOTHING = 0.3


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class ProgressView:
    """
    Immutable progress numbers for one job at one instant.

    Attributes:
        current: Raw current value as reported (may exceed total).
        total: Expected total, if known.
        operation: Index of the running operation (0-based).
        operation_count: Number of sequential operations (at least 1).
        multi_operation: True once start_operations() has been called.
        rate: Smoothed throughput in units per second, if established.
        operation_elapsed: Seconds since the current operation started.
    """
    current: Optional[int] = None
    total: Optional[int] = None
    operation: int = 0
    operation_count: int = 1
    multi_operation: bool = False
    rate: Optional[float] = None
    operation_elapsed: float = 0.0

    @property
    def progress(self) -> Optional[Tuple[int, int]]:
        """(current, total) with current clamped to [0, total], or None without a total."""
        if self.total is None:
            return None
        total = max(self.total, 0)
        current = int(_clamp(self.current or 0, 0, total))
        return current, total

    @property
    def fraction(self) -> Optional[float]:
        """Completion of the current operation in [0, 1], or None."""
        progress = self.progress
        if progress is None:
            return None
        current, total = progress
        if total == 0:
            # Nothing to do counts as done once a value was reported
            return 1.0 if self.current is not None else 0.0
        return current / total

    @property
    def overall_fraction(self) -> Optional[float]:
        """
        Completion across all operations in [0, 1], or None.

        With multiple operations each one is worth 1/operation_count; the
        running one contributes its own fraction scaled into that slice.
        """
        fraction = self.fraction
        if not self.multi_operation:
            return fraction
        count = max(self.operation_count, 1)
        done = min(self.operation, count - 1)
        overall = (done + (fraction or 0.0)) / count
        return _clamp(overall, 0.0, 1.0)

    @property
    def is_complete(self) -> bool:
        progress = self.progress
        return progress is not None and progress[1] > 0 and progress[0] >= progress[1]

    @property
    def effective_rate(self) -> Optional[float]:
        """Smoothed rate, or the average since the operation started."""
        if self.rate is not None and self.rate > 0:
            return self.rate
        if self.current and self.current > 0 and self.operation_elapsed > 0:
            return self.current / self.operation_elapsed
        return None

    @property
    def eta_seconds(self) -> Optional[float]:
        """Seconds left for the current operation, or None when undefined or complete."""
        progress = self.progress
        if progress is None or self.is_complete:
            return None
        rate = self.effective_rate
        if rate is None or rate <= 0:
            return None
        current, total = progress
        return (total - current) / rate


@dataclass
class ProgressMetrics:
    """
    Mutable progress state for one job.

    Not thread safe on its own; the owning JobTree serializes access.
    """
    current: Optional[int] = None
    total: Optional[int] = None
    operation: int = 0
    operation_count: int = 1
    multi_operation: bool = False
    operation_started_at: float = field(default_factory=time.monotonic)
    samples: Deque[Tuple[float, int]] = field(default_factory=lambda: deque(maxlen=WINDOW_SIZE))
    smoothed_rate: Optional[float] = None

    def set_current(self, value: int, now: Optional[float] = None) -> None:
        """Store the raw current value and feed the rate window."""
        now = time.monotonic() if now is None else now
        self.current = int(value)
        self._record_sample(self.current, now)

    def increment(self, amount: int = 1, now: Optional[float] = None) -> None:
        self.set_current((self.current or 0) + int(amount), now)

    def set_total(self, value: int) -> None:
        self.total = int(value)

    def start_operations(self, count: int, now: Optional[float] = None) -> None:
        """Switch to multi-operation mode with count sequential operations."""
        self.operation_count = max(int(count), 1)
        self.operation = 0
        self.multi_operation = True
        self._reset_progress(now)

    def next_operation(self, now: Optional[float] = None) -> bool:
        """
        Advance to the next operation.

        Returns:
            bool: False when already at the last operation, in which case
                  nothing changes.
        """
        if self.operation + 1 >= self.operation_count:
            return False
        self.operation += 1
        self._reset_progress(now)
        return True

    def _reset_progress(self, now: Optional[float]) -> None:
        self.current = None
        self.total = None
        self.samples.clear()
        self.smoothed_rate = None
        self.operation_started_at = time.monotonic() if now is None else now

    def _record_sample(self, value: int, now: float) -> None:
        if self.samples:
            last_ts, last_value = self.samples[-1]
            if value < last_value:
                # Counter went backwards; old samples no longer describe this run
                self.samples.clear()
                self.smoothed_rate = None
            elif now - last_ts < MIN_SAMPLE_INTERVAL:
                return
        self.samples.append((now, value))

        # Age out stale samples but keep two for a slope
        while len(self.samples) > 2 and now - self.samples[0][0] > WINDOW_SECONDS:
            self.samples.popleft()

        if len(self.samples) < 2:
            return
        first_ts, first_value = self.samples[0]
        elapsed = now - first_ts
        if elapsed <= 0:
            return
        slope = (value - first_value) / elapsed
        if self.smoothed_rate is None:
            self.smoothed_rate = slope
        else:
            self.smoothed_rate = SMOOTHING * slope + (1.0 - SMOOTHING) * self.smoothed_rate

    def copy(self) -> "ProgressMetrics":
        clone = ProgressMetrics(
            current=self.current,
            total=self.total,
            operation=self.operation,
            operation_count=self.operation_count,
            multi_operation=self.multi_operation,
            operation_started_at=self.operation_started_at,
            smoothed_rate=self.smoothed_rate,
        )
        clone.samples.extend(self.samples)
        return clone

    def view(self, now: Optional[float] = None) -> ProgressView:
        now = time.monotonic() if now is None else now
        return ProgressView(
            current=self.current,
            total=self.total,
            operation=self.operation,
            operation_count=self.operation_count,
            multi_operation=self.multi_operation,
            rate=self.smoothed_rate,
            operation_elapsed=max(now - self.operation_started_at, 0.0),
        )
