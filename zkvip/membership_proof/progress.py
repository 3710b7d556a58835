"""
Progress telemetry for the proof pipeline.

Progress is advisory only: callers must rely on the returned ProofResult or
a raised error to learn the outcome, never on reaching 100.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, List, Optional, Tuple

ProgressCallback = Callable[[int, str], None]


class ProgressReporter:
    """
    Forwards (percent, text) updates to an optional callback.

    Values are clamped to [0, 100] and never go backwards within one
    reporter; create a new reporter per pipeline invocation.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None) -> None:
        self._callback = callback
        self._last = 0
        self.history: List[Tuple[int, str]] = []

    @property
    def last(self) -> int:
        return self._last

    def report(self, percent: int, text: str) -> None:
        percent = max(self._last, min(100, int(percent)))
        self._last = percent
        self.history.append((percent, text))
        if self._callback is not None:
            self._callback(percent, text)


class StepStatus(Enum):
    PENDING = "pending"
    ACTIVE = "active"
    DONE = "done"


JOIN_STEPS = (
    "Checking balance",
    "Generating ZK proof",
    "Submitting proof",
    "Confirming access",
)


class StepTracker:
    """
    User-visible step indicators for a join attempt.

    Any failure must call reset() so that no step is left active.

    Example:
        >>> tracker = StepTracker()
        >>> tracker.start()
        >>> tracker.on_progress(60, "Generating witness...")
        >>> tracker.statuses[2]
        <StepStatus.ACTIVE: 'active'>
    """

    def __init__(self, steps: Tuple[str, ...] = JOIN_STEPS) -> None:
        self.steps = tuple(steps)
        self.statuses: List[StepStatus] = [StepStatus.PENDING] * len(self.steps)

    def reset(self) -> None:
        self.statuses = [StepStatus.PENDING] * len(self.steps)

    def start(self) -> None:
        self.reset()
        self.statuses[0] = StepStatus.ACTIVE

    def advance_to(self, index: int) -> None:
        """Mark every step before index done and index active."""
        if not 0 <= index < len(self.steps):
            raise IndexError(f"step index out of range: {index}")
        for idx in range(index):
            self.statuses[idx] = StepStatus.DONE
        self.statuses[index] = StepStatus.ACTIVE

    def complete(self) -> None:
        self.statuses = [StepStatus.DONE] * len(self.steps)

    def on_progress(self, percent: int, text: str = "") -> None:
        """Map pipeline percentages onto the proof-generation steps."""
        if 30 <= percent < 60:
            self.advance_to(1)
        elif 60 <= percent < 90:
            self.advance_to(2)

    @property
    def active_step(self) -> Optional[str]:
        for name, status in zip(self.steps, self.statuses):
            if status is StepStatus.ACTIVE:
                return name
        return None

    def snapshot(self) -> Tuple[Tuple[str, str], ...]:
        return tuple(
            (name, status.value) for name, status in zip(self.steps, self.statuses)
        )
