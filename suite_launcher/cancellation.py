"""Latched cancellation gate shared by the orchestrators."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

log = logging.getLogger(__name__)


class CancelReason(StrEnum):
    """Why a run was cancelled."""

    ABORTED = "aborted by user"
    TIMED_OUT = "timed out"


def sentinel_path(directory: Path, run_token: str) -> Path:
    """Return the sentinel file whose existence aborts the run."""
    return directory / f"stop{run_token}.txt"


@dataclass(kw_only=True)
class CancellationSignal:
    """Combines the sentinel flag and the elapsed time budget.

    Once ``check`` returns True it keeps returning True for the rest of the
    run. The signal is polled only; nothing in flight is interrupted.
    """

    sentinel: Path | None = None
    budget: float | None = None
    clock: Callable[[], float] = time.monotonic
    reason: CancelReason | None = field(default=None, init=False)
    _started: float = field(init=False)

    def __post_init__(self) -> None:
        self._started = self.clock()

    @property
    def elapsed(self) -> float:
        """Seconds since the signal was created."""
        return self.clock() - self._started

    @property
    def latched(self) -> bool:
        """Whether the signal has already fired, without re-evaluating it."""
        return self.reason is not None

    def check(self) -> bool:
        """Return True if the run is cancelled."""
        if self.reason is not None:
            return True

        if self.sentinel is not None and self.sentinel.exists():
            self.reason = CancelReason.ABORTED
            log.warning("Stop file %s found, run aborted by user", self.sentinel)
        elif self.budget is not None and self.elapsed > self.budget:
            self.reason = CancelReason.TIMED_OUT
            log.warning(
                "Timeout! Elapsed: %.0f seconds; Timeout: %.0f seconds",
                self.elapsed,
                self.budget,
            )

        return self.reason is not None

    def __call__(self) -> bool:
        return self.check()
