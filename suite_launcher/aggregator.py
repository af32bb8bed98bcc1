"""Running suite totals derived from per-test final transitions."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from suite_launcher.models.result import SuiteResult, TestRunResult
from suite_launcher.models.state import TestState

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class SuiteResultAggregator:
    """Owns a ``SuiteResult`` and the counters derived from it.

    Counters move only when ``record`` sees a test arrive in a final state for
    the first time, so repeated polls of the same status count once.
    """

    suite: SuiteResult
    clock: Callable[[], float] = time.monotonic
    _tracked: dict[str, TestRunResult] = field(default_factory=dict, init=False)
    _counted: set[str] = field(default_factory=set, init=False)
    _started: float = field(init=False)

    def __post_init__(self) -> None:
        self._started = self.clock()

    def get(self, key: str) -> TestRunResult | None:
        """Return the tracked result with the given key."""
        return self._tracked.get(key)

    def track(self, result: TestRunResult) -> TestRunResult:
        """Start tracking a result, keeping suite order."""
        if result.key in self._tracked:
            return self._tracked[result.key]
        self._tracked[result.key] = result
        self.suite.results.append(result)
        return result

    def is_counted(self, key: str) -> bool:
        """Whether the result with the given key already reached a final state."""
        return key in self._counted

    def record(self, result: TestRunResult) -> bool:
        """Count the result if it just became final. Returns whether it counted."""
        if not result.state.is_final or result.key in self._counted:
            return False

        self.track(result)
        self._counted.add(result.key)
        self.suite.num_tests += 1
        match result.state:
            case TestState.PASSED:
                self.suite.num_passed += 1
            case TestState.WARNING:
                self.suite.num_warnings += 1
            case TestState.FAILED:
                self.suite.num_failures += 1
            case TestState.ERROR:
                self.suite.num_errors += 1
            case TestState.NO_RUN:
                self.suite.num_skipped += 1
        return True

    def pending(self) -> list[TestRunResult]:
        """Tracked results that have not reached a final state."""
        return [r for r in self.suite.results if r.key not in self._counted]

    def finalize(self) -> SuiteResult:
        """Commit the total runtime. Must be called exactly once."""
        if self.suite.finalized:
            raise RuntimeError(f"Suite {self.suite.name} already finalized")

        self.suite.total_runtime = self.clock() - self._started
        self.suite.finalized = True
        log.info(
            "Suite %s finalized: tests=%d passed=%d warnings=%d failures=%d "
            "errors=%d skipped=%d runtime=%.1fs",
            self.suite.name,
            self.suite.num_tests,
            self.suite.num_passed,
            self.suite.num_warnings,
            self.suite.num_failures,
            self.suite.num_errors,
            self.suite.num_skipped,
            self.suite.total_runtime,
        )
        return self.suite
