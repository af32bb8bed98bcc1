"""Models for test execution results."""

from dataclasses import dataclass, field
from datetime import datetime

from suite_launcher.models.spec import TestSpec
from suite_launcher.models.state import TestState


@dataclass(kw_only=True)
class TestRunResult:
    """Result of a single test, mutated until it reaches a final state.

    ``previous_state`` holds the state observed on the prior update so that
    transition detection is a plain comparison.
    """

    __test__ = False

    key: str
    name: str
    path: str
    group: str = ""
    state: TestState = TestState.WAITING
    previous_state: TestState = TestState.WAITING
    runtime: float = 0.0
    error: str | None = None
    failure: str | None = None
    report_location: str | None = None
    has_warnings: bool = False
    started_at: datetime | None = None
    run_id: str | None = None
    run_url: str | None = None
    console_output: list[str] = field(default_factory=list)

    @classmethod
    def for_spec(
        cls,
        spec: TestSpec,
        *,
        key: str | None = None,
        state: TestState = TestState.WAITING,
        error: str | None = None,
    ) -> "TestRunResult":
        """Create a result tracking the given spec, keyed by its path by default."""
        return cls(
            key=key or spec.path,
            name=spec.name,
            path=spec.path,
            group=spec.group,
            state=state,
            previous_state=state,
            error=error,
        )

    def update_state(self, state: TestState) -> bool:
        """Move to ``state`` and return whether it differs from the last one."""
        self.previous_state = self.state
        self.state = state
        return self.previous_state != self.state

    @property
    def message(self) -> str | None:
        """The most relevant text describing the outcome."""
        return self.error or self.failure


@dataclass(kw_only=True)
class SuiteResult:
    """Aggregated results of one orchestration run."""

    name: str
    results: list[TestRunResult] = field(default_factory=list)
    num_tests: int = 0
    num_passed: int = 0
    num_warnings: int = 0
    num_failures: int = 0
    num_errors: int = 0
    num_skipped: int = 0
    total_runtime: float = 0.0
    aborted: bool = False
    finalized: bool = False

    @property
    def has_failures(self) -> bool:
        """Any test failed or errored."""
        return self.num_failures > 0 or self.num_errors > 0
