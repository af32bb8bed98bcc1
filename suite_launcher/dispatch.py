"""Sequential dispatch of local test specs to type specific executors."""

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from suite_launcher.aggregator import SuiteResultAggregator
from suite_launcher.cancellation import CancellationSignal
from suite_launcher.executors.base import Executor
from suite_launcher.models.result import SuiteResult, TestRunResult
from suite_launcher.models.spec import TestSpec
from suite_launcher.models.state import TestState
from suite_launcher.report import IncrementalReport
from suite_launcher.test_types import TestType, detect_test_type

log = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Test run was cancelled"
CANCELLED_ERROR = "Run cancelled by user or timeout expired"
EXTERNAL_PROCESS_ERROR = "External process failed"
UNKNOWN_TEST_TYPE = "Unknown test type"
SEPARATOR = "-" * 80


@dataclass(kw_only=True)
class DispatchOrchestrator:
    """Runs local tests one after another.

    Executors are created lazily, one per test type, and every created
    executor is cleaned up exactly once when the run ends, however it ends.
    """

    factories: Mapping[TestType, Callable[[], Executor]]
    signal: CancellationSignal
    suite_name: str = "local"
    report: IncrementalReport | None = None
    cancel_run_on_failure: bool = False
    parallel_enabled: bool = False
    clock: Callable[[], float] = time.monotonic
    _executors: dict[TestType, Executor] = field(default_factory=dict, init=False)
    _skip_remaining: bool = field(default=False, init=False)

    async def run(self, specs: Sequence[TestSpec]) -> SuiteResult:
        """Run every spec in order and return the finalized suite.

        Results are keyed by position so a test listed twice is run, counted
        and reported twice.
        """
        aggregator = SuiteResultAggregator(
            suite=SuiteResult(name=self.suite_name), clock=self.clock
        )
        try:
            for position, spec in enumerate(specs, start=1):
                if self._skip_remaining or self.signal.check():
                    result = self._skip(spec, first=aggregator.suite.num_skipped == 0)
                else:
                    result = await self._run_one(spec)
                result.key = f"{position}:{spec.path}"

                aggregator.track(result)
                aggregator.record(result)
                self._update_report(aggregator.suite, result)

                if self.cancel_run_on_failure and result.state in (
                    TestState.FAILED,
                    TestState.ERROR,
                ):
                    if not self._skip_remaining:
                        log.warning(
                            "Test %s did not pass, skipping remaining tests",
                            spec.name,
                        )
                    self._skip_remaining = True
        finally:
            try:
                aggregator.suite.aborted = self.signal.latched
                suite = aggregator.finalize()
                self._update_report(suite)
            finally:
                await self._cleanup()

        return suite

    def _update_report(
        self, suite: SuiteResult, result: TestRunResult | None = None
    ) -> None:
        if self.report is None:
            return
        try:
            self.report.update(suite, result)
        except OSError:
            log.exception("Failed to write report %s", self.report.path)

    def _skip(self, spec: TestSpec, *, first: bool) -> TestRunResult:
        if first:
            log.warning("%s\n%s", CANCELLED_MESSAGE, SEPARATOR)
        return TestRunResult.for_spec(
            spec, state=TestState.NO_RUN, error=CANCELLED_MESSAGE
        )

    async def _run_one(self, spec: TestSpec) -> TestRunResult:
        started = self.clock()
        try:
            result = await self._execute(spec)
        except Exception as e:
            log.exception("Test %s raised an error", spec.name)
            result = TestRunResult.for_spec(spec, state=TestState.ERROR, error=str(e))

        result.group = spec.group
        result.runtime = self.clock() - started
        self._classify(result)

        log.info(
            "Test %s completed in %.0f seconds: %s",
            spec.name,
            result.runtime,
            result.state,
        )
        if result.state is TestState.ERROR:
            log.error("%s", result.error)
        if result.report_location:
            log.info("Test report is generated at: %s", result.report_location)
        log.info(SEPARATOR)
        return result

    async def _execute(self, spec: TestSpec) -> TestRunResult:
        test_type = detect_test_type(spec.path, parallel_enabled=self.parallel_enabled)
        if test_type is None or test_type not in self.factories:
            return TestRunResult.for_spec(
                spec, state=TestState.ERROR, error=UNKNOWN_TEST_TYPE
            )

        executor = self._executors.get(test_type)
        if executor is None:
            executor = self.factories[test_type]()
            self._executors[test_type] = executor

        log.info("Running %s test: %s", test_type, spec.name)
        return await executor.run(spec, self.signal.check)

    def _classify(self, result: TestRunResult) -> None:
        if result.state is TestState.PASSED and result.has_warnings:
            result.update_state(TestState.WARNING)
            log.info("Test completed with warnings")
        elif result.state is TestState.ERROR:
            if not result.error:
                result.error = (
                    CANCELLED_ERROR if self.signal.check() else EXTERNAL_PROCESS_ERROR
                )
            result.report_location = None

    async def _cleanup(self) -> None:
        for test_type, executor in self._executors.items():
            try:
                await executor.cleanup()
            except Exception:
                log.exception("Cleanup of %s executor failed", test_type)
        self._executors.clear()
