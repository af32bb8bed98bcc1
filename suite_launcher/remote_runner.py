"""Execution of remote test collections through a polled backend."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from suite_launcher.aggregator import SuiteResultAggregator
from suite_launcher.backends.base import (
    RemoteBackend,
    RemoteExecutionHandle,
    RemoteTestStatus,
    RunDetails,
    TestFilter,
)
from suite_launcher.cancellation import CancellationSignal
from suite_launcher.catalog import group_label
from suite_launcher.errors import NoTestsSelectedError, ResolutionError
from suite_launcher.models.result import SuiteResult, TestRunResult
from suite_launcher.models.spec import TestSpec
from suite_launcher.models.state import TestState
from suite_launcher.report import IncrementalReport
from suite_launcher.status import state_from_raw_status

log = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Test run was cancelled"
NOT_COMPLETED = "Test did not complete"
SEPARATOR = "-" * 80


@dataclass(kw_only=True)
class RemoteSetOrchestrator:
    """Starts remote collections and follows them by polling their status.

    Each poll cycle refreshes the status of every test in one request, maps
    the raw status to a ``TestState`` and reacts to transitions. Log lines
    emitted while a test is running are also captured into that test's
    ``console_output``.
    """

    backend: RemoteBackend
    signal: CancellationSignal
    suite_name: str = "remote"
    report: IncrementalReport | None = None
    poll_interval: float = 0.2
    test_filter: TestFilter | None = None
    clock: Callable[[], float] = time.monotonic
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    _active: TestRunResult | None = field(default=None, init=False)
    _start_times: dict[str, float] = field(default_factory=dict, init=False)
    _details: dict[str, RunDetails] = field(default_factory=dict, init=False)
    _last_seen: dict[str, RemoteTestStatus] = field(default_factory=dict, init=False)

    async def run(self, specs: Sequence[TestSpec]) -> SuiteResult:
        """Run every remote collection in order and return the finalized suite."""
        aggregator = SuiteResultAggregator(
            suite=SuiteResult(name=self.suite_name), clock=self.clock
        )
        try:
            for position, spec in enumerate(specs, start=1):
                key = f"{position}:{spec.path}"
                if self.signal.check():
                    log.warning("Run cancelled, test set %s not started", spec.name)
                    self._record(
                        aggregator,
                        TestRunResult.for_spec(
                            spec,
                            key=key,
                            state=TestState.NO_RUN,
                            error=CANCELLED_MESSAGE,
                        ),
                    )
                    continue
                await self._run_collection(spec, key, aggregator)
        finally:
            self._active = None
            aggregator.suite.aborted = self.signal.latched
            suite = aggregator.finalize()
            self._update_report(suite)

        return suite

    async def _run_collection(
        self, spec: TestSpec, key: str, aggregator: SuiteResultAggregator
    ) -> None:
        log.info("=" * 80)
        log.info("Starting test set execution: %s", spec.name)
        try:
            handle = await self._start(spec)
        except ResolutionError as e:
            log.error("%s", e)
            self._record(
                aggregator,
                TestRunResult.for_spec(
                    spec, key=key, state=TestState.FAILED, error=str(e)
                ),
            )
            return
        except NoTestsSelectedError as e:
            log.warning("%s", e)
            return
        except Exception as e:
            log.exception("Failed to start test set %s", spec.name)
            self._record(
                aggregator,
                TestRunResult.for_spec(
                    spec, key=key, state=TestState.ERROR, error=str(e)
                ),
            )
            return

        collection = handle.collection
        group = group_label(f"{collection.folder}\\{collection.name}".lstrip("\\"))
        try:
            await self._poll(handle, aggregator, group)
        finally:
            if self._active is not None:
                await self._write_summary(handle, self._active)
            self._active = None
            for result in aggregator.pending():
                result.update_state(TestState.NO_RUN)
                result.error = result.error or NOT_COMPLETED
                self._record(aggregator, result)

        log.info(
            "Test set %s done at %s",
            collection.name,
            datetime.now().strftime("%d/%m/%Y %H:%M:%S"),
        )

    async def _start(self, spec: TestSpec) -> RemoteExecutionHandle:
        if spec.collection_id is not None:
            collection = await self.backend.resolve_collection_by_id(
                spec.collection_id
            )
        else:
            collection = await self.backend.resolve_collection(spec.path)
        if collection is None:
            raise ResolutionError(f"Cannot find test set {spec.path}")

        log.info("Test set: %s, id: %s", collection.name, collection.collection_id)
        if collection.test_name is not None:
            log.info("Running only test %s", collection.test_name)
        return await self.backend.start_execution(
            collection, spec.parameters, self.test_filter
        )

    async def _poll(
        self,
        handle: RemoteExecutionHandle,
        aggregator: SuiteResultAggregator,
        group: str,
    ) -> None:
        while True:
            try:
                status = await self.backend.refresh_status(handle)
            except Exception:
                log.exception(
                    "Failed to refresh status of execution %s", handle.execution_id
                )
            else:
                handle.last_poll = datetime.now()
                for test in status.tests:
                    try:
                        cancelled = await self._update(
                            handle, test, aggregator, group
                        )
                    except Exception:
                        log.exception(
                            "Failed to update status of test %s", test.name
                        )
                        continue
                    if cancelled:
                        await self._stop(handle)
                        return

                if status.finished:
                    return

            await self.sleep(self.poll_interval)

            if self.signal.check():
                await self._stop(handle)
                return

    async def _update(
        self,
        handle: RemoteExecutionHandle,
        test: RemoteTestStatus,
        aggregator: SuiteResultAggregator,
        group: str,
    ) -> bool:
        """Apply one reported status. Returns True if the run was cancelled."""
        key = f"{handle.execution_id}/{test.test_id}"
        if aggregator.is_counted(key):
            return False

        result = aggregator.get(key) or aggregator.track(
            TestRunResult(
                key=key,
                name=test.name,
                path=f"{group}\\{test.name}",
                group=group,
            )
        )

        handle.last_status[test.test_id] = test.status
        self._last_seen[key] = test

        state = state_from_raw_status(test.status)
        if not result.update_state(state):
            return False

        if state is TestState.RUNNING:
            await self._switch_active(handle, test, result)
            self._emit(
                "Test: %s, Id: %s, Execution status: %s",
                result.name,
                test.test_id,
                state,
            )
        elif state is not TestState.WAITING:
            self._emit(
                "Test: %s, Id: %s, Execution status: %s, Message: %s",
                result.name,
                test.test_id,
                state,
                test.message,
            )

        if state.is_terminal:
            await self._complete(handle, test, result, aggregator)

        return self.signal.check()

    async def _switch_active(
        self,
        handle: RemoteExecutionHandle,
        test: RemoteTestStatus,
        result: TestRunResult,
    ) -> None:
        if result.started_at is None:
            result.started_at = datetime.now()
            self._start_times[result.key] = self.clock()

        if self._active is not None and self._active is not result:
            await self._write_summary(handle, self._active)

        self._active = result
        result.run_id = test.run_id
        self._emit(
            "Running test: %s, test id: %s, run id: %s",
            result.name,
            test.test_id,
            test.run_id,
        )

    async def _complete(
        self,
        handle: RemoteExecutionHandle,
        test: RemoteTestStatus,
        result: TestRunResult,
        aggregator: SuiteResultAggregator,
    ) -> None:
        started = self._start_times.get(result.key)
        if started is not None:
            result.runtime = self.clock() - started
        result.run_id = test.run_id or result.run_id

        status_text = f"{test.status} : {test.message}"
        if result.state is TestState.FAILED:
            details = await self._run_details(handle, test, result)
            result.failure = "\n".join(details.failed_steps) or status_text
        elif result.state is TestState.ERROR:
            result.error = status_text

        self._record(aggregator, result)

    async def _run_details(
        self,
        handle: RemoteExecutionHandle,
        test: RemoteTestStatus,
        result: TestRunResult,
    ) -> RunDetails:
        if result.key in self._details:
            return self._details[result.key]

        try:
            details = await self.backend.get_run_details(handle, test)
        except Exception:
            log.exception("Failed to get run details of test %s", result.name)
            details = RunDetails()

        if result.state.is_terminal:
            self._details[result.key] = details
        result.run_url = details.run_url or result.run_url
        return details

    async def _write_summary(
        self, handle: RemoteExecutionHandle, result: TestRunResult
    ) -> None:
        test = self._last_seen.get(result.key)
        details = (
            await self._run_details(handle, test, result)
            if test is not None
            else RunDetails()
        )

        if details.failed_steps:
            self._emit("%s", "\n".join(details.failed_steps))
        elif details.log and result.state is not TestState.ERROR:
            self._emit("%s", details.log)
        if details.run_url:
            self._emit("Link to the run: %s", details.run_url)

        started = self._start_times.get(result.key)
        if result.state.is_terminal or started is None:
            duration = result.runtime
        else:
            duration = self.clock() - started
        self._emit(
            "Test complete: %s, run id: %s, duration: %.0f seconds\n%s",
            result.name,
            result.run_id,
            duration,
            SEPARATOR,
        )

    async def _stop(self, handle: RemoteExecutionHandle) -> None:
        log.warning(
            "Stopping execution of test set %s: run %s",
            handle.collection.name,
            self.signal.reason or "cancelled",
        )
        try:
            await self.backend.stop(handle)
        except Exception:
            log.exception("Failed to stop execution %s", handle.execution_id)

    def _record(self, aggregator: SuiteResultAggregator, result: TestRunResult) -> None:
        aggregator.track(result)
        if aggregator.record(result):
            self._update_report(aggregator.suite, result)

    def _update_report(
        self, suite: SuiteResult, result: TestRunResult | None = None
    ) -> None:
        if self.report is None:
            return
        try:
            self.report.update(suite, result)
        except OSError:
            log.exception("Failed to write report %s", self.report.path)

    def _emit(self, message: str, *args: object) -> None:
        log.info(message, *args)
        if self._active is not None:
            self._active.console_output.append(message % args)
