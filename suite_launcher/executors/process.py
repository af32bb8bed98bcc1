"""Executor driving a test tool as an external process."""

import asyncio
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from suite_launcher.config import ExecutorCommand
from suite_launcher.executors.base import CancellationQuery, Executor
from suite_launcher.models.result import TestRunResult
from suite_launcher.models.spec import TestSpec
from suite_launcher.models.state import TestState

log = logging.getLogger(__name__)

# Exit code 2 means the test passed with warnings.
EXIT_CODE_TO_STATE: Mapping[int, TestState] = {
    0: TestState.PASSED,
    1: TestState.FAILED,
    2: TestState.PASSED,
}
WARNINGS_EXIT_CODE = 2
TERMINATE_GRACE_SECONDS = 5.0


def report_directory(spec: TestSpec) -> str | None:
    """Directory the test tool should write its report to."""
    if spec.report_path:
        return spec.report_path
    if spec.report_base_directory:
        return str(Path(spec.report_base_directory) / Path(spec.path).name)
    return None


@dataclass(kw_only=True)
class ProcessExecutor(Executor):
    """Runs each test as a subprocess and maps its exit code to a state.

    The subprocess is polled every ``poll_interval`` seconds; when the run is
    cancelled it is terminated and an error result without a message is
    returned.
    """

    command: ExecutorCommand
    _processes: set[asyncio.subprocess.Process] = field(
        default_factory=set, init=False, repr=False
    )

    def build_arguments(self, spec: TestSpec) -> list[str]:
        """Expand the command template for a test."""
        values = {
            "path": spec.path,
            "name": spec.name,
            "report": report_directory(spec) or "",
        }
        arguments = [arg.format(**values) for arg in self.command.command]
        arguments.extend(f"{name}={value}" for name, value in spec.parameters.items())
        return arguments

    async def run(self, spec: TestSpec, cancelled: CancellationQuery) -> TestRunResult:
        """Run the test tool and wait for it, polling for cancellation."""
        arguments = self.build_arguments(spec)
        log.info("Starting test %s: %s", spec.name, " ".join(arguments))

        process = await asyncio.create_subprocess_exec(
            *arguments,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env={**os.environ, **self.command.env},
        )
        self._processes.add(process)
        try:
            communicate = asyncio.ensure_future(process.communicate())
            while not communicate.done():
                done, _ = await asyncio.wait(
                    {communicate}, timeout=self.command.poll_interval
                )
                if not done and cancelled():
                    log.warning("Run cancelled, stopping test %s", spec.name)
                    await self._terminate(process)
                    await communicate
                    return TestRunResult.for_spec(spec, state=TestState.ERROR)

            stdout, _ = communicate.result()
        finally:
            self._processes.discard(process)

        result = TestRunResult.for_spec(spec)
        if stdout:
            result.console_output.extend(stdout.decode(errors="replace").splitlines())

        return_code = process.returncode
        if return_code not in EXIT_CODE_TO_STATE:
            log.error("Test %s exited with code %s", spec.name, return_code)
            result.update_state(TestState.ERROR)
            return result

        result.update_state(EXIT_CODE_TO_STATE[return_code])
        result.has_warnings = return_code == WARNINGS_EXIT_CODE
        if result.state is TestState.FAILED:
            result.failure = f"Test exited with code {return_code}"

        report = report_directory(spec)
        if report and Path(report).exists():
            result.report_location = report
        return result

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            process.kill()
            await process.wait()
        except ProcessLookupError:
            pass

    async def cleanup(self) -> None:
        """Terminate any test processes still alive."""
        for process in list(self._processes):
            await self._terminate(process)
        self._processes.clear()
