"""Executor fanning a GUI test out across several environments."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from suite_launcher.executors.base import CancellationQuery, Executor
from suite_launcher.models.result import TestRunResult
from suite_launcher.models.spec import TestSpec
from suite_launcher.models.state import TestState

log = logging.getLogger(__name__)

ENVIRONMENT_PARAMETER = "environment"

SEVERITY: Mapping[TestState, int] = {
    TestState.PASSED: 0,
    TestState.WARNING: 1,
    TestState.NO_RUN: 2,
    TestState.FAILED: 3,
    TestState.ERROR: 4,
}


@dataclass(frozen=True, kw_only=True)
class ParallelExecutor(Executor):
    """Runs one test concurrently in every configured environment.

    The concurrent runs are folded into a single result: the most severe
    state wins, ties resolved by environment order.
    """

    executor: Executor
    environments: Sequence[str]

    async def run(self, spec: TestSpec, cancelled: CancellationQuery) -> TestRunResult:
        """Run the test in all environments and merge the outcomes."""
        if not self.environments:
            return await self.executor.run(spec, cancelled)

        log.info(
            "Running %s in %d environment(s): %s",
            spec.name,
            len(self.environments),
            ", ".join(self.environments),
        )
        tasks = [
            self.executor.run(
                spec.model_copy(
                    update={
                        "parameters": {
                            **spec.parameters,
                            ENVIRONMENT_PARAMETER: environment,
                        }
                    }
                ),
                cancelled,
            )
            for environment in self.environments
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        return merge_results(spec, self.environments, outcomes)

    async def cleanup(self) -> None:
        """Clean up the wrapped executor."""
        await self.executor.cleanup()


def merge_results(
    spec: TestSpec,
    environments: Sequence[str],
    outcomes: Sequence[TestRunResult | BaseException],
) -> TestRunResult:
    """Fold per-environment outcomes into one deterministic result."""
    merged = TestRunResult.for_spec(spec, state=TestState.PASSED)
    messages: list[str] = []

    for environment, outcome in zip(environments, outcomes, strict=True):
        if isinstance(outcome, BaseException):
            log.error("Environment %s failed: %s", environment, outcome)
            state = TestState.ERROR
            message: str | None = str(outcome)
        else:
            state = outcome.state
            message = outcome.message
            merged.has_warnings = merged.has_warnings or outcome.has_warnings
            merged.runtime = max(merged.runtime, outcome.runtime)
            merged.console_output.extend(
                f"[{environment}] {line}" for line in outcome.console_output
            )
            merged.report_location = merged.report_location or outcome.report_location

        if message:
            messages.append(f"{environment}: {message}")
        if SEVERITY.get(state, SEVERITY[TestState.ERROR]) > SEVERITY[merged.state]:
            merged.update_state(state)

    if messages:
        if merged.state is TestState.FAILED:
            merged.failure = "\n".join(messages)
        elif merged.state is TestState.ERROR:
            merged.error = "\n".join(messages)
    return merged
