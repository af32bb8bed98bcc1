"""Executor contract for running a single local test."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeAlias

from suite_launcher.models.result import TestRunResult
from suite_launcher.models.spec import TestSpec

CancellationQuery: TypeAlias = Callable[[], bool]


class Executor(ABC):
    """Runs tests of one technology.

    One instance is reused for every test of its type during a run, and
    ``cleanup`` is called once at the end of the run.
    """

    @abstractmethod
    async def run(self, spec: TestSpec, cancelled: CancellationQuery) -> TestRunResult:
        """Run one test and return its result.

        Args:
            spec: The test to run
            cancelled: Returns True once the run has been cancelled; long
                running executors should poll it and stop early

        Returns:
            A single result for the test

        """

    async def cleanup(self) -> None:  # noqa: B027
        """Release resources held by the executor. Safe to call repeatedly."""
