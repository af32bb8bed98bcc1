"""Static table from test type to executor constructor."""

from collections.abc import Callable, Mapping
from functools import partial
from typing import TypeAlias

from suite_launcher.config import ExecutorCommand, LauncherConfig
from suite_launcher.errors import ConfigError
from suite_launcher.executors.base import Executor
from suite_launcher.executors.parallel import ParallelExecutor
from suite_launcher.executors.process import ProcessExecutor
from suite_launcher.test_types import TestType

ExecutorConstructor: TypeAlias = Callable[[LauncherConfig], Executor]
ExecutorFactory: TypeAlias = Callable[[], Executor]


def command_for(config: LauncherConfig, test_type: TestType) -> ExecutorCommand:
    """Return the configured command for a test type."""
    try:
        return config.executors[test_type]
    except KeyError:
        raise ConfigError(
            f"No executor command configured for {test_type} tests"
        ) from None


def process_executor(test_type: TestType) -> ExecutorConstructor:
    """Constructor for a process executor running ``test_type`` tests."""

    def construct(config: LauncherConfig) -> Executor:
        return ProcessExecutor(command=command_for(config, test_type))

    return construct


def parallel_executor(config: LauncherConfig) -> Executor:
    """Construct a parallel executor, falling back to the GUI command."""
    test_type = (
        TestType.PARALLEL if TestType.PARALLEL in config.executors else TestType.GUI
    )
    return ParallelExecutor(
        executor=ProcessExecutor(command=command_for(config, test_type)),
        environments=config.parallel_environments,
    )


EXECUTOR_CONSTRUCTORS: Mapping[TestType, ExecutorConstructor] = {
    TestType.GUI: process_executor(TestType.GUI),
    TestType.API: process_executor(TestType.API),
    TestType.LOAD: process_executor(TestType.LOAD),
    TestType.PARALLEL: parallel_executor,
}


def executor_factories(config: LauncherConfig) -> Mapping[TestType, ExecutorFactory]:
    """Bind every constructor to the run configuration."""
    return {
        test_type: partial(construct, config)
        for test_type, construct in EXECUTOR_CONSTRUCTORS.items()
    }
