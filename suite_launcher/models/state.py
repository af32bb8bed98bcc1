"""Test execution states."""

from enum import StrEnum


class TestState(StrEnum):
    """State of a single test as tracked by the orchestrators."""

    __test__ = False

    NO_RUN = "NoRun"
    WAITING = "Waiting"
    RUNNING = "Running"
    PASSED = "Passed"
    FAILED = "Failed"
    ERROR = "Error"
    WARNING = "Warning"
    UNKNOWN = "Unknown"

    @property
    def is_terminal(self) -> bool:
        """No further transitions are expected once a test reaches this state."""
        return self in TERMINAL_STATES

    @property
    def is_final(self) -> bool:
        """Terminal, or a passed test promoted to warning by classification."""
        return self in FINAL_STATES


TERMINAL_STATES: frozenset[TestState] = frozenset(
    [TestState.PASSED, TestState.FAILED, TestState.ERROR, TestState.NO_RUN]
)

FINAL_STATES: frozenset[TestState] = TERMINAL_STATES | {TestState.WARNING}
