"""Mapping of raw remote status strings to test states."""

from collections.abc import Mapping

from suite_launcher.models.state import TestState

# Several literals map to the same state; backends of different versions
# report them interchangeably.
RAW_STATUS_TO_STATE: Mapping[str, TestState] = {
    "Waiting": TestState.WAITING,
    "Error": TestState.ERROR,
    "No Run": TestState.NO_RUN,
    "Running": TestState.RUNNING,
    "Connecting": TestState.RUNNING,
    "Success": TestState.PASSED,
    "Finished": TestState.PASSED,
    "FinishedPassed": TestState.PASSED,
    "FinishedFailed": TestState.FAILED,
}


def state_from_raw_status(raw_status: str | None) -> TestState:
    """Translate a backend status string, ``Unknown`` when unrecognized."""
    if raw_status is None:
        return TestState.UNKNOWN
    return RAW_STATUS_TO_STATE.get(raw_status, TestState.UNKNOWN)
