"""Pydantic models for REST backend API responses."""

from collections.abc import Sequence

from pydantic import BaseModel


class TestSet(BaseModel):
    """A test set from the test-set search API."""

    __test__ = False

    id: int
    name: str
    folder: str = ""


class TestSetsResponse(BaseModel):
    """Response from the test-set search API."""

    test_sets: Sequence[TestSet]


class ExecutionResponse(BaseModel):
    """Response from starting an execution."""

    id: str


class TestInstanceStatus(BaseModel):
    """Status of a single test instance in an execution."""

    __test__ = False

    test_instance_id: str
    test_id: str | None = None
    name: str
    status: str | None = None
    message: str = ""
    run_id: str | None = None


class ExecutionStatusResponse(BaseModel):
    """Response from the execution status API."""

    id: str
    finished: bool
    tests: Sequence[TestInstanceStatus]


class RunStep(BaseModel):
    """A step of a test run."""

    name: str
    status: str
    description: str = ""


class RunStepsResponse(BaseModel):
    """Response from the run steps API."""

    steps: Sequence[RunStep]


class TestInstance(BaseModel):
    """A test instance listed in a test set."""

    __test__ = False

    id: str
    name: str
    test_name: str = ""
    status: str | None = None


class TestInstancesResponse(BaseModel):
    """Response from the test set instances API."""

    tests: Sequence[TestInstance]
