"""Test factories for generating test data."""

from polyfactory import Use
from polyfactory.factories import DataclassFactory
from polyfactory.factories.pydantic_factory import ModelFactory

from suite_launcher.backends.base import RemoteTestStatus
from suite_launcher.models.result import TestRunResult
from suite_launcher.models.spec import TestSpec
from suite_launcher.models.state import TestState


class TestSpecFactory(ModelFactory[TestSpec]):
    """Factory for local TestSpec."""

    parameters = Use(dict[str, str])
    report_path = None
    report_base_directory = None
    remote = False
    collection_id = None


class TestRunResultFactory(DataclassFactory[TestRunResult]):
    """Factory for TestRunResult."""

    __model__ = TestRunResult

    state = TestState.PASSED
    previous_state = TestState.WAITING
    error = None
    failure = None
    report_location = None
    has_warnings = False
    run_url = None
    console_output = Use(list[str])


class RemoteTestStatusFactory(DataclassFactory[RemoteTestStatus]):
    """Factory for RemoteTestStatus."""

    __model__ = RemoteTestStatus

    message = ""
    run_id = None
