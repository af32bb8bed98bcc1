"""Models for test specifications produced by the catalog."""

from collections.abc import Mapping

from pydantic import Field

from suite_launcher.models.base import Model


class TestSpec(Model):
    """A single test to execute, either local or a remote collection."""

    __test__ = False

    path: str = Field(..., description="Test path or remote collection reference")
    name: str = Field(..., description="Human-readable test name")
    group: str = Field(..., description="Group label used to bucket results")
    test_id: str | None = Field(default=None, description="Id of the source")
    parameters: Mapping[str, str] = Field(
        default_factory=dict, description="Test parameters passed to the executor"
    )
    report_path: str | None = Field(
        default=None, description="Directory the test report is written to"
    )
    report_base_directory: str | None = Field(
        default=None, description="Parent of a dynamically created report directory"
    )
    remote: bool = Field(
        default=False, description="Spec names a remote test collection"
    )
    collection_id: str | None = Field(
        default=None, description="Id of the remote collection when given by id"
    )
