"""Abstract base class for remote test-management backends."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, kw_only=True)
class CollectionHandle:
    """A resolved remote test collection.

    ``test_name`` is set when the reference named a single test inside the
    collection; only that test is run.
    """

    collection_id: str
    name: str
    folder: str = ""
    test_name: str | None = None


@dataclass(frozen=True, kw_only=True)
class TestFilter:
    """Selects the test instances of a collection to run.

    A name matches when it is contained in the instance or test name, ignoring
    case. Given both a name and statuses, an instance matching either is kept.
    """

    __test__ = False

    name: str | None = None
    statuses: Sequence[str] = ()

    @property
    def active(self) -> bool:
        """Whether the filter removes anything at all."""
        return bool(self.name) or bool(self.statuses)

    def matches(self, *, name: str, test_name: str, status: str | None) -> bool:
        """Whether an instance with the given names and last status is kept."""
        if not self.active:
            return True
        if status in self.statuses:
            return True
        if not self.name:
            return False
        needle = self.name.lower()
        return needle in name.lower() or needle in test_name.lower()


@dataclass(kw_only=True)
class RemoteExecutionHandle:
    """Identifiers of a started remote execution and what was last seen of it."""

    collection: CollectionHandle
    execution_id: str
    last_status: dict[str, str | None] = field(default_factory=dict)
    last_poll: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class RemoteTestStatus:
    """Raw status of one remote test as reported by the backend."""

    test_id: str
    name: str
    status: str | None
    message: str = ""
    run_id: str | None = None


@dataclass(frozen=True, kw_only=True)
class ExecutionStatus:
    """Batched status of every test in a remote execution."""

    finished: bool
    tests: Sequence[RemoteTestStatus]


@dataclass(frozen=True, kw_only=True)
class RunDetails:
    """Details of a finished remote run used for the test summary."""

    failed_steps: Sequence[str] = ()
    log: str = ""
    run_url: str | None = None


@dataclass(frozen=True, kw_only=True)
class RemoteBackend(ABC):
    """Abstract base for remote test-management backends.

    The backend never pushes updates; the orchestrator polls
    ``refresh_status`` until the execution finishes.
    """

    @abstractmethod
    async def connect(self) -> bool:
        """Authenticate against the server. Returns False if refused."""

    @abstractmethod
    async def resolve_collection(self, path: str) -> CollectionHandle | None:
        """Find a collection by its ``Folder\\Name`` path, None if not found.

        A path whose last segment names a test inside a collection resolves
        to that collection with ``test_name`` set.
        """

    @abstractmethod
    async def resolve_collection_by_id(
        self, collection_id: str
    ) -> CollectionHandle | None:
        """Find a collection by its id, None if not found."""

    @abstractmethod
    async def start_execution(
        self,
        collection: CollectionHandle,
        parameters: Mapping[str, str],
        test_filter: TestFilter | None = None,
    ) -> RemoteExecutionHandle:
        """Start running the tests of the collection selected by the filter.

        Raises:
            NoTestsSelectedError: If no test is left to run after filtering

        """

    @abstractmethod
    async def refresh_status(self, handle: RemoteExecutionHandle) -> ExecutionStatus:
        """Fetch the current status of all tests in one request."""

    @abstractmethod
    async def stop(self, handle: RemoteExecutionHandle) -> None:
        """Ask the server to stop all test instances of the execution."""

    async def get_run_details(
        self,
        handle: RemoteExecutionHandle,
        test: RemoteTestStatus,
    ) -> RunDetails:
        """Fetch failure details and a link for a finished test run."""
        return RunDetails()
