"""Integration tests for the REST backend."""

import re
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import SecretStr
from yarl import URL

from suite_launcher.backends.base import (
    CollectionHandle,
    RemoteExecutionHandle,
    RemoteTestStatus,
    TestFilter,
)
from suite_launcher.backends.rest import RestBackend, RestBackendConfig
from suite_launcher.cancellation import CancellationSignal
from suite_launcher.errors import NoTestsSelectedError
from suite_launcher.catalog import parse_collection_reference
from suite_launcher.models.state import TestState
from suite_launcher.remote_runner import RemoteSetOrchestrator
from suite_launcher.testing.rest.payloads import (
    execution_response,
    execution_status,
    instance_entry,
    instance_status,
    instances_response,
    run_steps,
    set_entry,
    sets_response,
)

API_BASE_URL = "http://alm.test/api/"
PROJECT_URL = f"{API_BASE_URL}domains/DEFAULT/projects/Demo"
SEARCH_URL = re.compile(rf"^{re.escape(PROJECT_URL)}/test-sets\?.*$")
INSTANCES_URL = f"{PROJECT_URL}/test-sets/101/tests"

COLLECTION = CollectionHandle(
    collection_id="101", name="Smoke", folder="Root\\Regression"
)


def requests_to(
    aioresponses: aioresponses_cls, method: str, url_prefix: str
) -> list[Any]:
    """Recorded calls whose method matches and URL starts with the prefix."""
    return [
        call
        for (request_method, url), calls in aioresponses.requests.items()
        if request_method == method and str(url).startswith(url_prefix)
        for call in calls
    ]


@pytest.fixture
def config() -> RestBackendConfig:
    """Create test configuration."""
    return RestBackendConfig(
        server_url=API_BASE_URL,
        username="ci-user",
        password=SecretStr("s3cret"),
        domain="DEFAULT",
        project="Demo",
        run_host="lab-host-01",
    )


@pytest.fixture
async def backend(
    config: RestBackendConfig, aioresponses: aioresponses_cls
) -> AsyncGenerator[RestBackend, None]:
    """Create backend with managed session."""
    async with RestBackend.from_config(config) as impl:
        yield impl


@pytest.fixture
def handle() -> RemoteExecutionHandle:
    """Create a handle of a started execution."""
    return RemoteExecutionHandle(collection=COLLECTION, execution_id="exec-1")


class TestConnect:
    """Tests for connect."""

    async def test_signs_in_with_basic_auth(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Signs in with the configured credentials."""
        sign_in_url = f"{API_BASE_URL}authentication/sign-in"
        aioresponses.post(sign_in_url, status=200)

        assert await backend.connect() is True

        call = aioresponses.requests[("POST", URL(sign_in_url))][0]
        auth = call.kwargs["auth"]
        assert auth.login == "ci-user"
        assert auth.password == "s3cret"

    async def test_returns_false_when_refused(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Returns False when the server refuses the credentials."""
        aioresponses.post(
            f"{API_BASE_URL}authentication/sign-in", status=401, body="Unauthorized"
        )

        assert await backend.connect() is False

    async def test_returns_false_when_unreachable(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Returns False when the server cannot be reached."""
        aioresponses.post(
            f"{API_BASE_URL}authentication/sign-in",
            exception=aiohttp.ClientConnectionError("connection refused"),
        )

        assert await backend.connect() is False


class TestResolveCollection:
    """Tests for resolve_collection."""

    async def test_finds_test_set_by_name(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Searches by folder and name and returns the matching set."""
        aioresponses.get(
            SEARCH_URL,
            status=200,
            payload=sets_response(
                set_entry(set_id=100, name="Smoke-old"),
                set_entry(set_id=101, name="Smoke"),
            ),
        )

        collection = await backend.resolve_collection("Root\\Regression\\Smoke")

        assert collection == COLLECTION
        [call] = requests_to(aioresponses, "GET", f"{PROJECT_URL}/test-sets")
        assert call.kwargs["params"] == {"folder": "Root\\Regression", "name": "Smoke"}

    async def test_returns_none_when_not_found(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Returns None when neither the set nor its parent is found."""
        aioresponses.get(SEARCH_URL, status=200, payload=sets_response())
        aioresponses.get(SEARCH_URL, status=200, payload=sets_response())

        assert await backend.resolve_collection("Root\\Regression\\Smoke") is None

    async def test_raises_on_search_failure(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Raises RuntimeError when the search fails."""
        aioresponses.get(SEARCH_URL, status=500, body="Internal Server Error")

        with pytest.raises(RuntimeError, match="Failed to find test set: 500"):
            await backend.resolve_collection("Root\\Regression\\Smoke")

    async def test_falls_back_to_single_test_in_parent_set(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """A path ending in a test name resolves to its set with the test set."""
        aioresponses.get(SEARCH_URL, status=200, payload=sets_response())
        aioresponses.get(
            SEARCH_URL, status=200, payload=sets_response(set_entry(set_id=101))
        )

        collection = await backend.resolve_collection("Root\\Regression\\Smoke\\Login")

        assert collection == CollectionHandle(
            collection_id="101",
            name="Smoke",
            folder="Root\\Regression",
            test_name="Login",
        )
        params = [
            call.kwargs["params"]
            for call in requests_to(aioresponses, "GET", f"{PROJECT_URL}/test-sets")
        ]
        assert params == [
            {"folder": "Root\\Regression\\Smoke", "name": "Login"},
            {"folder": "Root\\Regression", "name": "Smoke"},
        ]

    async def test_resolves_by_id(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """A set is fetched directly by its id."""
        aioresponses.get(
            f"{PROJECT_URL}/test-sets/101", status=200, payload=set_entry(set_id=101)
        )

        assert await backend.resolve_collection_by_id("101") == COLLECTION

    async def test_unknown_id_returns_none(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Returns None when no set has the id."""
        aioresponses.get(f"{PROJECT_URL}/test-sets/404", status=404)

        assert await backend.resolve_collection_by_id("404") is None


class TestStartExecution:
    """Tests for start_execution."""

    async def test_starts_execution_with_parameters(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Starts the set on the configured host with its parameters."""
        start_url = f"{PROJECT_URL}/test-sets/101/executions"
        aioresponses.post(
            start_url, status=201, payload=execution_response(execution_id="e-9")
        )

        handle = await backend.start_execution(COLLECTION, {"env": "qa"})

        assert handle.execution_id == "e-9"
        assert handle.collection == COLLECTION
        call = aioresponses.requests[("POST", URL(start_url))][0]
        assert call.kwargs["json"] == {
            "parameters": {"env": "qa"},
            "run_mode": "planned",
            "run_host": "lab-host-01",
        }

    async def test_raises_on_start_failure(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Raises RuntimeError when the execution cannot be started."""
        aioresponses.post(
            f"{PROJECT_URL}/test-sets/101/executions", status=409, body="Busy"
        )

        with pytest.raises(RuntimeError, match="Failed to start execution: 409"):
            await backend.start_execution(COLLECTION, {})

    async def test_starts_filtered_instances(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Only instances matching the filter are started."""
        aioresponses.get(
            INSTANCES_URL,
            status=200,
            payload=instances_response(
                instance_entry(instance_id="1", name="Login [1]", status="Passed"),
                instance_entry(
                    instance_id="2",
                    name="Checkout [1]",
                    test_name="Checkout",
                    status="Failed",
                ),
                instance_entry(
                    instance_id="3",
                    name="Search [1]",
                    test_name="Search",
                    status="Passed",
                ),
            ),
        )
        start_url = f"{PROJECT_URL}/test-sets/101/executions"
        aioresponses.post(start_url, status=201, payload=execution_response())

        await backend.start_execution(
            COLLECTION, {}, TestFilter(name="LOGIN", statuses=["Failed"])
        )

        call = aioresponses.requests[("POST", URL(start_url))][0]
        assert call.kwargs["json"]["test_instance_ids"] == ["1", "2"]

    async def test_starts_single_test(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """A collection naming one test starts only that test's instances."""
        aioresponses.get(
            INSTANCES_URL,
            status=200,
            payload=instances_response(
                instance_entry(instance_id="1"),
                instance_entry(
                    instance_id="2", name="Checkout [1]", test_name="Checkout"
                ),
            ),
        )
        start_url = f"{PROJECT_URL}/test-sets/101/executions"
        aioresponses.post(start_url, status=201, payload=execution_response())
        collection = CollectionHandle(
            collection_id="101",
            name="Smoke",
            folder="Root\\Regression",
            test_name="Checkout",
        )

        await backend.start_execution(collection, {})

        call = aioresponses.requests[("POST", URL(start_url))][0]
        assert call.kwargs["json"]["test_instance_ids"] == ["2"]

    async def test_raises_when_filter_selects_nothing(
        self, backend: RestBackend, aioresponses: aioresponses_cls
    ) -> None:
        """Nothing is started when no instance matches the filter."""
        aioresponses.get(
            INSTANCES_URL,
            status=200,
            payload=instances_response(instance_entry(status="Passed")),
        )

        with pytest.raises(NoTestsSelectedError, match="after applying filters"):
            await backend.start_execution(
                COLLECTION, {}, TestFilter(statuses=["Failed"])
            )

        assert not requests_to(
            aioresponses, "POST", f"{PROJECT_URL}/test-sets/101/executions"
        )


class TestRefreshStatus:
    """Tests for refresh_status."""

    async def test_maps_test_instances(
        self,
        backend: RestBackend,
        handle: RemoteExecutionHandle,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Returns the raw status of every test instance."""
        aioresponses.get(
            f"{PROJECT_URL}/executions/exec-1",
            status=200,
            payload=execution_status(
                tests=[
                    instance_status(instance_id="1", status="Running", run_id="r1"),
                    instance_status(instance_id="2", name="Checkout", status=None),
                ]
            ),
        )

        status = await backend.refresh_status(handle)

        assert status.finished is False
        assert status.tests == [
            RemoteTestStatus(
                test_id="1", name="Login", status="Running", run_id="r1"
            ),
            RemoteTestStatus(test_id="2", name="Checkout", status=None),
        ]

    async def test_raises_on_status_failure(
        self,
        backend: RestBackend,
        handle: RemoteExecutionHandle,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Raises RuntimeError when the status cannot be read."""
        aioresponses.get(f"{PROJECT_URL}/executions/exec-1", status=503)

        with pytest.raises(RuntimeError, match="Failed to get execution status: 503"):
            await backend.refresh_status(handle)


class TestStop:
    """Tests for stop."""

    async def test_accepts_asynchronous_stop(
        self,
        backend: RestBackend,
        handle: RemoteExecutionHandle,
        aioresponses: aioresponses_cls,
    ) -> None:
        """An accepted stop request returns without waiting."""
        stop_url = f"{PROJECT_URL}/executions/exec-1/stop"
        aioresponses.post(stop_url, status=202)

        await backend.stop(handle)

        assert ("POST", URL(stop_url)) in aioresponses.requests

    async def test_raises_on_stop_failure(
        self,
        backend: RestBackend,
        handle: RemoteExecutionHandle,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Raises RuntimeError when the stop request is rejected."""
        aioresponses.post(f"{PROJECT_URL}/executions/exec-1/stop", status=500)

        with pytest.raises(RuntimeError, match="Failed to stop execution: 500"):
            await backend.stop(handle)


class TestGetRunDetails:
    """Tests for get_run_details."""

    async def test_collects_failed_steps(
        self,
        backend: RestBackend,
        handle: RemoteExecutionHandle,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Failed steps are described and the run link is built."""
        aioresponses.get(
            f"{PROJECT_URL}/runs/r1/steps",
            status=200,
            payload=run_steps(
                ("Step 1", "Passed", "Open login page"),
                ("Step 2", "Failed", "Expected dashboard, got error page"),
                ("Step 3", "Failed", ""),
            ),
        )
        test = RemoteTestStatus(test_id="1", name="Login", status="x", run_id="r1")

        details = await backend.get_run_details(handle, test)

        assert list(details.failed_steps) == [
            "Expected dashboard, got error page",
            "Step 3",
        ]
        assert details.run_url == f"{PROJECT_URL}/runs/r1"

    async def test_no_request_without_run(
        self,
        backend: RestBackend,
        handle: RemoteExecutionHandle,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Tests that never ran have no details."""
        test = RemoteTestStatus(test_id="1", name="Login", status="No Run")

        details = await backend.get_run_details(handle, test)

        assert details.run_url is None
        assert not aioresponses.requests

    async def test_run_url_prefers_web_url(self, config: RestBackendConfig) -> None:
        """Run links point at the web interface when configured."""
        config = config.model_copy(update={"web_url": "https://alm.example.com/"})

        async with RestBackend.from_config(config) as backend:
            url = backend.run_url("r 1")

        assert url == "https://alm.example.com/domains/DEFAULT/projects/Demo/runs/r%201"


async def test_remote_set_run_end_to_end(
    backend: RestBackend, aioresponses: aioresponses_cls
) -> None:
    """A remote set is resolved, started, polled to completion and counted."""
    aioresponses.get(
        SEARCH_URL, status=200, payload=sets_response(set_entry(set_id=101))
    )
    aioresponses.post(
        f"{PROJECT_URL}/test-sets/101/executions",
        status=201,
        payload=execution_response(),
    )
    status_url = f"{PROJECT_URL}/executions/exec-1"
    for statuses, finished in [
        (("Waiting", "Waiting"), False),
        (("Running", "Waiting"), False),
        (("FinishedPassed", "Running"), False),
        (("FinishedPassed", "FinishedFailed"), True),
    ]:
        aioresponses.get(
            status_url,
            status=200,
            payload=execution_status(
                finished=finished,
                tests=[
                    instance_status(
                        instance_id=instance_id,
                        name=name,
                        status=raw,
                        run_id=f"r{instance_id}",
                    )
                    for (instance_id, name), raw in zip(
                        [("1", "Login"), ("2", "Checkout")], statuses, strict=True
                    )
                ],
            ),
        )
    aioresponses.get(
        f"{PROJECT_URL}/runs/r1/steps",
        status=200,
        payload=run_steps(("Step 1", "Passed", "")),
    )
    aioresponses.get(
        f"{PROJECT_URL}/runs/r2/steps",
        status=200,
        payload=run_steps(("Step 1", "Failed", "Total was 0")),
    )
    orchestrator = RemoteSetOrchestrator(
        backend=backend,
        signal=CancellationSignal(),
        sleep=AsyncMock(),
    )

    suite = await orchestrator.run(
        [parse_collection_reference("Root\\Regression\\Smoke", "1")]
    )

    assert suite.num_passed == 1
    assert suite.num_failures == 1
    assert [r.state for r in suite.results] == [TestState.PASSED, TestState.FAILED]
    assert suite.results[1].failure == "Total was 0"
    assert suite.results[1].run_url == f"{PROJECT_URL}/runs/r2"
