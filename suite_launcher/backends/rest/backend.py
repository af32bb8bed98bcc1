"""REST test-management backend implementation."""

import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urljoin

import aiohttp

from suite_launcher.backends.base import (
    CollectionHandle,
    ExecutionStatus,
    RemoteBackend,
    RemoteExecutionHandle,
    RemoteTestStatus,
    RunDetails,
    TestFilter,
)
from suite_launcher.backends.rest.config import RestBackendConfig
from suite_launcher.backends.rest.models import (
    ExecutionResponse,
    ExecutionStatusResponse,
    RunStepsResponse,
    TestInstancesResponse,
    TestSet,
    TestSetsResponse,
)
from suite_launcher.errors import NoTestsSelectedError

log = logging.getLogger(__name__)

FAILED_STEP_STATUS = "Failed"


def split_collection_path(path: str) -> tuple[str, str]:
    """Split ``Root\\Folder\\Set`` into its folder and set name."""
    folder, _, name = path.replace("/", "\\").strip("\\").rpartition("\\")
    return folder, name


@dataclass(frozen=True, kw_only=True)
class RestBackend(RemoteBackend):
    """Backend talking to a JSON test-management API.

    Authentication is a basic-auth sign in; the session cookie returned by
    the server authenticates every later request of the same session.
    """

    config: RestBackendConfig
    session: aiohttp.ClientSession = field(repr=False)
    project_path: str = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: RestBackendConfig
    ) -> AsyncGenerator["RestBackend", None]:
        """Create backend with managed session lifecycle."""
        async with aiohttp.ClientSession(base_url=config.server_url) as session:
            yield cls(
                config=config,
                session=session,
                project_path=(
                    f"domains/{quote(config.domain, safe='')}"
                    f"/projects/{quote(config.project, safe='')}"
                ),
            )

    async def connect(self) -> bool:
        """Sign in with the configured credentials."""
        auth = aiohttp.BasicAuth(
            self.config.username, self.config.password.get_secret_value()
        )
        log.info(
            "Connecting to %s (domain=%s, project=%s) as %s",
            self.config.server_url,
            self.config.domain,
            self.config.project,
            self.config.username,
        )
        try:
            async with self.session.post(
                "authentication/sign-in", auth=auth
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    log.error("Sign in refused: %s %s", response.status, text)
                    return False
        except aiohttp.ClientError as e:
            log.error("Cannot connect to %s: %s", self.config.server_url, e)
            return False
        return True

    async def resolve_collection(self, path: str) -> CollectionHandle | None:
        """Find a test set by folder and name.

        When no set matches, the last segment may name a single test, so the
        parent path is looked up as the set.
        """
        folder, name = split_collection_path(path)
        test_set = await self._find_test_set(folder, name)
        if test_set is not None:
            return CollectionHandle(
                collection_id=str(test_set.id),
                name=test_set.name,
                folder=test_set.folder or folder,
            )

        if not folder:
            return None

        parent_folder, set_name = split_collection_path(folder)
        log.info(
            "Test set %s not found, looking for test %s in %s", path, name, folder
        )
        test_set = await self._find_test_set(parent_folder, set_name)
        if test_set is None:
            return None
        return CollectionHandle(
            collection_id=str(test_set.id),
            name=test_set.name,
            folder=test_set.folder or parent_folder,
            test_name=name,
        )

    async def resolve_collection_by_id(
        self, collection_id: str
    ) -> CollectionHandle | None:
        """Fetch a test set by its id."""
        url = f"{self.project_path}/test-sets/{quote(collection_id, safe='')}"

        async with self.session.get(url) as response:
            if response.status == 404:
                return None
            if response.status != 200:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to get test set: {response.status} {text}"
                )
            data = await response.json()

        test_set = TestSet.model_validate(data)
        return CollectionHandle(
            collection_id=str(test_set.id), name=test_set.name, folder=test_set.folder
        )

    async def _find_test_set(self, folder: str, name: str) -> TestSet | None:
        params = {"folder": folder, "name": name}

        async with self.session.get(
            f"{self.project_path}/test-sets", params=params
        ) as response:
            if response.status != 200:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to find test set: {response.status} {text}"
                )
            data = await response.json()

        return next(
            (
                test_set
                for test_set in TestSetsResponse.model_validate(data).test_sets
                if test_set.name == name
            ),
            None,
        )

    async def start_execution(
        self,
        collection: CollectionHandle,
        parameters: Mapping[str, str],
        test_filter: TestFilter | None = None,
    ) -> RemoteExecutionHandle:
        """Start the selected tests of the set on the configured host."""
        payload: dict[str, Any] = {
            "parameters": dict(parameters),
            "run_mode": self.config.run_mode,
            "run_host": self.config.run_host,
        }
        if collection.test_name is not None or (
            test_filter is not None and test_filter.active
        ):
            payload["test_instance_ids"] = await self._select_instances(
                collection, test_filter or TestFilter()
            )
        url = f"{self.project_path}/test-sets/{collection.collection_id}/executions"

        async with self.session.post(url, json=payload) as response:
            if response.status != 201:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to start execution: {response.status} {text}"
                )
            data = await response.json()

        execution = ExecutionResponse.model_validate(data)
        log.info(
            "Started execution %s of test set %s (id %s)",
            execution.id,
            collection.name,
            collection.collection_id,
        )
        return RemoteExecutionHandle(collection=collection, execution_id=execution.id)

    async def _select_instances(
        self, collection: CollectionHandle, test_filter: TestFilter
    ) -> list[str]:
        url = f"{self.project_path}/test-sets/{collection.collection_id}/tests"

        async with self.session.get(url) as response:
            if response.status != 200:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to list test instances: {response.status} {text}"
                )
            data = await response.json()

        selected = [
            instance.id
            for instance in TestInstancesResponse.model_validate(data).tests
            if (
                collection.test_name is None
                or instance.test_name == collection.test_name
            )
            and test_filter.matches(
                name=instance.name,
                test_name=instance.test_name,
                status=instance.status,
            )
        ]
        if not selected:
            raise NoTestsSelectedError(
                f"No tests to run in test set {collection.name} "
                "after applying filters"
            )
        return selected

    async def refresh_status(self, handle: RemoteExecutionHandle) -> ExecutionStatus:
        """Fetch the status of every test instance of the execution."""
        url = f"{self.project_path}/executions/{handle.execution_id}"

        async with self.session.get(url) as response:
            if response.status != 200:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to get execution status: {response.status} {text}"
                )
            data = await response.json()

        status = ExecutionStatusResponse.model_validate(data)
        tests = [
            RemoteTestStatus(
                test_id=test.test_instance_id,
                name=test.name,
                status=test.status,
                message=test.message,
                run_id=test.run_id,
            )
            for test in status.tests
        ]
        return ExecutionStatus(finished=status.finished, tests=tests)

    async def stop(self, handle: RemoteExecutionHandle) -> None:
        """Request the execution to stop without waiting for it."""
        url = f"{self.project_path}/executions/{handle.execution_id}/stop"

        async with self.session.post(url) as response:
            if response.status not in (200, 202, 204):
                text = await response.text()
                raise RuntimeError(
                    f"Failed to stop execution: {response.status} {text}"
                )

    async def get_run_details(
        self,
        handle: RemoteExecutionHandle,
        test: RemoteTestStatus,
    ) -> RunDetails:
        """Collect failed step descriptions and the link to the run."""
        if test.run_id is None:
            return RunDetails()

        url = f"{self.project_path}/runs/{test.run_id}/steps"
        async with self.session.get(url) as response:
            if response.status != 200:
                text = await response.text()
                raise RuntimeError(
                    f"Failed to get run steps: {response.status} {text}"
                )
            data = await response.json()

        steps = RunStepsResponse.model_validate(data).steps
        return RunDetails(
            failed_steps=[
                step.description or step.name
                for step in steps
                if step.status == FAILED_STEP_STATUS
            ],
            run_url=self.run_url(test.run_id),
        )

    def run_url(self, run_id: str) -> str:
        """Link to a run in the web interface."""
        base = self.config.web_url or self.config.server_url
        return urljoin(base, f"{self.project_path}/runs/{quote(run_id, safe='')}")
