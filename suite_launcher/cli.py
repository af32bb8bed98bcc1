"""CLI entry point for the test suite launcher."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from enum import IntEnum
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from suite_launcher.backends.base import TestFilter
from suite_launcher.backends.loading import load_backend_manifest
from suite_launcher.cancellation import CancellationSignal, sentinel_path
from suite_launcher.catalog import build_catalog
from suite_launcher.config import LauncherConfig, load_config
from suite_launcher.dispatch import DispatchOrchestrator
from suite_launcher.errors import (
    BackendConnectionError,
    BackendNotFoundError,
    ConfigError,
    EmptyCatalogError,
)
from suite_launcher.executors.registry import executor_factories
from suite_launcher.models.result import SuiteResult
from suite_launcher.models.spec import TestSpec
from suite_launcher.models.state import TestState
from suite_launcher.remote_runner import RemoteSetOrchestrator
from suite_launcher.report import IncrementalReport


class ExitStatus(IntEnum):
    """Final verdict of a run as seen by the invoking automation."""

    SUCCESS = 0
    FAILED = 1
    ABORTED = 2
    CONNECTION_FAILED = 3


STATUS_SYMBOLS = {
    TestState.PASSED: "✅",
    TestState.WARNING: "⚠️",
    TestState.FAILED: "❌",
    TestState.ERROR: "❗",
    TestState.NO_RUN: "⏭️",
}


def log_results_summary(log: logging.Logger, suites: Sequence[SuiteResult]) -> None:
    """Log a formatted summary of test results with run links."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for suite in suites:
        log.info(
            "%s: %d test(s), %d passed, %d warning(s), %d failed, %d error(s), "
            "%d skipped (%.2fs)",
            suite.name,
            suite.num_tests,
            suite.num_passed,
            suite.num_warnings,
            suite.num_failures,
            suite.num_errors,
            suite.num_skipped,
            suite.total_runtime,
        )
        for result in suite.results:
            symbol = STATUS_SYMBOLS.get(result.state, "?")
            log.info(
                "%s %s: %s (%.2fs)", symbol, result.name, result.state, result.runtime
            )
            if result.run_url:
                log.info("  Run URL: %s", result.run_url)
            if result.message:
                log.info("  Message: %s", result.message)


def format_output(suites: Sequence[SuiteResult]) -> dict[str, Any]:
    """Format suite results for JSON output."""
    all_results: list[dict[str, Any]] = [
        {
            "suite": suite.name,
            "name": result.name,
            "group": result.group,
            "state": str(result.state),
            "runtime": result.runtime,
            "message": result.message,
            "run_url": result.run_url,
        }
        for suite in suites
        for result in suite.results
    ]

    return {
        "total": sum(s.num_tests for s in suites),
        "passed": sum(s.num_passed for s in suites),
        "warnings": sum(s.num_warnings for s in suites),
        "failed": sum(s.num_failures for s in suites),
        "errors": sum(s.num_errors for s in suites),
        "skipped": sum(s.num_skipped for s in suites),
        "results": all_results,
    }


def decide_exit_status(suites: Sequence[SuiteResult]) -> ExitStatus:
    """Derive the run verdict from the finalized suites."""
    if any(suite.aborted for suite in suites):
        return ExitStatus.ABORTED
    if any(suite.has_failures for suite in suites):
        return ExitStatus.FAILED
    return ExitStatus.SUCCESS


async def run_remote(
    config: LauncherConfig,
    specs: Sequence[TestSpec],
    signal: CancellationSignal,
    report: IncrementalReport,
) -> SuiteResult:
    """Connect to the configured backend and run the remote test sets."""
    log = logging.getLogger("suite_launcher")

    if config.backend is None:
        raise ConfigError("Remote test sets given but no backend configured")

    manifest = load_backend_manifest(config.backend.key)
    log.info("Using %s backend: %s", config.backend.key, manifest.description)

    async with manifest.open(config.backend.config) as backend:
        if not await backend.connect():
            raise BackendConnectionError(
                f"Cannot connect to the '{config.backend.key}' backend"
            )

        orchestrator = RemoteSetOrchestrator(
            backend=backend,
            signal=signal,
            suite_name=f"{config.suite_name}-remote",
            report=report,
            poll_interval=config.poll_interval,
            test_filter=TestFilter(
                name=config.filter_by_name, statuses=config.filter_by_statuses
            ),
        )
        return await orchestrator.run(specs)


async def run(config: LauncherConfig) -> ExitStatus:
    """Run all configured tests and return the exit status."""
    log = logging.getLogger("suite_launcher")

    stop_file = sentinel_path(config.sentinel_dir, config.run_token)
    signal = CancellationSignal(sentinel=stop_file, budget=config.timeout)
    log.info("Create %s to abort the run", stop_file)
    if config.timeout is not None:
        log.info("Run timeout is %.0f seconds", config.timeout)

    try:
        specs = build_catalog(
            config.sources, report_base_directory=config.report_base_directory
        )
    except EmptyCatalogError as e:
        log.error("%s", e)
        print(json.dumps(format_output([])))
        return ExitStatus.FAILED

    report = IncrementalReport(path=config.report_path)
    log.info("Results are written to %s", config.report_path)

    local_specs = [spec for spec in specs if not spec.remote]
    remote_specs = [spec for spec in specs if spec.remote]
    suites: list[SuiteResult] = []

    if local_specs:
        orchestrator = DispatchOrchestrator(
            factories=executor_factories(config),
            signal=signal,
            suite_name=config.suite_name,
            report=report,
            cancel_run_on_failure=config.cancel_run_on_failure,
            parallel_enabled=bool(config.parallel_environments),
        )
        suites.append(await orchestrator.run(local_specs))

    if remote_specs:
        try:
            suites.append(await run_remote(config, remote_specs, signal, report))
        except BackendConnectionError as e:
            log.error("%s", e)
            log_results_summary(log, suites)
            print(json.dumps(format_output(suites), indent=2))
            return ExitStatus.CONNECTION_FAILED
        except (ConfigError, BackendNotFoundError, ValidationError) as e:
            log.error("Cannot run remote test sets: %s", e)
            log_results_summary(log, suites)
            print(json.dumps(format_output(suites), indent=2))
            return ExitStatus.FAILED

    log_results_summary(log, suites)
    print(json.dumps(format_output(suites), indent=2))

    return decide_exit_status(suites)


def build_config(args: argparse.Namespace) -> LauncherConfig:
    """Load the config file and apply command line overrides."""
    config = load_config(args.config) if args.config else LauncherConfig()
    data = config.model_dump()

    if args.source:
        data["sources"] = [*data["sources"], *args.source]
    if args.timeout is not None:
        data["timeout"] = args.timeout
    if args.cancel_on_failure:
        data["cancel_run_on_failure"] = True
    if args.report is not None:
        data["report_path"] = args.report
    if args.run_token is not None:
        data["run_token"] = args.run_token
    if args.filter_name is not None:
        data["filter_by_name"] = args.filter_name
    if args.filter_status:
        data["filter_by_statuses"] = args.filter_status
    if args.backend is not None or args.backend_config is not None:
        backend = data.get("backend") or {}
        if args.backend is not None:
            backend["key"] = args.backend
        if args.backend_config is not None:
            backend["config"] = {
                **backend.get("config", {}),
                **json.loads(args.backend_config),
            }
        data["backend"] = backend

    try:
        return LauncherConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run local tests and remote test sets and report the results"
    )
    parser.add_argument("--config", type=Path, help="Path to a YAML config file")
    parser.add_argument(
        "--source",
        action="append",
        help="Test directory, list file or remote:<Folder\\Set> (repeatable)",
    )
    parser.add_argument("--timeout", type=float, help="Run timeout in seconds")
    parser.add_argument(
        "--cancel-on-failure",
        action="store_true",
        help="Skip remaining tests after the first failure or error",
    )
    parser.add_argument("--report", type=Path, help="Path of the JSON report")
    parser.add_argument("--run-token", help="Unique token naming the stop file")
    parser.add_argument("--backend", help="Remote backend key (e.g. rest)")
    parser.add_argument(
        "--backend-config", help="JSON configuration for the remote backend"
    )
    parser.add_argument(
        "--filter-name",
        help="Run only remote tests whose name contains this text",
    )
    parser.add_argument(
        "--filter-status",
        action="append",
        help="Run only remote tests whose last status is this one (repeatable)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = build_config(args)
    except (OSError, ValueError) as e:
        logging.getLogger("suite_launcher").error("%s", e)
        sys.exit(ExitStatus.FAILED)

    exit_code = asyncio.run(run(config))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
