"""Incrementally persisted suite report."""

import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field, ValidationError

from suite_launcher.models.base import Model
from suite_launcher.models.result import SuiteResult, TestRunResult
from suite_launcher.models.state import TestState

log = logging.getLogger(__name__)


class CaseReport(Model):
    """Persisted outcome of one test."""

    key: str
    name: str
    group: str
    path: str
    state: TestState
    runtime: float
    message: str | None = None
    report_location: str | None = None
    run_url: str | None = None

    @classmethod
    def from_result(cls, result: TestRunResult) -> "CaseReport":
        """Snapshot a run result."""
        return cls(
            key=result.key,
            name=result.name,
            group=result.group,
            path=result.path,
            state=result.state,
            runtime=result.runtime,
            message=result.message,
            report_location=result.report_location,
            run_url=result.run_url,
        )


class SuiteReport(Model):
    """Persisted suite with its running counters."""

    name: str
    tests: int = 0
    passed: int = 0
    warnings: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0
    time: float = 0.0
    cases: Sequence[CaseReport] = Field(default_factory=list)


class ReportDocument(Model):
    """Top level report document."""

    suites: Sequence[SuiteReport] = Field(default_factory=list)

    def suite(self, name: str) -> SuiteReport | None:
        """Return the suite with the given name."""
        return next((s for s in self.suites if s.name == name), None)


@dataclass(frozen=True, kw_only=True)
class IncrementalReport:
    """JSON report rewritten in full after every final test result.

    Each write reads the existing document, merges the new case into its
    suite and atomically replaces the file, so the file on disk is always a
    complete document covering every test recorded so far.
    """

    path: Path

    def load(self) -> ReportDocument:
        """Read the current document, empty if missing or unreadable."""
        if not self.path.exists():
            return ReportDocument()

        try:
            return ReportDocument.model_validate_json(self.path.read_text())
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            log.warning("Ignoring unreadable report %s: %s", self.path, e)
            return ReportDocument()

    def update(
        self, suite: SuiteResult, result: TestRunResult | None = None
    ) -> ReportDocument:
        """Merge ``result`` and the suite counters into the persisted report."""
        document = self.load()
        existing = document.suite(suite.name)

        cases = list(existing.cases) if existing else []
        if result is not None:
            case = CaseReport.from_result(result)
            for index, current in enumerate(cases):
                if current.key == case.key:
                    cases[index] = case
                    break
            else:
                cases.append(case)

        suite_report = SuiteReport(
            name=suite.name,
            tests=suite.num_tests,
            passed=suite.num_passed,
            warnings=suite.num_warnings,
            failures=suite.num_failures,
            errors=suite.num_errors,
            skipped=suite.num_skipped,
            time=suite.total_runtime,
            cases=cases,
        )
        suites = [s for s in document.suites if s.name != suite.name]
        if existing is None:
            suites.append(suite_report)
        else:
            suites.insert(list(document.suites).index(existing), suite_report)

        updated = ReportDocument(suites=suites)
        self.write(updated)
        return updated

    def write(self, document: ReportDocument) -> None:
        """Atomically replace the report file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f"{self.path.name}.tmp")
        temp_path.write_text(document.model_dump_json(indent=2))
        os.replace(temp_path, self.path)
