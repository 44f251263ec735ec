"""Canonical run result model.

Every normalizer converges on these types regardless of which runner
produced the output.  The shape mirrors Jest's ``--json`` report, which is
also what :meth:`RunSummary.to_dict` emits.  Instances are frozen: once a
normalizer returns a ``RunSummary`` the matcher and reporter only read it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from tally.utils.coerce import to_float, to_int


class AssertionStatus(Enum):
    """Outcome of a single assertion record."""

    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"


_STATUS_TOKENS: dict[str, AssertionStatus] = {
    "passed": AssertionStatus.PASSED,
    "failed": AssertionStatus.FAILED,
    "pending": AssertionStatus.PENDING,
    "skipped": AssertionStatus.PENDING,
    "todo": AssertionStatus.PENDING,
    "disabled": AssertionStatus.PENDING,
    "focused": AssertionStatus.PENDING,
}

# Summary counter keys of the primary schema, in the order Jest writes them.
SUMMARY_COUNTERS: tuple[str, ...] = (
    "numFailedTestSuites",
    "numFailedTests",
    "numPassedTestSuites",
    "numPassedTests",
    "numPendingTestSuites",
    "numPendingTests",
    "numTotalTestSuites",
    "numTotalTests",
)


def map_status(token: object) -> AssertionStatus:
    """Map a runner status token to ``AssertionStatus``.

    Unknown or missing tokens map to ``FAILED``: a record is only ever
    ``PASSED`` when the runner said so.
    """
    if isinstance(token, AssertionStatus):
        return token
    return _STATUS_TOKENS.get(str(token).strip().lower(), AssertionStatus.FAILED)


@dataclass(frozen=True)
class SourceLocation:
    """Position of an assertion in its source file (1-based line)."""

    line: int
    column: int = 0

    @classmethod
    def from_dict(cls, data: object) -> SourceLocation | None:
        if not isinstance(data, dict):
            return None
        line = to_int(data.get("line"), default=0)
        if line < 1:
            return None
        return cls(line=line, column=max(to_int(data.get("column"), default=0), 0))

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "column": self.column}


@dataclass(frozen=True)
class AssertionRecord:
    """One leaf-level test outcome emitted by a runner."""

    title: str
    """Leaf name of the test."""

    full_name: str
    """Fully qualified name, prefixed with the enclosing group names."""

    status: AssertionStatus
    """Canonical outcome."""

    duration_ms: float | None = None
    """Duration in milliseconds, ``None`` when the runner reported none."""

    failure_messages: tuple[str, ...] = ()
    """Failure messages in the order the runner reported them."""

    location: SourceLocation | None = None
    """Where the test is declared, when the runner reports it."""

    ancestor_titles: tuple[str, ...] = ()
    """Names of the enclosing groups, outermost first."""

    file_path: str = ""
    """Test file the record belongs to (empty when unknown)."""

    def __post_init__(self) -> None:
        if self.title and not self.full_name:
            object.__setattr__(self, "full_name", _join_path(self.ancestor_titles, self.title))
        if self.duration_ms is not None and self.duration_ms < 0:
            object.__setattr__(self, "duration_ms", None)

    @property
    def path(self) -> str:
        """Ancestor titles and title joined by single spaces."""
        return _join_path(self.ancestor_titles, self.title)

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, file_path: str = "") -> AssertionRecord:
        """Build a record from one ``assertionResults`` entry, coercing loosely."""
        raw_ancestors = data.get("ancestorTitles")
        ancestors = (
            tuple(str(a) for a in raw_ancestors if a is not None)
            if isinstance(raw_ancestors, list)
            else ()
        )
        title = data.get("title")
        title_str = str(title) if title is not None else ""
        full_name = data.get("fullName")
        raw_messages = data.get("failureMessages")
        messages = (
            tuple(str(m) for m in raw_messages if m is not None)
            if isinstance(raw_messages, list)
            else ()
        )
        return cls(
            title=title_str,
            full_name=str(full_name) if full_name else "",
            status=map_status(data.get("status", "failed")),
            duration_ms=to_float(data.get("duration")),
            failure_messages=messages,
            location=SourceLocation.from_dict(data.get("location")),
            ancestor_titles=ancestors,
            file_path=file_path,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "ancestorTitles": list(self.ancestor_titles),
            "title": self.title,
            "fullName": self.full_name,
            "status": self.status.value,
            "failureMessages": list(self.failure_messages),
        }
        if self.duration_ms is not None:
            result["duration"] = self.duration_ms
        if self.location is not None:
            result["location"] = self.location.to_dict()
        return result


@dataclass(frozen=True)
class SuiteResult:
    """File-level grouping of assertion records."""

    name: str
    assertion_results: tuple[AssertionRecord, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SuiteResult:
        name = str(data.get("name") or "")
        raw_assertions = data.get("assertionResults")
        assertions = raw_assertions if isinstance(raw_assertions, list) else []
        return cls(
            name=name,
            assertion_results=tuple(
                AssertionRecord.from_dict(a, file_path=name)
                for a in assertions
                if isinstance(a, dict)
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "assertionResults": [r.to_dict() for r in self.assertion_results],
        }


@dataclass(frozen=True)
class RunSummary:
    """Counters and per-suite results of one test run."""

    num_failed_test_suites: int = 0
    num_failed_tests: int = 0
    num_passed_test_suites: int = 0
    num_passed_tests: int = 0
    num_pending_test_suites: int = 0
    num_pending_tests: int = 0
    num_total_test_suites: int = 0
    num_total_tests: int = 0
    success: bool = False
    test_results: tuple[SuiteResult, ...] = field(default_factory=tuple)

    def records(self) -> list[AssertionRecord]:
        """Return every assertion record, flattened in suite order.

        Positions in this list are the record addresses used by the matcher.
        """
        return [record for suite in self.test_results for record in suite.assertion_results]

    @classmethod
    def from_records(cls, suites: list[SuiteResult]) -> RunSummary:
        """Build a summary whose counters are computed from *suites*."""
        passed = failed = pending = 0
        failed_suites = pending_suites = 0
        for suite in suites:
            statuses = [r.status for r in suite.assertion_results]
            passed += statuses.count(AssertionStatus.PASSED)
            failed += statuses.count(AssertionStatus.FAILED)
            pending += statuses.count(AssertionStatus.PENDING)
            if AssertionStatus.FAILED in statuses:
                failed_suites += 1
            elif statuses and all(s is AssertionStatus.PENDING for s in statuses):
                pending_suites += 1
        total_suites = len(suites)
        return cls(
            num_failed_test_suites=failed_suites,
            num_failed_tests=failed,
            num_passed_test_suites=total_suites - failed_suites - pending_suites,
            num_passed_tests=passed,
            num_pending_test_suites=pending_suites,
            num_pending_tests=pending,
            num_total_test_suites=total_suites,
            num_total_tests=passed + failed + pending,
            success=failed == 0,
            test_results=tuple(suites),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunSummary:
        """Build a summary from a primary-schema document.

        Absent counters default to zero.  An absent ``success`` flag is
        derived from the failed-test counter.
        """
        raw_suites = data.get("testResults")
        suites = raw_suites if isinstance(raw_suites, list) else []
        counters = {key: max(to_int(data.get(key)), 0) for key in SUMMARY_COUNTERS}
        success = data.get("success")
        return cls(
            num_failed_test_suites=counters["numFailedTestSuites"],
            num_failed_tests=counters["numFailedTests"],
            num_passed_test_suites=counters["numPassedTestSuites"],
            num_passed_tests=counters["numPassedTests"],
            num_pending_test_suites=counters["numPendingTestSuites"],
            num_pending_tests=counters["numPendingTests"],
            num_total_test_suites=counters["numTotalTestSuites"],
            num_total_tests=counters["numTotalTests"],
            success=bool(success) if success is not None else counters["numFailedTests"] == 0,
            test_results=tuple(SuiteResult.from_dict(s) for s in suites if isinstance(s, dict)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "numFailedTestSuites": self.num_failed_test_suites,
            "numFailedTests": self.num_failed_tests,
            "numPassedTestSuites": self.num_passed_test_suites,
            "numPassedTests": self.num_passed_tests,
            "numPendingTestSuites": self.num_pending_test_suites,
            "numPendingTests": self.num_pending_tests,
            "numTotalTestSuites": self.num_total_test_suites,
            "numTotalTests": self.num_total_tests,
            "success": self.success,
            "testResults": [s.to_dict() for s in self.test_results],
        }


def _join_path(ancestors: tuple[str, ...], title: str) -> str:
    return " ".join([*ancestors, title]) if title else " ".join(ancestors)
