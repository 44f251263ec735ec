"""Turn matched records into one verdict per declared test."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from tally.models.result import AssertionStatus

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tally.matching import MatchResult
    from tally.models.identifier import DeclaredTestIdentifier
    from tally.models.result import AssertionRecord, SourceLocation

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_MESSAGE = "Test failed"


class VerdictKind(Enum):
    """Final outcome reported for a declared test."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass(frozen=True)
class EditorLocation:
    """0-based line and column, the convention editors use."""

    line: int
    column: int

    @classmethod
    def from_source(cls, location: SourceLocation) -> EditorLocation:
        return cls(line=max(location.line - 1, 0), column=location.column)


@dataclass(frozen=True)
class Verdict:
    """The verdict emitted for one declared test."""

    identifier_id: str
    kind: VerdictKind
    duration_ms: float | None = None
    message: str = ""
    location: EditorLocation | None = None


class VerdictSink(Protocol):
    """Receiver of verdicts, typically the host's test tree."""

    def passed(self, identifier: DeclaredTestIdentifier, duration_ms: float | None = None) -> None:
        """Record a pass."""

    def failed(
        self,
        identifier: DeclaredTestIdentifier,
        message: str,
        location: EditorLocation | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Record a failure."""

    def skipped(self, identifier: DeclaredTestIdentifier) -> None:
        """Record that no outcome was observed, or the test did not run."""

    def errored(self, identifier: DeclaredTestIdentifier, message: str) -> None:
        """Record that the outcome could not be determined."""


class CollectingSink:
    """``VerdictSink`` that keeps every verdict in emission order."""

    def __init__(self) -> None:
        """Initialize an empty sink."""
        self.verdicts: list[Verdict] = []

    def passed(self, identifier: DeclaredTestIdentifier, duration_ms: float | None = None) -> None:
        self.verdicts.append(Verdict(identifier.id, VerdictKind.PASSED, duration_ms=duration_ms))

    def failed(
        self,
        identifier: DeclaredTestIdentifier,
        message: str,
        location: EditorLocation | None = None,
        duration_ms: float | None = None,
    ) -> None:
        self.verdicts.append(
            Verdict(
                identifier.id,
                VerdictKind.FAILED,
                duration_ms=duration_ms,
                message=message,
                location=location,
            )
        )

    def skipped(self, identifier: DeclaredTestIdentifier) -> None:
        self.verdicts.append(Verdict(identifier.id, VerdictKind.SKIPPED))

    def errored(self, identifier: DeclaredTestIdentifier, message: str) -> None:
        self.verdicts.append(Verdict(identifier.id, VerdictKind.ERRORED, message=message))


# ── Aggregation ──────────────────────────────────────────────────


def aggregate_status(records: Sequence[AssertionRecord]) -> VerdictKind:
    """Combine template members: any failure fails, else any pass passes."""
    statuses = {record.status for record in records}
    if AssertionStatus.FAILED in statuses:
        return VerdictKind.FAILED
    if AssertionStatus.PASSED in statuses:
        return VerdictKind.PASSED
    return VerdictKind.SKIPPED


def build_failure_message(failed: Sequence[AssertionRecord]) -> str:
    """Concatenate failing members' messages, each prefixed with its title.

    Members without a title are labelled with their 1-based ordinal among
    the failing members.
    """
    blocks: list[str] = []
    for ordinal, record in enumerate(failed, start=1):
        label = record.title or str(ordinal)
        messages = record.failure_messages or (DEFAULT_FAILURE_MESSAGE,)
        blocks.extend(f"[{label}]: {message}" for message in messages)
    return "\n\n".join(blocks)


def _total_duration(records: Sequence[AssertionRecord]) -> float:
    return sum(record.duration_ms or 0.0 for record in records)


# ── Reporting ────────────────────────────────────────────────────


def report_record(
    sink: VerdictSink,
    identifier: DeclaredTestIdentifier,
    record: AssertionRecord | None,
) -> None:
    """Emit the verdict for a single matched record (or no record)."""
    if record is None:
        sink.skipped(identifier)
        return

    if record.status is AssertionStatus.PASSED:
        sink.passed(identifier, record.duration_ms)
    elif record.status is AssertionStatus.FAILED:
        message = "\n".join(record.failure_messages) or DEFAULT_FAILURE_MESSAGE
        location = EditorLocation.from_source(record.location) if record.location else None
        sink.failed(identifier, message, location, record.duration_ms)
    else:
        sink.skipped(identifier)


def report_group(
    sink: VerdictSink,
    identifier: DeclaredTestIdentifier,
    records: Sequence[AssertionRecord],
) -> None:
    """Emit one verdict for all records aggregated under a template identifier."""
    kind = aggregate_status(records)
    duration = _total_duration(records)

    if kind is VerdictKind.FAILED:
        failed = [r for r in records if r.status is AssertionStatus.FAILED]
        located = next((r.location for r in failed if r.location is not None), None)
        sink.failed(
            identifier,
            build_failure_message(failed),
            EditorLocation.from_source(located) if located else None,
            duration,
        )
    elif kind is VerdictKind.PASSED:
        sink.passed(identifier, duration)
    else:
        sink.skipped(identifier)


def report(result: MatchResult, sink: VerdictSink) -> None:
    """Emit exactly one verdict per identifier in *result*, in order."""
    for entry in result.matches:
        records = result.records_for(entry)
        if entry.aggregated:
            report_group(sink, entry.identifier, records)
        else:
            report_record(sink, entry.identifier, records[0] if records else None)
