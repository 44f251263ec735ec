"""Data models for canonical run results and declared tests."""

from tally.models.identifier import DeclaredTestIdentifier, LineRange
from tally.models.result import (
    AssertionRecord,
    AssertionStatus,
    RunSummary,
    SourceLocation,
    SuiteResult,
)

__all__ = [
    "AssertionRecord",
    "AssertionStatus",
    "DeclaredTestIdentifier",
    "LineRange",
    "RunSummary",
    "SourceLocation",
    "SuiteResult",
]
