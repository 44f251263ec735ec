"""Verdict reporting and output formatting."""

from tally.reporting.verdicts import (
    DEFAULT_FAILURE_MESSAGE,
    CollectingSink,
    EditorLocation,
    Verdict,
    VerdictKind,
    VerdictSink,
    report,
)

__all__ = [
    "DEFAULT_FAILURE_MESSAGE",
    "CollectingSink",
    "EditorLocation",
    "Verdict",
    "VerdictKind",
    "VerdictSink",
    "report",
]
