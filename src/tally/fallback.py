"""Fallback heuristic parser for output no normalizer could read.

This is a last resort with no per-test granularity.  It only reports a
pass when the output shows pass indicators and no failure indicators;
anything it cannot classify is reported as errored, never as passed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from tally.models.identifier import DeclaredTestIdentifier
    from tally.reporting.verdicts import VerdictSink

logger = logging.getLogger(__name__)

FAILURE_INDICATORS: tuple[str, ...] = (
    "FAIL",
    "✗",
    "×",
    "●",
    "FAILED",
    "Error:",
    "AssertionError",
    "expect(",
    "Expected:",
    "Received:",
)

PASS_INDICATORS: tuple[str, ...] = ("PASS", "✓", "√", "passed")

UNDETERMINED_MESSAGE = "Could not determine test result. Check the runner output for details."
UNPARSEABLE_MESSAGE = (
    "Could not parse test results. Run the tests from a terminal to see the full output."
)

_DEFAULT_PREVIEW_CHARS = 500


def _contains_any(text: str, tokens: Iterable[str]) -> bool:
    return any(token in text for token in tokens)


def fallback(
    raw_output: str,
    identifiers: Sequence[DeclaredTestIdentifier],
    sink: VerdictSink,
    *,
    failure_indicators: Sequence[str] = FAILURE_INDICATORS,
    pass_indicators: Sequence[str] = PASS_INDICATORS,
    preview_chars: int = _DEFAULT_PREVIEW_CHARS,
) -> None:
    """Emit one verdict per identifier from a textual scan of *raw_output*."""
    logger.warning("Falling back to text scan of %d chars of runner output", len(raw_output))

    has_failure = _contains_any(raw_output, failure_indicators)
    has_pass = _contains_any(raw_output, pass_indicators)

    if has_pass and not has_failure:
        for identifier in identifiers:
            sink.passed(identifier)
        return

    if has_failure:
        failure_lines = [
            line for line in raw_output.splitlines() if _contains_any(line, failure_indicators)
        ]
        for identifier in identifiers:
            names = {identifier.label, identifier.short_name} - {""}
            relevant = [line for line in failure_lines if _contains_any(line, names)]
            if relevant:
                sink.failed(identifier, "\n".join(relevant))
            else:
                sink.errored(identifier, UNDETERMINED_MESSAGE)
        return

    logger.warning(
        "No pass/fail indicators found in output. Output preview: %s",
        raw_output[:preview_chars],
    )
    for identifier in identifiers:
        sink.errored(identifier, UNPARSEABLE_MESSAGE)
