"""Reconciliation: runner output in, one verdict per declared test out."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tally.config import ReconcileConfig
from tally.fallback import FAILURE_INDICATORS, PASS_INDICATORS, fallback
from tally.matching import match
from tally.normalizers import Framework, NotRecoverable, get_normalizer
from tally.normalizers.structured import parse_structured_results
from tally.reporting.verdicts import CollectingSink, report

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tally.models.identifier import DeclaredTestIdentifier
    from tally.models.result import RunSummary
    from tally.reporting.verdicts import EditorLocation, Verdict, VerdictSink

logger = logging.getLogger(__name__)


class _TeeSink(CollectingSink):
    """Collect verdicts while forwarding each one to the caller's sink."""

    def __init__(self, target: VerdictSink) -> None:
        """Initialize with the sink that receives every verdict."""
        super().__init__()
        self._target = target

    def passed(self, identifier: DeclaredTestIdentifier, duration_ms: float | None = None) -> None:
        super().passed(identifier, duration_ms)
        self._target.passed(identifier, duration_ms)

    def failed(
        self,
        identifier: DeclaredTestIdentifier,
        message: str,
        location: EditorLocation | None = None,
        duration_ms: float | None = None,
    ) -> None:
        super().failed(identifier, message, location, duration_ms)
        self._target.failed(identifier, message, location, duration_ms)

    def skipped(self, identifier: DeclaredTestIdentifier) -> None:
        super().skipped(identifier)
        self._target.skipped(identifier)

    def errored(self, identifier: DeclaredTestIdentifier, message: str) -> None:
        super().errored(identifier, message)
        self._target.errored(identifier, message)


def _tokens(extra: list[str]) -> tuple[str, ...]:
    return tuple(token for token in extra if token.strip())


def normalize(
    raw_output: str,
    *,
    framework: Framework = Framework.JEST,
    file_path: str = "",
    session_id: str | None = None,
) -> RunSummary | NotRecoverable:
    """Produce the canonical result model for *raw_output*.

    Structured side-channel results for *session_id* take precedence over
    the framework's normalizer.
    """
    if session_id is not None:
        structured = parse_structured_results(raw_output, session_id)
        if structured is not None:
            logger.debug("Using structured results for session %s", session_id)
            return structured
        logger.debug("No structured results for session %s", session_id)

    return get_normalizer(framework)(raw_output, file_path=file_path)


def reconcile(
    raw_output: str,
    identifiers: Sequence[DeclaredTestIdentifier],
    sink: VerdictSink | None = None,
    *,
    framework: Framework = Framework.JEST,
    file_path: str = "",
    session_id: str | None = None,
    settings: ReconcileConfig | None = None,
) -> list[Verdict]:
    """Emit exactly one verdict per identifier, in order, and return them.

    Never raises for any *raw_output*: output no normalizer can read is
    handed to the fallback parser.
    """
    settings = settings or ReconcileConfig()
    collector = _TeeSink(sink) if sink is not None else CollectingSink()

    summary = normalize(
        raw_output, framework=framework, file_path=file_path, session_id=session_id
    )

    if isinstance(summary, NotRecoverable):
        logger.warning("Could not normalize %s output: %s", framework.value, summary.reason)
        fallback(
            raw_output,
            identifiers,
            collector,
            failure_indicators=(*FAILURE_INDICATORS, *_tokens(settings.extra_failure_indicators)),
            pass_indicators=(*PASS_INDICATORS, *_tokens(settings.extra_pass_indicators)),
            preview_chars=settings.preview_chars,
        )
        return collector.verdicts

    records = summary.records()
    if not records:
        logger.warning("Test run reported no assertion results; marking all tests skipped")
        for identifier in identifiers:
            collector.skipped(identifier)
        return collector.verdicts

    report(match(records, identifiers), collector)
    return collector.verdicts
