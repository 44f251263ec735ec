"""JSON reporter — generates structured JSON verdict reports.

Produces machine-readable JSON output for downstream tooling from
reconciliation results.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tally.reporting.verdicts import VerdictKind

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from tally.reporting.verdicts import Verdict

logger = logging.getLogger(__name__)


class JSONReporter:
    """Generate structured JSON reports from verdicts."""

    def generate(
        self,
        output_path: Path,
        verdicts: Sequence[Verdict],
        *,
        extra: dict[str, Any] | None = None,
    ) -> Path:
        """Write a JSON report file.

        Args:
            output_path: Path to write the JSON file.
            verdicts: Verdicts in declaration order.
            extra: Additional data merged into the top-level document.

        Returns:
            The path to the generated JSON file.
        """
        report = build_report(verdicts, extra=extra)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            json.dumps(report, indent=2, ensure_ascii=False, default=str),
            encoding="utf-8",
        )
        logger.info("JSON report written to %s", output_path)
        return output_path

    def generate_string(
        self,
        verdicts: Sequence[Verdict],
        *,
        extra: dict[str, Any] | None = None,
    ) -> str:
        """Return the JSON report as a string."""
        report = build_report(verdicts, extra=extra)
        return json.dumps(report, indent=2, ensure_ascii=False, default=str)


def build_report(
    verdicts: Sequence[Verdict],
    *,
    extra: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the JSON report structure."""
    report: dict[str, Any] = {
        "tool": "tally",
        "timestamp": datetime.now(tz=UTC).isoformat(),
        "summary": _summarize(verdicts),
        "verdicts": [serialize_verdict(v) for v in verdicts],
    }

    if extra:
        report.update(extra)

    return report


def _summarize(verdicts: Sequence[Verdict]) -> dict[str, int]:
    summary = {"total": len(verdicts)}
    for kind in VerdictKind:
        summary[kind.value] = sum(1 for v in verdicts if v.kind is kind)
    return summary


def serialize_verdict(verdict: Verdict) -> dict[str, Any]:
    """Serialize a ``Verdict`` into a JSON-compatible dict."""
    data: dict[str, Any] = {
        "id": verdict.identifier_id,
        "status": verdict.kind.value,
        "duration_ms": verdict.duration_ms,
        "message": verdict.message,
    }
    if verdict.location is not None:
        data["location"] = {"line": verdict.location.line, "column": verdict.location.column}
    return data
