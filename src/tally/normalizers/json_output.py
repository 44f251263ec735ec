"""JSON reporter output — primary (Jest) and secondary (Vitest) schemas.

Runners are invoked with a JSON reporter, but the captured stdout is not
always clean JSON: monorepo wrappers (Nx, Turborepo, yarn workspaces)
print their own log lines around it.  Normalization therefore tries the
whole input first and then falls back to locating the result object inside
the noise.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from tally.models.result import SUMMARY_COUNTERS, RunSummary, SuiteResult
from tally.normalizers.base import NotRecoverable

if TYPE_CHECKING:
    from collections.abc import Callable

    _Converter = Callable[[object], RunSummary | NotRecoverable]

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────

# Opening tokens a result object starts with.  Jest writes the counters
# first; some wrappers and the Vitest reporter lead with ``testResults``.
_RESULT_START_RE = re.compile(
    r'\{\s*"(?:numFailedTestSuites|testResults|numTotalTestSuites)"\s*:'
)


# ── Schema checks ────────────────────────────────────────────────


def is_result_document(obj: object) -> bool:
    """Return ``True`` if *obj* has the primary schema's ``testResults`` array."""
    return isinstance(obj, dict) and isinstance(obj.get("testResults"), list)


def has_summary_counters(obj: dict[str, Any]) -> bool:
    """Return ``True`` if *obj* carries any summary counter or the success flag."""
    return "success" in obj or any(key in obj for key in SUMMARY_COUNTERS)


# ── Extraction ───────────────────────────────────────────────────


def extract_json_document(text: str) -> str | None:
    """Return the first complete result object embedded in *text*.

    Scanning starts at the earliest opening token of a result object and
    tracks brace depth.  Braces inside string literals are ignored; a
    backslash inside a string escapes the next character, so ``\\"`` does
    not end the string.

    Returns:
        The exact substring of the object, or ``None`` when no opening
        token is found or the object never closes.
    """
    match = _RESULT_START_RE.search(text)
    if match is None:
        return None

    start = match.start()
    depth = 0
    in_string = False
    escape_next = False

    for index in range(start, len(text)):
        char = text[index]
        if escape_next:
            escape_next = False
            continue
        if in_string:
            if char == "\\":
                escape_next = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    return None


def _load_json(text: str) -> object | None:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


# ── Schema conversion ────────────────────────────────────────────


def _from_primary(obj: object) -> RunSummary | NotRecoverable:
    if not is_result_document(obj):
        return NotRecoverable("JSON document has no testResults array")
    return RunSummary.from_dict(obj)  # type: ignore[arg-type]


def _from_secondary(obj: object) -> RunSummary | NotRecoverable:
    """Convert a Vitest-style document, synthesizing missing counters.

    A document that already has the primary counters is taken as-is.
    Otherwise absent counters default to zero and ``success`` to "no
    failed tests".  When every counter is absent the counters are computed
    from the ``testResults`` records instead; a document with neither
    counters nor a ``testResults`` array is not recoverable.
    """
    if not isinstance(obj, dict):
        return NotRecoverable("JSON document is not an object")
    if "numFailedTestSuites" in obj:
        return _from_primary(obj)
    if not has_summary_counters(obj):
        if not is_result_document(obj):
            return NotRecoverable("JSON document has no summary counters")
        return RunSummary.from_records(
            [SuiteResult.from_dict(s) for s in obj["testResults"] if isinstance(s, dict)]
        )
    test_results = obj.get("testResults", [])
    if not isinstance(test_results, list):
        return NotRecoverable("testResults is not an array")
    return RunSummary.from_dict({**obj, "testResults": test_results})


def _normalize(raw_output: str, convert: _Converter, label: str) -> RunSummary | NotRecoverable:
    trimmed = raw_output.strip()
    if not trimmed:
        return NotRecoverable(f"Empty {label} output")

    whole = _load_json(trimmed)
    if whole is not None:
        result = convert(whole)
        if isinstance(result, NotRecoverable):
            logger.debug("%s output is JSON but not a result: %s", label, result.reason)
        return result

    extracted = extract_json_document(raw_output)
    if extracted is None:
        return NotRecoverable(f"Could not find {label} JSON in output")

    embedded = _load_json(extracted)
    if embedded is None:
        logger.debug("Extracted %s JSON failed to parse (%d chars)", label, len(extracted))
        return NotRecoverable(f"Failed to parse extracted {label} JSON")

    result = convert(embedded)
    if isinstance(result, NotRecoverable):
        logger.debug("Extracted %s JSON rejected: %s", label, result.reason)
    return result


# ── Public normalizers ───────────────────────────────────────────


def normalize_jest(
    raw_output: str,
    *,
    file_path: str = "",  # noqa: ARG001
) -> RunSummary | NotRecoverable:
    """Normalize Jest ``--json`` output (clean or embedded in log noise)."""
    return _normalize(raw_output, _from_primary, "Jest")


def normalize_vitest(
    raw_output: str,
    *,
    file_path: str = "",  # noqa: ARG001
) -> RunSummary | NotRecoverable:
    """Normalize Vitest JSON reporter output (clean or embedded in log noise)."""
    return _normalize(raw_output, _from_secondary, "Vitest")
