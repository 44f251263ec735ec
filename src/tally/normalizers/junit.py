"""JUnit XML reports, as written by ``bun test`` and ``deno test``.

Both runners write ``<testsuites>``/``<testsuite>``/``<testcase>`` reports.
Test cases are grouped into one suite per ``file`` attribute.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from defusedxml import DefusedXmlException, ElementTree
from defusedxml.ElementTree import ParseError as DefusedParseError

from tally.models.result import (
    AssertionRecord,
    AssertionStatus,
    RunSummary,
    SourceLocation,
    SuiteResult,
)
from tally.normalizers.base import NotRecoverable
from tally.utils.coerce import to_float, to_int

if TYPE_CHECKING:
    from xml.etree.ElementTree import Element as XmlElement

logger = logging.getLogger(__name__)

_UNKNOWN_FILE = "unknown"
_MS_PER_SECOND = 1000.0


def normalize_junit(raw_output: str, *, file_path: str = "") -> RunSummary | NotRecoverable:
    """Normalize a JUnit XML report.

    *file_path* names the suite for test cases without a ``file`` attribute.
    """
    if "<testsuite" not in raw_output:
        return NotRecoverable("No <testsuite> element in output")

    # Runners may log around the report; parse from the prolog or root element.
    start = min(i for i in (raw_output.find("<?xml"), raw_output.find("<testsuite")) if i != -1)
    end = raw_output.rfind(">") + 1
    try:
        root = ElementTree.fromstring(raw_output[start:end])
    except (DefusedParseError, DefusedXmlException, ValueError) as exc:
        logger.debug("JUnit report failed to parse: %s", exc)
        return NotRecoverable(f"Failed to parse JUnit XML: {exc}")

    by_file: dict[str, list[AssertionRecord]] = {}
    for case in root.iter():
        if _local_tag(case) != "testcase":
            continue
        name = case.get("name")
        if not name:
            continue
        file_name = case.get("file") or file_path or _UNKNOWN_FILE
        by_file.setdefault(file_name, []).append(_to_record(case, name, file_name))

    suites = [
        SuiteResult(name=name, assertion_results=tuple(records))
        for name, records in by_file.items()
    ]
    return RunSummary.from_records(suites)


def _to_record(case: XmlElement, name: str, file_name: str) -> AssertionRecord:
    failure = _first_child(case, ("failure", "error"))
    if failure is not None:
        status = AssertionStatus.FAILED
        message = failure.get("message", "")
        text = (failure.text or "").strip()
        joined = "\n".join(part for part in (message, text) if part)
        messages: tuple[str, ...] = (joined,) if joined else ()
    elif _first_child(case, ("skipped",)) is not None:
        status = AssertionStatus.PENDING
        messages = ()
    else:
        status = AssertionStatus.PASSED
        messages = ()

    seconds = to_float(case.get("time"))
    line = to_int(case.get("line"))
    return AssertionRecord(
        title=name,
        full_name=name,
        status=status,
        duration_ms=seconds * _MS_PER_SECOND if seconds is not None else None,
        failure_messages=messages,
        location=SourceLocation(line=line) if line > 0 else None,
        file_path=file_name,
    )


def _first_child(elem: XmlElement, tags: tuple[str, ...]) -> XmlElement | None:
    for child in elem:
        if _local_tag(child) in tags:
            return child
    return None


def _local_tag(elem: XmlElement) -> str:
    tag = elem.tag if isinstance(elem.tag, str) else ""
    return tag.split("}")[-1] if "}" in tag else tag
