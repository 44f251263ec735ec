"""TAP (Test Anything Protocol) output, as written by ``node --test``.

One event per line.  Nesting arrives as indented ``# Subtest: <name>``
markers, each closed by a test point at the same indentation.  Test points
may be followed by an indented YAML diagnostic block (``---`` … ``...``)
carrying duration, error details and location.

TAP carries no file name of its own, so the caller's ``file_path`` is
attached to every record.
"""

from __future__ import annotations

import logging
import re
import textwrap
from dataclasses import dataclass, field
from typing import Any

import yaml

from tally.models.result import (
    AssertionRecord,
    AssertionStatus,
    RunSummary,
    SourceLocation,
    SuiteResult,
)
from tally.normalizers.base import NotRecoverable
from tally.utils.coerce import to_float, to_int

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────

_TEST_POINT_RE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<not_ok>not )?ok\b[ \t]*(?P<number>\d+)?[ \t]*(?:-[ \t]*)?"
    r"(?P<description>.*?)"
    r"(?:[ \t]+#[ \t]*(?P<directive>SKIP|TODO)\b[ \t]*(?P<reason>.*?))?[ \t]*$",
    re.IGNORECASE,
)
_SUBTEST_RE = re.compile(r"^(?P<indent>[ \t]*)# Subtest: (?P<name>.*?)\s*$")
_LOCATION_RE = re.compile(r":(?P<line>\d+):(?P<column>\d+)\)?$")

# Separator used by reporters that flatten nesting into the test name.
_FLAT_SEPARATOR = " > "

_FAILURE_KEYS = ("error", "message", "stack")


# ── Parse state ──────────────────────────────────────────────────


@dataclass
class _Frame:
    """A subtest that has been opened but not yet closed."""

    indent: int
    name: str
    has_children: bool = False


@dataclass
class _TestPoint:
    name: str
    ancestors: tuple[str, ...]
    ok: bool
    directive: str | None
    is_group: bool = False
    diagnostic_lines: list[str] = field(default_factory=list)
    diagnostic: dict[str, Any] = field(default_factory=dict)


# ── Public normalizer ────────────────────────────────────────────


def normalize_tap(raw_output: str, *, file_path: str = "") -> RunSummary | NotRecoverable:
    """Normalize TAP output into a single-suite ``RunSummary``."""
    points = _parse_points(raw_output)
    if not points:
        return NotRecoverable("No TAP test points found in output")

    records = [_to_record(p, file_path) for p in points if not _is_group(p)]
    return RunSummary.from_records([SuiteResult(name=file_path, assertion_results=tuple(records))])


def _parse_points(raw_output: str) -> list[_TestPoint]:
    points: list[_TestPoint] = []
    stack: list[_Frame] = []
    in_diagnostic = False

    for line in raw_output.splitlines():
        stripped = line.strip()

        if in_diagnostic:
            if stripped == "...":
                _finish_diagnostic(points[-1])
                in_diagnostic = False
            else:
                points[-1].diagnostic_lines.append(line)
            continue

        if stripped == "---" and points:
            in_diagnostic = True
            continue

        subtest = _SUBTEST_RE.match(line)
        if subtest:
            indent = _indent_width(subtest.group("indent"))
            while stack and stack[-1].indent >= indent:
                stack.pop()
            stack.append(_Frame(indent=indent, name=_unescape(subtest.group("name"))))
            continue

        point = _TEST_POINT_RE.match(line)
        if point is None:
            continue

        indent = _indent_width(point.group("indent"))
        while stack and stack[-1].indent > indent:
            stack.pop()
        closed = stack.pop() if stack and stack[-1].indent == indent else None
        if stack:
            stack[-1].has_children = True

        number = point.group("number")
        name = _unescape(point.group("description").strip()) or f"Test {number or len(points) + 1}"
        ancestors = tuple(frame.name for frame in stack)
        if not ancestors and _FLAT_SEPARATOR in name:
            *parents, name = name.split(_FLAT_SEPARATOR)
            ancestors = tuple(parents)

        directive = point.group("directive")
        points.append(
            _TestPoint(
                name=name,
                ancestors=ancestors,
                ok=point.group("not_ok") is None,
                directive=directive.lower() if directive else None,
                is_group=closed.has_children if closed else False,
            )
        )

    if in_diagnostic and points:
        _finish_diagnostic(points[-1])

    return points


def _finish_diagnostic(point: _TestPoint) -> None:
    text = textwrap.dedent("\n".join(point.diagnostic_lines))
    point.diagnostic_lines = []
    try:
        parsed = yaml.safe_load(text)
    except (yaml.YAMLError, ValueError) as exc:
        logger.debug("Unparseable TAP diagnostic for %r: %s", point.name, exc)
        return
    if isinstance(parsed, dict):
        point.diagnostic = parsed


# ── Conversion ───────────────────────────────────────────────────


def _is_group(point: _TestPoint) -> bool:
    return point.is_group or str(point.diagnostic.get("type", "")).lower() == "suite"


def _to_record(point: _TestPoint, file_path: str) -> AssertionRecord:
    if point.directive in {"skip", "todo"}:
        status = AssertionStatus.PENDING
    elif point.ok:
        status = AssertionStatus.PASSED
    else:
        status = AssertionStatus.FAILED

    diagnostic = point.diagnostic
    return AssertionRecord(
        title=point.name,
        full_name=" ".join([*point.ancestors, point.name]),
        status=status,
        duration_ms=to_float(diagnostic.get("duration_ms")),
        failure_messages=(
            _failure_messages(diagnostic) if status is AssertionStatus.FAILED else ()
        ),
        location=_location(diagnostic),
        ancestor_titles=point.ancestors,
        file_path=file_path,
    )


def _failure_messages(diagnostic: dict[str, Any]) -> tuple[str, ...]:
    messages = [
        str(diagnostic[key]).strip()
        for key in _FAILURE_KEYS
        if diagnostic.get(key) not in (None, "")
    ]
    if not messages and diagnostic:
        messages = ["\n".join(f"{key}: {value}" for key, value in diagnostic.items())]
    return tuple(messages)


def _location(diagnostic: dict[str, Any]) -> SourceLocation | None:
    if "line" in diagnostic:
        return SourceLocation.from_dict(
            {"line": diagnostic.get("line"), "column": diagnostic.get("column", 0)}
        )
    match = _LOCATION_RE.search(str(diagnostic.get("location", "")))
    if match is None:
        return None
    line = to_int(match.group("line"))
    if line < 1:
        return None
    return SourceLocation(line=line, column=to_int(match.group("column")))


def _indent_width(indent: str) -> int:
    return len(indent.expandtabs(4))


def _unescape(text: str) -> str:
    return text.replace("\\#", "#").replace("\\\\", "\\")
