"""Tests for the reconciliation engine."""

from __future__ import annotations

import json
import logging

import pytest

from tally.config import ReconcileConfig
from tally.engine import normalize, reconcile
from tally.fallback import UNPARSEABLE_MESSAGE
from tally.models.identifier import DeclaredTestIdentifier
from tally.models.result import RunSummary
from tally.normalizers import Framework, NotRecoverable
from tally.normalizers.structured import build_marker
from tally.reporting.verdicts import CollectingSink, Verdict, VerdictKind

_CLEAN_OUTPUT = (
    '{"numFailedTestSuites":0,"testResults":[{"assertionResults":'
    '[{"title":"adds","fullName":"adds","status":"passed","duration":5}]}]}'
)


@pytest.fixture
def adds() -> list[DeclaredTestIdentifier]:
    return [DeclaredTestIdentifier(id="adds", label="adds")]


# ── End-to-end ───────────────────────────────────────────────────


def test_clean_json(adds: list[DeclaredTestIdentifier]) -> None:
    verdicts = reconcile(_CLEAN_OUTPUT, adds)
    assert verdicts == [Verdict("adds", VerdictKind.PASSED, duration_ms=5.0)]


def test_wrapped_json_gives_same_verdict(adds: list[DeclaredTestIdentifier]) -> None:
    wrapped = f"[INFO] starting\n{_CLEAN_OUTPUT}\n"
    assert reconcile(wrapped, adds) == reconcile(_CLEAN_OUTPUT, adds)


def test_binary_garbage_is_errored(caplog: pytest.LogCaptureFixture) -> None:
    identifiers = [
        DeclaredTestIdentifier(id="a", label="a"),
        DeclaredTestIdentifier(id="b", label="b"),
    ]
    garbage = "\x00\x01\xfe\xff\x89\x1a\n\x03\x04"
    with caplog.at_level(logging.WARNING):
        verdicts = reconcile(garbage, identifiers)
    assert [v.kind for v in verdicts] == [VerdictKind.ERRORED, VerdictKind.ERRORED]
    assert all(v.message == UNPARSEABLE_MESSAGE for v in verdicts)
    assert "Could not normalize jest output" in caplog.text


def test_empty_run_marks_everything_skipped(adds: list[DeclaredTestIdentifier]) -> None:
    output = json.dumps({"numFailedTestSuites": 0, "testResults": []})
    assert reconcile(output, adds) == [Verdict("adds", VerdictKind.SKIPPED)]


def test_one_verdict_per_identifier_in_declaration_order() -> None:
    output = json.dumps(
        {
            "testResults": [
                {
                    "name": "m.test.js",
                    "assertionResults": [
                        {"title": "b", "status": "failed", "failureMessages": ["bad"]},
                        {"title": "a", "status": "passed"},
                    ],
                }
            ]
        }
    )
    identifiers = [
        DeclaredTestIdentifier(id="a", label="a"),
        DeclaredTestIdentifier(id="b", label="b"),
        DeclaredTestIdentifier(id="c", label="c"),
    ]
    verdicts = reconcile(output, identifiers)
    assert [(v.identifier_id, v.kind) for v in verdicts] == [
        ("a", VerdictKind.PASSED),
        ("b", VerdictKind.FAILED),
        ("c", VerdictKind.SKIPPED),
    ]


def test_sink_receives_every_verdict(adds: list[DeclaredTestIdentifier]) -> None:
    sink = CollectingSink()
    verdicts = reconcile(_CLEAN_OUTPUT, adds, sink)
    assert sink.verdicts == verdicts


def test_tap_framework() -> None:
    output = "TAP version 13\n# Subtest: adds\nok 1 - adds\n  ---\n  duration_ms: 2\n  ...\n"
    verdicts = reconcile(
        output,
        [DeclaredTestIdentifier(id="adds", label="adds")],
        framework=Framework.NODE_TEST,
        file_path="math.test.js",
    )
    assert verdicts == [Verdict("adds", VerdictKind.PASSED, duration_ms=2.0)]


def test_settings_extend_fallback_indicators(adds: list[DeclaredTestIdentifier]) -> None:
    settings = ReconcileConfig(extra_pass_indicators=["all good"])
    verdicts = reconcile("runner says: all good", adds, settings=settings)
    assert verdicts[0].kind is VerdictKind.PASSED


# ── Structured results ───────────────────────────────────────────


def test_structured_results_take_precedence(adds: list[DeclaredTestIdentifier]) -> None:
    payload = {
        "testResults": [
            {"assertionResults": [{"title": "adds", "status": "failed", "failureMessages": ["x"]}]}
        ]
    }
    output = f"{_CLEAN_OUTPUT}\n{build_marker('run-1', 'results', payload)}"
    verdicts = reconcile(output, adds, session_id="run-1")
    assert verdicts[0].kind is VerdictKind.FAILED
    assert verdicts[0].message == "x"


def test_structured_results_missing_falls_back_to_normalizer() -> None:
    summary = normalize(_CLEAN_OUTPUT, session_id="run-1")
    assert isinstance(summary, RunSummary)
    assert summary.records()[0].title == "adds"


def test_normalize_not_recoverable() -> None:
    assert isinstance(normalize("nothing", framework=Framework.VITEST), NotRecoverable)


# ── Hostile output ───────────────────────────────────────────────


def test_vitest_results_without_counters_keep_failures() -> None:
    document = {
        "testResults": [
            {
                "assertionResults": [
                    {"title": "adds", "status": "failed", "failureMessages": []},
                    {"title": "subs", "status": "passed"},
                ]
            }
        ]
    }
    identifiers = [
        DeclaredTestIdentifier(id="1", label="adds"),
        DeclaredTestIdentifier(id="2", label="subs"),
        DeclaredTestIdentifier(id="3", label="never ran"),
    ]
    verdicts = reconcile(
        "[INFO] starting\n" + json.dumps(document), identifiers, framework=Framework.VITEST
    )
    assert [(v.identifier_id, v.kind) for v in verdicts] == [
        ("1", VerdictKind.FAILED),
        ("2", VerdictKind.PASSED),
        ("3", VerdictKind.SKIPPED),
    ]


@pytest.mark.parametrize(
    "raw",
    [
        "1" * 5000,
        'noise\n{"testResults":[],"numTotalTests":' + "9" * 5000 + "}",
    ],
)
def test_oversized_integers_do_not_raise(raw: str, adds: list[DeclaredTestIdentifier]) -> None:
    verdicts = reconcile(raw, adds)
    assert len(verdicts) == 1
    assert verdicts[0].kind is not VerdictKind.PASSED


def test_blank_pass_indicator_is_not_evidence(adds: list[DeclaredTestIdentifier]) -> None:
    settings = ReconcileConfig(extra_pass_indicators=["", "  "])
    verdicts = reconcile("no recognizable output here", adds, settings=settings)
    assert verdicts[0].kind is VerdictKind.ERRORED
