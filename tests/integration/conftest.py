"""Shared fixtures for integration tests."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

# ── Marker registration ──────────────────────────────────────────


def pytest_configure(config: pytest.Config) -> None:
    """Register the ``integration`` marker."""
    config.addinivalue_line("markers", "integration: integration tests")


# ── Runner output fixtures ───────────────────────────────────────


def _assertion(
    title: str,
    status: str,
    *,
    ancestors: list[str],
    duration: float | None = None,
    messages: list[str] | None = None,
    line: int | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {
        "ancestorTitles": ancestors,
        "title": title,
        "fullName": " ".join([*ancestors, title]),
        "status": status,
        "failureMessages": messages or [],
    }
    if duration is not None:
        data["duration"] = duration
    if line is not None:
        data["location"] = {"line": line, "column": 5}
    return data


@pytest.fixture()
def jest_monorepo_output() -> str:
    """Jest ``--json`` output wrapped in Nx log lines."""
    report = {
        "numFailedTestSuites": 1,
        "numFailedTests": 2,
        "numPassedTestSuites": 0,
        "numPassedTests": 4,
        "numPendingTestSuites": 0,
        "numPendingTests": 1,
        "numTotalTestSuites": 1,
        "numTotalTests": 7,
        "success": False,
        "testResults": [
            {
                "name": "/repo/packages/calc/src/calc.test.ts",
                "assertionResults": [
                    _assertion("adds 1 + 1", "passed", ancestors=["calc"], duration=1, line=4),
                    _assertion("adds 2 + 2", "passed", ancestors=["calc"], duration=2, line=4),
                    _assertion(
                        "adds 2 + 3",
                        "failed",
                        ancestors=["calc"],
                        duration=3,
                        messages=[
                            "Error: expect(received).toBe(expected)\n\nExpected: 5\nReceived: 6"
                        ],
                        line=4,
                    ),
                    _assertion("resets", "passed", ancestors=["calc"], duration=1, line=10),
                    _assertion(
                        "resets",
                        "failed",
                        ancestors=["calc", "memory"],
                        messages=['{ } mismatch "quoted"'],
                        line=21,
                    ),
                    _assertion("divides", "pending", ancestors=["calc"]),
                    _assertion("handles {braces}", "passed", ancestors=["calc"], duration=0.5),
                ],
            }
        ],
    }
    return (
        "> nx run calc:test --json\n"
        "[INFO] Running target test for project calc\n"
        f"{json.dumps(report)}\n"
        "\n >  NX   Successfully ran target test for project calc\n"
    )


@pytest.fixture()
def tests_file(tmp_path: Path) -> Path:
    """Declared tests for ``calc.test.ts`` as the editor's test tree sees them."""
    path = tmp_path / "tests.json"
    path.write_text(
        json.dumps(
            [
                {
                    "id": "calc/adds",
                    "label": "adds %i + %i",
                    "line_range": [3, 3],
                    "ancestors": ["calc"],
                },
                {
                    "id": "calc/resets",
                    "label": "resets",
                    "line_range": [9, 11],
                    "ancestors": ["calc"],
                },
                {
                    "id": "calc/memory/resets",
                    "label": "resets",
                    "line_range": [20, 22],
                    "ancestors": ["calc", "memory"],
                },
                {"id": "calc/divides", "label": "divides", "line_range": [14, 16]},
                {"id": "calc/braces", "label": "handles {braces}"},
                {"id": "calc/missing", "label": "multiplies"},
            ]
        ),
        encoding="utf-8",
    )
    return path
