"""Tests for the tally CLI commands."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest
import yaml
from click.testing import CliRunner

from tally import __version__
from tally.cli import cli

if TYPE_CHECKING:
    from pathlib import Path

_PASSING = json.dumps(
    {
        "numFailedTestSuites": 0,
        "numFailedTests": 0,
        "testResults": [
            {
                "name": "math.test.js",
                "assertionResults": [
                    {"title": "adds", "fullName": "math adds", "status": "passed", "duration": 4},
                    {"title": "subtracts", "fullName": "math subtracts", "status": "passed"},
                ],
            }
        ],
    }
)

_FAILING = json.dumps(
    {
        "numFailedTestSuites": 1,
        "numFailedTests": 1,
        "testResults": [
            {
                "name": "math.test.js",
                "assertionResults": [
                    {
                        "ancestorTitles": ["math"],
                        "title": "adds",
                        "status": "failed",
                        "failureMessages": ["expected 3"],
                        "location": {"line": 4, "column": 2},
                    },
                ],
            }
        ],
    }
)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "tests.yml").write_text(
        yaml.safe_dump(
            [
                {"id": "t-adds", "label": "math adds", "line_range": [3, 5]},
                {"id": "t-sub", "label": "subtracts"},
            ]
        ),
        encoding="utf-8",
    )
    (tmp_path / "passing.json").write_text(_PASSING, encoding="utf-8")
    (tmp_path / "failing.json").write_text(_FAILING, encoding="utf-8")
    return tmp_path


def _reconcile_args(project: Path, output: str, *extra: str) -> list[str]:
    return [
        "reconcile",
        str(project / output),
        "--tests",
        str(project / "tests.yml"),
        "--path",
        str(project),
        *extra,
    ]


def test_version() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "reconcile" in result.output
    assert "normalize" in result.output


# ── reconcile ────────────────────────────────────────────────────


class TestReconcileCommand:
    def test_table_output(self, project: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, _reconcile_args(project, "passing.json"))
        assert result.exit_code == 0, result.output
        assert "math adds" in result.output
        assert "passed" in result.output

    def test_json_output(self, project: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, _reconcile_args(project, "passing.json", "--json-output"))
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["tool"] == "tally"
        assert data["framework"] == "jest"
        assert data["summary"] == {
            "total": 2,
            "passed": 2,
            "failed": 0,
            "skipped": 0,
            "errored": 0,
        }
        assert data["verdicts"][0] == {
            "id": "t-adds",
            "status": "passed",
            "duration_ms": 4.0,
            "message": "",
        }

    def test_failure_exits_non_zero(self, project: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, _reconcile_args(project, "failing.json", "--json-output"))
        assert result.exit_code == 1
        data = json.loads(result.output)
        failed = data["verdicts"][0]
        assert failed["status"] == "failed"
        assert failed["message"] == "expected 3"
        assert failed["location"] == {"line": 3, "column": 2}
        assert data["verdicts"][1]["status"] == "skipped"

    def test_reads_stdin(self, project: Path) -> None:
        runner = CliRunner()
        args = ["reconcile", "-", "--tests", str(project / "tests.yml"), "--path", str(project)]
        result = runner.invoke(cli, [*args, "--json-output"], input=_PASSING)
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["summary"]["passed"] == 2

    def test_unknown_framework(self, project: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(
            cli, _reconcile_args(project, "passing.json", "--framework", "mocha")
        )
        assert result.exit_code == 2
        assert "Unknown framework" in result.output

    def test_framework_from_config(self, project: Path) -> None:
        (project / ".tally.yml").write_text("reconcile:\n  framework: node\n", encoding="utf-8")
        (project / "out.tap").write_text("TAP version 13\nok 1 - subtracts\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(cli, _reconcile_args(project, "out.tap", "--json-output"))
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["framework"] == "node-test"
        assert [v["status"] for v in data["verdicts"]] == ["skipped", "passed"]

    def test_tests_file_must_be_a_list(self, project: Path) -> None:
        (project / "bad.yml").write_text("tests: 3\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(
            cli,
            [
                "reconcile",
                str(project / "passing.json"),
                "--tests",
                str(project / "bad.yml"),
                "--path",
                str(project),
            ],
        )
        assert result.exit_code == 2
        assert "must contain a list of tests" in result.output


# ── normalize ────────────────────────────────────────────────────


class TestNormalizeCommand:
    def test_prints_canonical_model(self, project: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(
            cli, ["normalize", str(project / "passing.json"), "--path", str(project)]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["numTotalTests"] == 0
        assert data["testResults"][0]["assertionResults"][0]["fullName"] == "math adds"

    def test_not_recoverable(self, project: Path) -> None:
        (project / "noise.txt").write_text("nothing to see", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(
            cli, ["normalize", str(project / "noise.txt"), "--path", str(project)]
        )
        assert result.exit_code == 1
        assert "Could not normalize jest output" in result.output


# ── config ───────────────────────────────────────────────────────


class TestConfigCommands:
    def test_show_json(self, tmp_path: Path) -> None:
        (tmp_path / ".tally.yml").write_text("reconcile:\n  preview_chars: 64\n", encoding="utf-8")
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show", "--path", str(tmp_path), "--json-output"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["reconcile"]["preview_chars"] == 64
        assert "raw" not in data

    def test_show_yaml(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show", "--path", str(tmp_path)])
        assert result.exit_code == 0
        assert "preview_chars: 500" in result.output

    def test_validate_ok(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", "--path", str(tmp_path)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_validate_errors(self, tmp_path: Path) -> None:
        (tmp_path / ".tally.yml").write_text(
            "reconcile:\n  framework: mocha\nlogging:\n  level: LOUD\n", encoding="utf-8"
        )
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", "--path", str(tmp_path)])
        assert result.exit_code == 1
        assert "2 configuration error(s)" in result.output
