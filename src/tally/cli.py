"""tally CLI — top-level command group."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, TextIO

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from tally import __version__
from tally.config import TallyConfig, load_config, validate_config
from tally.engine import normalize, reconcile
from tally.models.identifier import DeclaredTestIdentifier
from tally.normalizers import Framework, NotRecoverable
from tally.reporting.json_reporter import JSONReporter
from tally.reporting.terminal import reporter
from tally.reporting.verdicts import VerdictKind

logger = logging.getLogger(__name__)
console = Console()

_FAILING_KINDS = frozenset({VerdictKind.FAILED, VerdictKind.ERRORED})

_path_option = click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory (where .tally.yml lives).",
)


def _configure_logging(level: str) -> None:
    """Route log records through rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _load_project_config(ctx: click.Context, path: str) -> TallyConfig:
    """Load ``.tally.yml`` and set up logging from it unless ``--log-level`` was given."""
    try:
        config = load_config(path)
    except (OSError, yaml.YAMLError) as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e

    level = ctx.obj.get("log_level") or config.logging.level
    if level.upper() not in logging.getLevelNamesMapping():
        reporter.print_warning(f"Unknown log level {level!r}, using WARNING")
        level = "WARNING"
    _configure_logging(level)
    return config


def _resolve_framework(name: str | None, config: TallyConfig) -> Framework:
    try:
        return Framework.from_name(name or config.reconcile.framework)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="'--framework'") from e


def _load_identifiers(tests_file: str) -> list[DeclaredTestIdentifier]:
    """Read declared tests from a YAML or JSON file.

    The document is either a list of test mappings or a mapping with a
    ``tests`` list.
    """
    try:
        parsed = yaml.safe_load(Path(tests_file).read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise click.BadParameter(
            f"Could not parse {tests_file}: {e}", param_hint="'--tests'"
        ) from e

    if isinstance(parsed, dict):
        parsed = parsed.get("tests")
    if not isinstance(parsed, list):
        raise click.BadParameter(
            f"{tests_file} must contain a list of tests", param_hint="'--tests'"
        )

    return [DeclaredTestIdentifier.from_dict(item) for item in parsed if isinstance(item, dict)]


def _config_to_dict(config: TallyConfig) -> dict[str, Any]:
    """Convert TallyConfig to dictionary for display."""
    result = asdict(config)
    # Remove the raw field as it's redundant
    result.pop("raw", None)
    return result


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"], case_sensitive=False),
    default=None,
    help="Override the log level from .tally.yml.",
)
@click.version_option(version=__version__, prog_name="tally")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """tally: reconcile test runner output with the tests you declared."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command("reconcile")
@click.argument("output_file", type=click.File("r", encoding="utf-8", errors="replace"))
@click.option(
    "--tests",
    "tests_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML or JSON list of declared tests (id, label, line_range, ancestors).",
)
@click.option("--framework", default=None, help="jest, vitest, node-test, bun or deno.")
@click.option("--file-path", default="", help="Test file the output belongs to.")
@click.option("--session-id", default=None, help="Read structured results for this session.")
@click.option("--json-output", "as_json", is_flag=True, help="Output raw JSON instead of tables.")
@_path_option
@click.pass_context
def reconcile_command(  # noqa: PLR0913
    ctx: click.Context,
    output_file: TextIO,
    tests_file: str,
    framework: str | None,
    file_path: str,
    session_id: str | None,
    path: str,
    *,
    as_json: bool,
) -> None:
    """Reconcile captured runner output with declared tests.

    OUTPUT_FILE is the captured runner output, or ``-`` for stdin.  Exits
    with status 1 when any test failed or could not be determined.

    Example:
      tally reconcile jest-output.txt --tests tests.yml --framework jest
    """
    config = _load_project_config(ctx, path)
    selected = _resolve_framework(framework, config)
    identifiers = _load_identifiers(tests_file)
    raw_output = output_file.read()

    verdicts = reconcile(
        raw_output,
        identifiers,
        framework=selected,
        file_path=file_path,
        session_id=session_id,
        settings=config.reconcile,
    )

    if as_json:
        click.echo(JSONReporter().generate_string(verdicts, extra={"framework": selected.value}))
    else:
        reporter.print_header(
            f"Reconciled {len(identifiers)} test(s) from {selected.value} output"
        )
        reporter.print_verdicts(verdicts, identifiers)
        reporter.print_verdict_summary(verdicts)

    if any(v.kind in _FAILING_KINDS for v in verdicts):
        raise SystemExit(1)


@cli.command("normalize")
@click.argument("output_file", type=click.File("r", encoding="utf-8", errors="replace"))
@click.option("--framework", default=None, help="jest, vitest, node-test, bun or deno.")
@click.option("--file-path", default="", help="Test file the output belongs to.")
@click.option("--session-id", default=None, help="Read structured results for this session.")
@_path_option
@click.pass_context
def normalize_command(  # noqa: PLR0913
    ctx: click.Context,
    output_file: TextIO,
    framework: str | None,
    file_path: str,
    session_id: str | None,
    path: str,
) -> None:
    """Print the canonical result model for captured runner output as JSON."""
    config = _load_project_config(ctx, path)
    selected = _resolve_framework(framework, config)

    summary = normalize(
        output_file.read(), framework=selected, file_path=file_path, session_id=session_id
    )
    if isinstance(summary, NotRecoverable):
        reporter.print_error(f"Could not normalize {selected.value} output: {summary.reason}")
        raise SystemExit(1)

    click.echo(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))


@cli.group("config")
def config_group() -> None:
    """Inspect `.tally.yml` configuration."""


@config_group.command("show")
@_path_option
@click.option(
    "--json-output",
    "as_json",
    is_flag=True,
    help="Output as JSON instead of YAML.",
)
def config_show(path: str, *, as_json: bool) -> None:
    """Display resolved configuration.

    Example:
      tally config show
      tally config show --json-output
    """
    try:
        config = load_config(path)
    except (OSError, yaml.YAMLError) as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e

    config_dict = _config_to_dict(config)

    if as_json:
        click.echo(json.dumps(config_dict, indent=2))
    else:
        console.print()
        console.print("[bold cyan]Configuration:[/bold cyan]")
        console.print()
        click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@_path_option
def config_validate(path: str) -> None:
    """Validate `.tally.yml` configuration.

    Example:
      tally config validate
    """
    try:
        config = load_config(path)
    except (OSError, yaml.YAMLError) as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e

    errors = validate_config(config)

    if not errors:
        reporter.print_success("Configuration is valid!")
        return

    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    console.print()

    for idx, error in enumerate(errors, start=1):
        console.print(f"  {idx}. [red]{error}[/red]")

    console.print()
    console.print(
        "[dim]Fix these errors in .tally.yml and run 'tally config validate' again.[/dim]"
    )
    raise click.Abort
