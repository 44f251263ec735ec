"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from tally.reporting.verdicts import VerdictKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tally.models.identifier import DeclaredTestIdentifier
    from tally.reporting.verdicts import Verdict

console = Console()

_PERFECT_RATE = 100.0
_GOOD_RATE = 80.0
_MS_PER_SECOND = 1000.0
_SECONDS_PER_MINUTE = 60.0

# Display limits for truncation
_MAX_MESSAGE_LENGTH = 80

_KIND_STYLES: dict[VerdictKind, tuple[str, str]] = {
    VerdictKind.PASSED: ("green", "✓ passed"),
    VerdictKind.FAILED: ("red", "✗ failed"),
    VerdictKind.SKIPPED: ("yellow", "⊘ skipped"),
    VerdictKind.ERRORED: ("magenta", "⚠ errored"),
}


def _pass_rate_color(rate: float) -> str:
    """Return a Rich color name for a given pass-rate percentage."""
    if rate >= _PERFECT_RATE:
        return "green"
    if rate >= _GOOD_RATE:
        return "yellow"
    return "red"


def _format_duration(duration_ms: float | None) -> str:
    """Format a duration in milliseconds to a human-readable string."""
    if duration_ms is None:
        return "-"
    seconds = duration_ms / _MS_PER_SECOND
    if seconds >= _SECONDS_PER_MINUTE:
        return f"{seconds / _SECONDS_PER_MINUTE:.1f}m"
    if seconds >= 1:
        return f"{seconds:.1f}s"
    return f"{duration_ms:.0f}ms"


def _first_line(message: str) -> str:
    line = message.strip().splitlines()[0] if message.strip() else ""
    if len(line) > _MAX_MESSAGE_LENGTH:
        line = line[: _MAX_MESSAGE_LENGTH - 3] + "..."
    return line


class CLIReporter:
    """Rich terminal output reporter for reconciliation results."""

    def __init__(self) -> None:
        """Initialize the CLI reporter."""
        self.console = console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    def print_verdicts(
        self,
        verdicts: Sequence[Verdict],
        identifiers: Sequence[DeclaredTestIdentifier],
    ) -> None:
        """Print one table row per verdict, labelled with the declared test name."""
        labels = {identifier.id: identifier.label for identifier in identifiers}

        table = Table(title="Test Verdicts", title_style="bold cyan")
        table.add_column("Test", style="bold")
        table.add_column("Status", justify="center")
        table.add_column("Duration", justify="right")
        table.add_column("Message")

        for verdict in verdicts:
            color, text = _KIND_STYLES[verdict.kind]
            table.add_row(
                labels.get(verdict.identifier_id, verdict.identifier_id),
                f"[{color}]{text}[/{color}]",
                _format_duration(verdict.duration_ms),
                _first_line(verdict.message),
            )

        self.console.print(table)

    def print_verdict_summary(self, verdicts: Sequence[Verdict]) -> None:
        """Print totals per verdict kind with the pass rate."""
        total = len(verdicts)
        if total == 0:
            self.console.print("  [dim]No tests declared[/dim]")
            return

        counts = {kind: 0 for kind in VerdictKind}
        for verdict in verdicts:
            counts[verdict.kind] += 1

        pass_rate = counts[VerdictKind.PASSED] / total * 100
        rate_color = _pass_rate_color(pass_rate)

        parts = [
            f"[{_KIND_STYLES[kind][0]}]{counts[kind]} {kind.value}[/{_KIND_STYLES[kind][0]}]"
            for kind in VerdictKind
            if counts[kind]
        ]
        self.console.print()
        self.console.print(
            f"  [bold]{total}[/bold] tests  {'  '.join(parts)}  "
            f"[bold {rate_color}]{pass_rate:.0f}%[/bold {rate_color}] pass rate"
        )
        self.console.print()


# Singleton instance for easy import
reporter = CLIReporter()
