"""Console reporter using Rich library for formatted CLI output.

Provides colorful, formatted output during test execution including:
- Suite headers and per-case results
- A summary table keeping permission violations, service failures,
  skips and unverifiable passes in separate columns
- A list of every failing case
"""

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table

from s3_permission_matrix.models import FailureKind, ResultStatus, SuiteResult, TestVerdict
from s3_permission_matrix.reporters.base import Reporter

STATUS_MARKUP = {
    ResultStatus.PASS: "[green]PASS[/green]",
    ResultStatus.FAIL: "[red]FAIL[/red]",
    ResultStatus.SKIP: "[yellow]SKIP[/yellow]",
    ResultStatus.ERROR: "[yellow]ERROR[/yellow]",
}

FAILURE_LABELS = {
    FailureKind.PERMISSION_VIOLATION: "permission violation",
    FailureKind.SERVICE_MALFUNCTION: "service malfunction",
    FailureKind.VERIFICATION_FAILED: "verification failed",
    FailureKind.UNEXPECTED_ERROR: "unexpected error",
}


class ConsoleReporter(Reporter):
    """Rich-based console reporter for CLI output.

    Args:
        quiet: If True, suppress per-case output (only show summary)
        console: Console to print to (a Windows-safe stdout console by default)
    """

    def __init__(self, quiet: bool = False, console: Optional[Console] = None):
        # Use legacy_windows=True for ASCII-safe output on Windows consoles
        self.console = console or Console(legacy_windows=True)
        self.quiet = quiet

    def on_suite_start(self, suite: str, case_count: int) -> None:
        if self.quiet:
            return
        self.console.print()
        self.console.print(
            Rule(f"[bold cyan]Suite: {suite} ({case_count} cases)[/bold cyan]", style="cyan", characters="-")
        )

    def on_case_complete(self, suite: str, verdict: TestVerdict) -> None:
        """Displays a status indicator with case details."""
        if self.quiet:
            return

        status_text = STATUS_MARKUP[verdict.status]
        if verdict.unverifiable:
            status_text += " [dim](unverified)[/dim]"

        self.console.print(
            f"  [{status_text}] {verdict.test_id}: {escape(verdict.description)} "
            f"[dim](expected {verdict.expected_outcome}, got {verdict.actual_outcome.label()})[/dim]"
        )

        if verdict.message and verdict.status != ResultStatus.PASS:
            self.console.print(f"     [dim]{escape(verdict.message)}[/dim]")

    def on_suite_complete(self, result: SuiteResult) -> None:
        status = STATUS_MARKUP[result.status]
        duration_str = ""
        if result.duration_seconds > 0:
            duration_str = f" in {result.duration_seconds:.1f}s"

        self.console.print(
            f"{result.suite}: [bold]{status}[/bold] "
            f"({result.count(ResultStatus.PASS)}/{len(result.verdicts)} passed){duration_str}"
        )

        if result.error_message:
            self.console.print(f"   [dim red]{escape(result.error_message)}[/dim red]")

    def on_run_complete(self, result) -> None:
        """Displays the summary table and the list of failures."""
        if not result.suites:
            self.console.print("[yellow]No results to display.[/yellow]")
            return

        self.console.print()
        self.console.print(
            Rule("[bold]Permission Matrix Summary[/bold]", style="magenta", characters="-")
        )

        table = Table(
            title="",
            show_header=True,
            header_style="bold magenta",
            border_style="dim",
            box=box.ASCII,
        )

        # no_wrap prevents Unicode ellipsis on Windows
        table.add_column("Suite", style="cyan", no_wrap=True)
        for header in ("Pass", "Fail", "Skip", "Error", "Perm", "Service", "Verify", "Unverif."):
            table.add_column(header, justify="right", no_wrap=True)
        table.add_column("Status", justify="center", no_wrap=True)

        for name, suite in result.suites.items():
            table.add_row(
                name,
                str(suite.count(ResultStatus.PASS)),
                _highlight(suite.count(ResultStatus.FAIL), "red"),
                _highlight(suite.count(ResultStatus.SKIP), "yellow"),
                _highlight(suite.count(ResultStatus.ERROR), "yellow"),
                _highlight(suite.count_failures(FailureKind.PERMISSION_VIOLATION), "bold red"),
                _highlight(suite.count_failures(FailureKind.SERVICE_MALFUNCTION), "red"),
                _highlight(suite.count_failures(FailureKind.VERIFICATION_FAILED), "red"),
                _highlight(suite.unverifiable_count, "yellow"),
                STATUS_MARKUP[suite.status],
            )

        self.console.print(table)

        failures = [v for v in result.verdicts if v.status in (ResultStatus.FAIL, ResultStatus.ERROR)]
        if failures:
            self.console.print()
            self.console.print("[bold red]Failures[/bold red]")
            for verdict in failures:
                kind = FAILURE_LABELS.get(verdict.failure_kind, "error")
                self.console.print(
                    f"  {verdict.operation} {verdict.test_id} {escape(f'[{verdict.profile}]')} "
                    f"[red]{kind}[/red]: {escape(verdict.message or '')}"
                )

        summary = result.summary()
        overall = "[bold green]PASSED[/bold green]" if result.all_passed else "[bold red]FAILED[/bold red]"
        self.console.print()
        self.console.print(
            f"{overall}: {summary['passed']} passed, {summary['failed']} failed, "
            f"{summary['skipped']} skipped, {summary['errors']} errors "
            f"in {result.total_duration:.1f}s"
        )
        self.console.print()


def _highlight(count: int, style: str) -> str:
    return f"[{style}]{count}[/{style}]" if count else "0"
