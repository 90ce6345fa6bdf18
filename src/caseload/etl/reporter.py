"""
Console reporter for ingestion runs.

Formats run results using Rich for clear, colored output.
"""

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from caseload.etl.pipeline import FileOutcome, RunResult
from caseload.warehouse.coercion import CoercionOutcome


class ConsoleReporter:
    """Formats and displays ingestion results to the console."""

    def __init__(self, console: Console) -> None:
        """
        Initialize console reporter.

        Args:
            console: Rich Console instance for output.
        """
        self.console = console

    def print_result(self, result: RunResult) -> None:
        """
        Print per-file and per-column outcomes, then a summary.

        Args:
            result: Result of an ingestion run.
        """
        self.print_files(result.files)
        if result.coercions:
            self.console.print()
            self.print_coercions(result.coercions)
        self._print_summary(result)
        self._print_detailed_errors(result.files)

    def print_files(self, files: list[FileOutcome]) -> None:
        table = Table(title="Ingested Files", show_header=True)
        table.add_column("File", style="cyan", no_wrap=True)
        table.add_column("Table", style="blue")
        table.add_column("Status", justify="center")
        table.add_column("Rows", justify="right")
        table.add_column("Columns", justify="right")
        table.add_column("Time", justify="right", style="dim")

        for outcome in files:
            table.add_row(
                escape(outcome.locator),
                outcome.table,
                self._format_state(outcome),
                str(outcome.rows_loaded) if outcome.committed else "-",
                str(len(outcome.columns_loaded)) if outcome.columns_loaded else "-",
                f"{outcome.duration_seconds:.2f}s",
            )

        self.console.print(table)

    def print_coercions(self, coercions: list[CoercionOutcome]) -> None:
        table = Table(title="Date Columns", show_header=True)
        table.add_column("Table", style="blue")
        table.add_column("Column", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Details", style="dim")

        for outcome in coercions:
            table.add_row(
                outcome.table,
                outcome.column,
                self._format_coercion(outcome),
                escape(outcome.error or ""),
            )

        self.console.print(table)

    def _format_state(self, outcome: FileOutcome) -> str:
        if outcome.committed:
            return "[green]Committed[/green]"
        return "[red]Failed[/red]"

    def _format_coercion(self, outcome: CoercionOutcome) -> str:
        if outcome.status == "converted":
            return "[green]Converted[/green]"
        if outcome.status == "already_date":
            return "[green]Already DATE[/green]"
        if outcome.status == "failed":
            return "[red]Left as text[/red]"
        return "[yellow]Skipped[/yellow]"

    def _print_summary(self, result: RunResult) -> None:
        self.console.print()
        self.console.print(f"[bold]Summary (job {result.job_id}):[/bold]")
        self.console.print(f"  Files: {len(result.files)}")
        self.console.print(f"  [green]Committed: {result.n_committed}[/green]")
        self.console.print(f"  [red]Failed: {result.n_failed}[/red]")
        self.console.print(f"  Rows loaded: {result.rows_loaded}")

    def _print_detailed_errors(self, files: list[FileOutcome]) -> None:
        """Print the error of every failed file."""
        failed = [f for f in files if not f.committed]
        if not failed:
            return

        self.console.print()
        self.console.print("[bold red]File Errors:[/bold red]")
        for outcome in failed:
            self.console.print(
                f"  [bold]{escape(outcome.locator)}[/bold] -> {outcome.table}: "
                f"{escape(outcome.error or '')}"
            )
