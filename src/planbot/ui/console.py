"""Rich-powered console output for planbot."""

from __future__ import annotations

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table

from planbot import __version__
from planbot.github.plan_bot import PostResult
from planbot.pipeline.outcomes import OutcomeRecord, StepOutcome

OUTCOME_STYLES = {
    StepOutcome.SUCCESS: "green",
    StepOutcome.FAILURE: "red",
    StepOutcome.CANCELLED: "yellow",
    StepOutcome.SKIPPED: "dim",
}


class Console:
    """Terminal output for planbot using Rich."""

    def __init__(self) -> None:
        self.console = RichConsole()

    def banner(self) -> None:
        self.console.print(
            Panel(
                f"[bold cyan]planbot[/bold cyan] [dim]v{__version__}[/dim]\n"
                "[dim]Terraform plans, posted where reviewers read them[/dim]",
                border_style="cyan",
                padding=(1, 2),
            )
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]![/yellow] {message}")

    def info(self, message: str) -> None:
        self.console.print(f"[blue]i[/blue] {message}")

    def show_outcomes(self, record: OutcomeRecord) -> None:
        """Display step outcomes in a table."""
        table = Table(title="Terraform Steps", border_style="cyan")
        table.add_column("Step", style="bold")
        table.add_column("Outcome", justify="right")

        for name, outcome in record.steps.items():
            style = OUTCOME_STYLES.get(outcome, "")
            table.add_row(name, f"[{style}]{outcome.value}[/{style}]")

        self.console.print(table)

    def show_post_results(self, results: list[PostResult]) -> None:
        """Display one row per posted comment."""
        table = Table(title="Plan Comments", border_style="cyan")
        table.add_column("Part", justify="right")
        table.add_column("Status")
        table.add_column("Link / Error", style="dim")

        for r in results:
            if r.ok:
                table.add_row(f"{r.part}/{r.total}", "[green]posted[/green]", r.url)
            else:
                table.add_row(f"{r.part}/{r.total}", "[red]failed[/red]", r.error)

        self.console.print(table)

    def show_chunks(self, chunks: list[str], max_size: int) -> None:
        """Display how a plan was split."""
        table = Table(title=f"Chunks (max {max_size} characters)", border_style="cyan")
        table.add_column("Part", justify="right")
        table.add_column("Characters", justify="right", style="cyan")
        table.add_column("Lines", justify="right")

        for i, text in enumerate(chunks, 1):
            table.add_row(str(i), str(len(text)), str(text.count("\n") + 1))

        self.console.print(table)
