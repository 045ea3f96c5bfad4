"""Rich output formatting helpers."""

import logging
import sys
from typing import NoReturn

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from memograph.knowledge.impact import ImpactReport, RiskLevel
from memograph.knowledge.models import Entity

RISK_STYLES = {
    RiskLevel.SAFE: "green",
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through rich.

    Args:
        verbose: Log at DEBUG instead of WARNING.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def fail(console: Console, message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error:[/red] {escape(message)}")
    sys.exit(1)


def create_entity_table(title: str) -> Table:
    """Create a standard entity table.

    Args:
        title: Table title.

    Returns:
        Configured Rich Table.
    """
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Name", style="bold")
    return table


def print_entities(console: Console, title: str, entities: list[Entity]) -> None:
    table = create_entity_table(title)
    for entity in entities:
        table.add_row(entity.id, entity.type.value, entity.name)
    console.print(table)


def print_impact_report(console: Console, report: ImpactReport) -> None:
    """Render an impact report as a summary panel plus detail tables."""
    style = RISK_STYLES[report.risk_level]
    console.print(
        Panel(
            f"[bold]{report.target_entity.name}[/bold] ({report.target_entity.id})\n"
            f"Operation: {report.operation.value}\n"
            f"Risk: [{style}]{report.risk_level.value}[/{style}] "
            f"(score {report.risk_score})\n"
            f"Affected: {len(report.directly_affected)} direct, "
            f"{len(report.indirectly_affected)} indirect, max depth {report.max_depth}",
            title="Impact Analysis",
            border_style=style,
        )
    )

    if report.directly_affected:
        print_entities(console, "Directly affected", report.directly_affected)
    if report.indirectly_affected:
        print_entities(console, "Indirectly affected", report.indirectly_affected)
    if report.untested:
        print_entities(console, "Untested", report.untested)

    if report.risk_factors:
        console.print("[bold]Risk factors:[/bold]")
        for factor in report.risk_factors:
            console.print(f"  - {factor}")
    console.print("[bold]Recommendations:[/bold]")
    for recommendation in report.recommendations:
        console.print(f"  - {recommendation}")
