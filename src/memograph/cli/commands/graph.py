"""Relationship graph commands."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from memograph.cli.engine import get_engine
from memograph.cli.output import fail, print_entities, print_impact_report
from memograph.context import MemoryEngine
from memograph.errors import MemographError
from memograph.knowledge.graph import KnowledgeGraph
from memograph.knowledge.impact import ChangeOperation, ImpactAnalyzer, ImpactOptions
from memograph.knowledge.models import RelationType

project_option = click.option(
    "--project",
    "project_path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory).",
)
project_id_option = click.option(
    "--project-id", default=None, help="Project id, instead of --project."
)


def _project_id(project_path: Path | None, project_id: str | None) -> str:
    if project_id:
        return project_id
    return MemoryEngine.project_id(project_path or Path.cwd())


def _load_graph(ctx: click.Context, project_path: Path | None, project_id: str | None) -> KnowledgeGraph:
    """Read a project's graph without creating one."""
    console: Console = ctx.obj["console"]
    pid = _project_id(project_path, project_id)
    try:
        graph = get_engine(ctx).graphs.read(pid)
    except MemographError as e:
        fail(console, str(e))
    if graph is None:
        fail(console, f"No graph stored for project {pid}")
    return graph


@click.group("graph")
def graph_group() -> None:
    """Inspect project relationship graphs."""
    pass


@graph_group.command()
@click.pass_context
def projects(ctx: click.Context) -> None:
    """List projects with a stored graph."""
    console: Console = ctx.obj["console"]
    manager = get_engine(ctx).graphs

    table = Table(title="Projects")
    table.add_column("Project ID", style="cyan")
    table.add_column("Nodes", style="magenta", justify="right")
    table.add_column("Edges", style="magenta", justify="right")
    for pid in manager.list_projects():
        try:
            graph = manager.read(pid)
        except MemographError as e:
            table.add_row(pid, "[red]error[/red]", str(e))
            continue
        if graph is not None:
            stats = graph.get_stats()
            table.add_row(pid, str(stats.node_count), str(stats.edge_count))
    console.print(table)

    totals = manager.get_global_stats()
    console.print(
        f"[cyan]Total:[/cyan] {totals.project_count} projects, "
        f"{totals.total_nodes} nodes, {totals.total_edges} edges, "
        f"{totals.total_size} bytes"
    )


@graph_group.command()
@project_option
@project_id_option
@click.option("--top", default=5, show_default=True, help="Densest nodes to show.")
@click.pass_context
def stats(
    ctx: click.Context, project_path: Path | None, project_id: str | None, top: int
) -> None:
    """Show node, edge and degree statistics."""
    console: Console = ctx.obj["console"]
    graph = _load_graph(ctx, project_path, project_id)
    graph_stats = graph.get_stats(top_n=top)

    console.print(
        f"[cyan]Graph {graph.project_id}:[/cyan] {graph_stats.node_count} nodes, "
        f"{graph_stats.edge_count} edges, avg degree {graph_stats.avg_degree:.2f}"
    )

    table = Table(title="Counts")
    table.add_column("Kind", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Count", justify="right")
    for name, count in sorted(graph_stats.entity_counts.items()):
        table.add_row("entity", name, str(count))
    for name, count in sorted(graph_stats.relationship_counts.items()):
        table.add_row("relationship", name, str(count))
    console.print(table)

    for node in graph_stats.densest_nodes:
        console.print(f"  {node.id}: degree {node.degree}")


@graph_group.command()
@click.argument("source_id")
@click.argument("target_id")
@project_option
@project_id_option
@click.option("--max-depth", default=10, show_default=True, help="Maximum hops.")
@click.option(
    "--type",
    "relationship_types",
    multiple=True,
    type=click.Choice([t.value for t in RelationType]),
    help="Only follow these relationship types (repeatable).",
)
@click.pass_context
def path(
    ctx: click.Context,
    source_id: str,
    target_id: str,
    project_path: Path | None,
    project_id: str | None,
    max_depth: int,
    relationship_types: tuple[str, ...],
) -> None:
    """Find the shortest directed path between two entities."""
    console: Console = ctx.obj["console"]
    graph = _load_graph(ctx, project_path, project_id)
    try:
        found = graph.find_path(
            source_id,
            target_id,
            max_depth=max_depth,
            relationship_types=[RelationType(t) for t in relationship_types] or None,
        )
    except MemographError as e:
        fail(console, str(e))

    if found is None:
        console.print(f"[yellow]No path within {max_depth} hops.[/yellow]")
        return
    console.print(" -> ".join(entity.id for entity in found))


@graph_group.command()
@click.argument("entity_id")
@project_option
@project_id_option
@click.option(
    "--direction",
    type=click.Choice(["in", "out", "both"]),
    default="both",
    show_default=True,
)
@click.option(
    "--type",
    "relationship_type",
    type=click.Choice([t.value for t in RelationType]),
    default=None,
    help="Only follow this relationship type.",
)
@click.option("--depth", default=1, show_default=True)
@click.option("--limit", default=100, show_default=True)
@click.pass_context
def neighbors(
    ctx: click.Context,
    entity_id: str,
    project_path: Path | None,
    project_id: str | None,
    direction: str,
    relationship_type: str | None,
    depth: int,
    limit: int,
) -> None:
    """List entities reachable from an entity."""
    console: Console = ctx.obj["console"]
    graph = _load_graph(ctx, project_path, project_id)
    try:
        found = graph.get_neighbors(
            entity_id,
            direction=direction,  # type: ignore[arg-type]
            relationship_type=RelationType(relationship_type) if relationship_type else None,
            depth=depth,
            limit=limit,
        )
    except MemographError as e:
        fail(console, str(e))
    print_entities(console, f"Neighbors of {entity_id}", found)


@graph_group.command()
@click.argument("entity_id")
@project_option
@project_id_option
@click.option(
    "--operation",
    type=click.Choice([op.value for op in ChangeOperation]),
    default=ChangeOperation.MODIFY.value,
    show_default=True,
)
@click.option("--max-depth", default=5, show_default=True)
@click.option("--no-tests", is_flag=True, help="Skip affected-test lookup.")
@click.pass_context
def impact(
    ctx: click.Context,
    entity_id: str,
    project_path: Path | None,
    project_id: str | None,
    operation: str,
    max_depth: int,
    no_tests: bool,
) -> None:
    """Analyze what a change to an entity would affect."""
    console: Console = ctx.obj["console"]
    graph = _load_graph(ctx, project_path, project_id)
    try:
        report = ImpactAnalyzer(graph).analyze(
            entity_id,
            operation,
            ImpactOptions(max_depth=max_depth, include_tests=not no_tests),
        )
    except MemographError as e:
        fail(console, str(e))
    print_impact_report(console, report)


@graph_group.command("export")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@project_option
@project_id_option
@click.pass_context
def export_graph(
    ctx: click.Context, output: Path, project_path: Path | None, project_id: str | None
) -> None:
    """Export a project's graph to a JSON file."""
    console: Console = ctx.obj["console"]
    pid = _project_id(project_path, project_id)
    try:
        get_engine(ctx).graphs.export(pid, output)
    except MemographError as e:
        fail(console, str(e))
    console.print(f"[green]Exported[/green] {pid} to {output}")


@graph_group.command("import")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@project_option
@project_id_option
@click.pass_context
def import_graph(
    ctx: click.Context, source: Path, project_path: Path | None, project_id: str | None
) -> None:
    """Import a graph from a JSON file, replacing the project's graph."""
    console: Console = ctx.obj["console"]
    pid = _project_id(project_path, project_id)
    try:
        graph = get_engine(ctx).graphs.import_graph(pid, source)
    except MemographError as e:
        fail(console, str(e))
    graph_stats = graph.get_stats()
    console.print(
        f"[green]Imported[/green] {graph_stats.node_count} nodes and "
        f"{graph_stats.edge_count} edges into {pid}"
    )


@graph_group.command()
@project_option
@project_id_option
@click.confirmation_option(prompt="Delete this project's graph and backups?")
@click.pass_context
def delete(ctx: click.Context, project_path: Path | None, project_id: str | None) -> None:
    """Delete a project's graph and its backups."""
    console: Console = ctx.obj["console"]
    pid = _project_id(project_path, project_id)
    manager = get_engine(ctx).graphs
    if pid not in manager.list_projects():
        fail(console, f"No graph stored for project {pid}")
    try:
        manager.delete(pid)
    except MemographError as e:
        fail(console, str(e))
    console.print(f"[green]Deleted[/green] graph {pid}")
