"""Conversation memory commands."""

import click
from rich.console import Console
from rich.table import Table

from memograph.cli.engine import get_engine
from memograph.memory.models import (
    ConversationMemory,
    MemoryFilter,
    MemorySearchQuery,
    MessageRole,
)


def _preview(text: str, width: int = 80) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


def _memory_table(title: str, memories: list[ConversationMemory]) -> Table:
    table = Table(title=title)
    table.add_column("Time", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("Agent")
    table.add_column("Content")
    for memory in memories:
        table.add_row(
            memory.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            memory.role.value,
            memory.agent_name or "-",
            _preview(memory.content),
        )
    return table


@click.group("memory")
def memory_group() -> None:
    """Inspect and manage conversation memory."""
    pass


@memory_group.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show conversation memory statistics."""
    console: Console = ctx.obj["console"]
    engine = get_engine(ctx)
    memory_stats = engine.memory.get_stats()
    store_stats = engine.vectors.get_stats()

    console.print(
        f"[cyan]Memories:[/cyan] {memory_stats.total_memories} "
        f"in {memory_stats.unique_conversations} conversations, "
        f"{memory_stats.unique_agents} agents"
    )
    if memory_stats.oldest_memory and memory_stats.newest_memory:
        console.print(
            f"  Span: {memory_stats.oldest_memory:%Y-%m-%d %H:%M} to "
            f"{memory_stats.newest_memory:%Y-%m-%d %H:%M}"
        )
    console.print(
        f"[cyan]Vector Store:[/cyan] {store_stats.count}/{store_stats.max_vectors} "
        f"vectors, dimension {store_stats.dimension}"
    )
    console.print(f"[cyan]Embeddings:[/cyan] {engine.embeddings.name}")


@memory_group.command()
@click.argument("text")
@click.option("--limit", default=10, show_default=True)
@click.option("--threshold", default=0.7, show_default=True, type=float)
@click.option("--conversation", "conversation_id", default=None)
@click.option("--agent", "agent_name", default=None)
@click.option("--role", type=click.Choice([r.value for r in MessageRole]), default=None)
@click.pass_context
def search(
    ctx: click.Context,
    text: str,
    limit: int,
    threshold: float,
    conversation_id: str | None,
    agent_name: str | None,
    role: str | None,
) -> None:
    """Search memories similar to TEXT."""
    console: Console = ctx.obj["console"]
    filters = None
    if conversation_id or agent_name or role:
        filters = MemoryFilter(
            conversation_id=conversation_id,
            agent_name=agent_name,
            role=MessageRole(role) if role else None,
        )
    results = get_engine(ctx).memory.search_similar(
        MemorySearchQuery(text=text, filters=filters, limit=limit, threshold=threshold)
    )
    if not results:
        console.print("[yellow]No similar memories found.[/yellow]")
        return

    table = Table(title=f"Memories similar to '{_preview(text, 40)}'")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Conversation", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("Content")
    for result in results:
        table.add_row(
            f"{result.score:.3f}",
            result.conversation_id,
            result.role.value,
            _preview(result.content),
        )
    console.print(table)


@memory_group.command()
@click.argument("conversation_id")
@click.option(
    "--limit", default=None, type=click.IntRange(min=0), help="Show only the first N turns."
)
@click.pass_context
def history(ctx: click.Context, conversation_id: str, limit: int | None) -> None:
    """Show a conversation's turns, oldest first."""
    console: Console = ctx.obj["console"]
    memories = get_engine(ctx).memory.get_conversation_history(conversation_id, limit)
    if not memories:
        console.print(f"[yellow]No memories for conversation {conversation_id}.[/yellow]")
        return
    console.print(_memory_table(f"Conversation {conversation_id}", memories))


@memory_group.command()
@click.argument("conversation_id")
@click.confirmation_option(prompt="Forget every memory of this conversation?")
@click.pass_context
def forget(ctx: click.Context, conversation_id: str) -> None:
    """Delete every memory of a conversation."""
    console: Console = ctx.obj["console"]
    deleted = get_engine(ctx).memory.delete_conversation(conversation_id)
    console.print(f"[green]Forgot[/green] {deleted} memories of {conversation_id}")
