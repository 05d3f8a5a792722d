"""Command-line interface for vizier."""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

from vizier.adapters import MultiSource, build_registry, decode_session_id
from vizier.config import get_config
from vizier.models import Graph, SessionInfo
from vizier.navigation import has_active_nodes, latest_node_position
from vizier.tool_icons import get_tool_ui, load_rules
from vizier.zoom import ZoomLevel, filter_by_zoom, node_preview, visual_branch, zoom_label

console = Console()
error_console = Console(stderr=True)

ROW_NAMES = {0: "User", 1: "Asst", 2: "Tools"}


def format_timestamp(ms: int) -> str:
    """Format epoch milliseconds as local wall-clock time."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone().strftime("%H:%M:%S")


def format_age(ms: int) -> str:
    """Format epoch milliseconds as a human-readable age string.

    Returns:
        Human-readable age like '2h ago', '3d ago', '1w ago'.
    """
    seconds = time.time() - ms / 1000

    if seconds < 3600:
        return f"{int(seconds / 60)}m ago"
    elif seconds < 86400:
        return f"{int(seconds / 3600)}h ago"
    elif seconds < 604800:
        return f"{int(seconds / 86400)}d ago"
    else:
        return f"{int(seconds / 604800)}w ago"


def row_name(row: int) -> str:
    if row in ROW_NAMES:
        return ROW_NAMES[row]
    lane = (row - 3) // 2 + 1
    return f"Agent {lane}" + (" asst" if (row - 3) % 2 == 0 else " tools")


def get_source(source: str | None) -> MultiSource:
    """Compose the available sources, optionally narrowed to one."""
    registry = build_registry(get_config())

    if source:
        try:
            adapters = [registry.get_adapter(source)]
        except KeyError as e:
            error_console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
    else:
        adapters = registry.get_available_adapters()

    return MultiSource(adapters)


def resolve_session(multi: MultiSource, session_id: str | None) -> SessionInfo:
    """Find a session by namespaced or bare id; the newest one by default."""
    sessions = multi.list_sessions()
    if not sessions:
        error_console.print("[red]No sessions found.[/red]")
        sys.exit(1)

    if session_id is None:
        return sessions[0]

    for info in sessions:
        if info.id == session_id:
            return info
    # Bare native ids match whichever source owns them
    for info in sessions:
        decoded = decode_session_id(info.id)
        if decoded is not None and decoded[1] == session_id:
            return info

    error_console.print(f"[red]Session not found:[/red] {session_id}")
    sys.exit(1)


def print_sessions_table(sessions: list[SessionInfo]) -> None:
    """Print sessions in a formatted table."""
    if not sessions:
        console.print("[dim]No sessions found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="cyan")
    table.add_column("Title", style="white", max_width=40)
    table.add_column("Directory", style="green")
    table.add_column("Events", justify="right")
    table.add_column("Age", style="yellow")

    for info in sessions:
        table.add_row(
            info.id,
            (info.title or "[dim]Untitled[/dim]")[:40],
            info.directory or "[dim]—[/dim]",
            str(info.node_count),
            format_age(info.timestamp),
        )

    console.print(table)


def print_graph(graph: Graph, level: ZoomLevel) -> None:
    """Print the nodes visible at a zoom level with their rows."""
    rules = load_rules(get_config().get_tool_icons_path())

    table = Table(show_header=True, header_style="bold", title=zoom_label(level))
    table.add_column("#", justify="right", style="dim")
    table.add_column("Time", style="yellow")
    table.add_column("Row", style="magenta")
    table.add_column("Kind", style="cyan")
    table.add_column("Preview", style="white", max_width=60)

    for index in filter_by_zoom(graph.nodes, level):
        node = graph.nodes[index]
        hint = get_tool_ui(node, rules)
        icon = f"{hint.icon_text} " if hint and hint.icon_text else ""
        table.add_row(
            str(index),
            format_timestamp(node.timestamp),
            row_name(visual_branch(node, level)),
            node.kind,
            icon + node_preview(node, max_len=60),
        )

    console.print(table)


def print_stats(graph: Graph) -> None:
    stats = graph.stats
    console.print(f"[bold]Model:[/bold] {stats.model or '[dim]—[/dim]'}")
    console.print(f"[bold]Input tokens:[/bold] {stats.total_input_tokens:,}")
    console.print(f"[bold]Output tokens:[/bold] {stats.total_output_tokens:,}")
    console.print(f"[bold]Cache read:[/bold] {stats.total_cache_read:,}")
    console.print(f"[bold]Cache creation:[/bold] {stats.total_cache_creation:,}")
    if stats.total_reasoning_tokens is not None:
        console.print(f"[bold]Reasoning tokens:[/bold] {stats.total_reasoning_tokens:,}")
    if stats.total_cost is not None:
        console.print(f"[bold]Cost:[/bold] ${stats.total_cost:.4f}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """vizier - Execution graphs for agent sessions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def sources() -> None:
    """List configured session sources."""
    registry = build_registry(get_config())

    table = Table(show_header=True, header_style="bold")
    table.add_column("Source", style="cyan")
    table.add_column("Name")
    table.add_column("Available")

    for adapter in registry.list_adapters():
        available = "[green]yes[/green]" if adapter.is_available() else "[dim]no[/dim]"
        table.add_row(adapter.name, adapter.display_name, available)

    console.print(table)


@cli.command("sessions")
@click.option("--source", "-s", type=str, help="Only list sessions from this source")
@click.option("--limit", "-l", type=int, default=20, help="Limit results")
def list_sessions(source: str | None, limit: int) -> None:
    """List sessions across sources, newest first."""
    multi = get_source(source)
    print_sessions_table(multi.list_sessions()[:limit])


@cli.command()
@click.argument("session_id", required=False)
@click.option("--source", "-s", type=str, help="Restrict lookup to this source")
@click.option(
    "--zoom",
    "-z",
    type=click.Choice([level.value for level in ZoomLevel]),
    default=ZoomLevel.DETAILS.value,
    help="Zoom level",
)
@click.option("--json", "as_json", is_flag=True, help="Output the full graph as JSON")
def graph(session_id: str | None, source: str | None, zoom: str, as_json: bool) -> None:
    """Show the execution graph of a session (newest by default)."""
    multi = get_source(source)
    info = resolve_session(multi, session_id)
    session_graph = multi.read_graph(info.id)

    if not session_graph.nodes:
        error_console.print(f"[red]No events found for session {info.id}.[/red]")
        sys.exit(1)

    if as_json:
        click.echo(session_graph.model_dump_json(indent=2))
        return

    console.print(f"[bold]{info.title or info.id}[/bold] [dim]({info.id})[/dim]")
    print_graph(session_graph, ZoomLevel(zoom))


@cli.command()
@click.argument("session_id", required=False)
@click.option("--source", "-s", type=str, help="Restrict lookup to this source")
def stats(session_id: str | None, source: str | None) -> None:
    """Show token and cost totals for a session."""
    multi = get_source(source)
    info = resolve_session(multi, session_id)
    session_graph = multi.read_graph(info.id)

    if not session_graph.nodes:
        error_console.print(f"[red]No events found for session {info.id}.[/red]")
        sys.exit(1)

    print_stats(session_graph)


@cli.command()
@click.argument("session_id", required=False)
@click.option("--source", "-s", type=str, help="Restrict lookup to this source")
@click.option(
    "--zoom",
    "-z",
    type=click.Choice([level.value for level in ZoomLevel]),
    default=ZoomLevel.DETAILS.value,
    help="Zoom level used to place the newest node",
)
def watch(session_id: str | None, source: str | None, zoom: str) -> None:
    """Follow a session, printing its newest node after every rebuild."""
    multi = get_source(source)
    info = resolve_session(multi, session_id)
    level = ZoomLevel(zoom)

    def on_update(updated: Graph) -> None:
        if not updated.nodes:
            return
        row, position = latest_node_position(updated, level)
        newest = updated.nodes[-1]
        status = " [yellow](running)[/yellow]" if has_active_nodes(updated) else ""
        console.print(
            f"[dim][{format_timestamp(newest.timestamp)}][/dim] "
            f"{len(updated.nodes)} nodes, {row_name(row)} #{position + 1}: "
            f"[cyan]{newest.kind}[/cyan] {node_preview(newest, max_len=60)}{status}"
        )

    console.print(f"[bold]Watching[/bold] {info.id} (Ctrl+C to stop)\n")
    on_update(multi.read_graph(info.id))
    unsubscribe = multi.watch(info.id, on_update)
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Watch stopped.[/yellow]")
    finally:
        unsubscribe()


if __name__ == "__main__":
    cli()
