"""Read-only commands: show what the parser and the remote store see."""

import json
import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from ..errors import ParseFatal
from ..parser import DocumentParser
from ..sync.sync_adapter import RemoteTaskStore
from .common import console, err_console, get_config, make_store, require_tasklist, run_remote


@click.command()
@click.argument("file", type=click.Path(path_type=Path, dir_okay=False))
@click.option("--force-norg", "force", is_flag=True, help="Parse the file even if it has no .norg extension.")
@click.option("--json", "as_json", is_flag=True, help="Print tasks as JSON.")
@click.pass_context
def parse(ctx, file, force, as_json):
    """Show the tasks found in a norg FILE."""
    config = get_config(ctx)
    sections = config.sync_config().sections
    parser = DocumentParser(sections)

    if not force and not parser.grammar.accepts(file):
        err_console.print(f"[red]{escape(str(file))} is not a norg file (use --force-norg)[/red]")
        sys.exit(1)

    try:
        document = parser.parse_file(file)
    except ParseFatal as e:
        err_console.print(f"[red]Cannot parse {escape(str(e))}[/red]")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps([task.to_dict() for task in document.tasks], indent=2, ensure_ascii=False))
        return

    if not document.tasks:
        console.print("[yellow]No tasks found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Line", justify="right")
    table.add_column("State", justify="center")
    table.add_column("Section", style="cyan")
    table.add_column("Task")
    table.add_column("Identity", style="dim")
    table.add_column("Due")
    for task in document.tasks:
        table.add_row(
            str(task.line_number + 1),
            "✓" if task.completed else "○",
            escape(task.section or "-"),
            escape(task.text),
            escape(str(task.identity)) if task.identity else "",
            task.due.isoformat() if task.due else "",
        )
    console.print(table)


async def _list_tasks(store: RemoteTaskStore, tasklist: str):
    async with store:
        return await store.list_tasks(tasklist)


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print tasks as JSON.")
@click.option("--all", "show_all", is_flag=True, help="Include deleted tasks.")
@click.pass_context
def tasks(ctx, as_json, show_all):
    """Show the tasks of the configured remote task list."""
    config = get_config(ctx)
    tasklist = require_tasklist(config)
    store = make_store(ctx)
    remote_tasks = run_remote(_list_tasks(store, tasklist))
    if not show_all:
        remote_tasks = [task for task in remote_tasks if not task.deleted]

    if as_json:
        click.echo(json.dumps([task.to_dict() for task in remote_tasks], indent=2, ensure_ascii=False))
        return

    if not remote_tasks:
        console.print("[yellow]No remote tasks.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("State", justify="center")
    table.add_column("Title")
    table.add_column("Due")
    table.add_column("Updated", style="dim")
    table.add_column("ID", style="dim")
    for task in remote_tasks:
        table.add_row(
            "✓" if task.completed else "○",
            escape(task.title) + (" [red](deleted)[/red]" if task.deleted else ""),
            task.due.isoformat() if task.due else "",
            task.updated_at.strftime("%Y-%m-%d %H:%M") if task.updated_at else "",
            escape(task.remote_id),
        )
    console.print(table)
