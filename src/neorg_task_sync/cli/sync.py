"""The ``sync`` command."""

import sys
from pathlib import Path
from typing import Sequence

import click
from rich.markup import escape

from ..sync.sync_adapter import RemoteTaskStore
from ..sync.sync_engine import SyncEngine
from ..sync.sync_models import FileStats, SyncConfig, SyncOptions, SyncReport
from .common import console, err_console, get_config, make_store, require_tasklist, run_remote


DONE = "[bold green]✓[/bold green]"
NEW = "[bold cyan]✻[/bold cyan]"
PULL = "[bold blue]↘[/bold blue]"
PUSH = "[bold magenta]↗[/bold magenta]"
UPDATE = "[bold yellow]⟳[/bold yellow]"


def format_stats(stats: FileStats) -> str:
    """One summary line per file, using the glyphs of the sync legend."""
    return (
        f"{escape(str(stats.path))}: "
        f"{DONE} {PULL} [green]{stats.pull_completed}[/green] {PUSH} [green]{stats.push_completed}[/green] | "
        f"{NEW} {PULL} [cyan]{stats.pull_new}[/cyan] {PUSH} [cyan]{stats.push_new}[/cyan] | "
        f"{UPDATE} {PULL} [yellow]{stats.newer_remote}[/yellow] {PUSH} [yellow]{stats.newer_local}[/yellow]"
    )


def print_report(report: SyncReport, config: SyncConfig):
    for stats in report.files:
        if stats.any_change():
            console.print(format_stats(stats), highlight=False)

    if report.cleared:
        console.print(
            f"Cleared {report.cleared} completed tasks older than "
            f"{config.clear_completed_tasks_older_than_days} days"
        )

    for failed in report.failed_files:
        err_console.print(f"[red]✗ {escape(str(failed.path))}: {escape(failed.error)}[/red]", highlight=False)
    for call in report.failed_calls:
        err_console.print(f"[red]✗ {call.operation} {escape(call.target)}: {escape(call.error)}[/red]", highlight=False)


async def _sync(store: RemoteTaskStore, config: SyncConfig, targets: Sequence[Path], options: SyncOptions) -> SyncReport:
    async with store:
        engine = SyncEngine(store, config)
        return await engine.run(targets, options)


@click.command()
@click.argument("files_or_folders", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("-L", "--without-local", is_flag=True, help="Do not change local documents (no pulled tasks or completions).")
@click.option("-R", "--without-remote", is_flag=True, help="Do not change remote tasks (no pushed tasks or completions).")
@click.option("-r", "--without-push", is_flag=True, help="Do not create remote tasks for new local tasks.")
@click.option("-l", "--without-pull", is_flag=True, help="Do not insert new remote tasks into documents.")
@click.option("-f", "--pull-to-first", is_flag=True, help="Insert new remote tasks into the first file instead of the last.")
@click.option("-s", "--without-sort", is_flag=True, help="Keep files in the order given instead of sorting by name.")
@click.option("--fix-missing", is_flag=True, help="Push every local task without identity, including completed ones.")
@click.option("--force-norg", "force", is_flag=True, help="Treat every file as norg regardless of its extension.")
@click.pass_context
def sync(ctx, files_or_folders, without_local, without_remote, without_push, without_pull,
         pull_to_first, without_sort, fix_missing, force):
    """Sync tasks between norg FILES_OR_FOLDERS and the remote task list."""
    config = get_config(ctx)
    require_tasklist(config)
    sync_config = config.sync_config()

    options = SyncOptions(
        without_local=without_local,
        without_remote=without_remote,
        without_push=without_push,
        without_pull=without_pull,
        pull_to_first=pull_to_first,
        without_sort=without_sort,
        fix_missing=fix_missing,
        force=force,
    )

    store = make_store(ctx)
    with console.status("Syncing…"):
        report = run_remote(_sync(store, sync_config, files_or_folders, options))

    print_report(report, sync_config)
    sys.exit(report.exit_code)
