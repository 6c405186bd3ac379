"""Configuration and authentication commands."""

import json
import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from ..config import Config
from ..credential_manager import ACCESS_TOKEN, KNOWN_KEYS, REFRESH_TOKEN
from ..errors import ConfigError
from ..sync.sync_adapter import RemoteTaskStore
from .common import (
    console,
    err_console,
    get_config,
    get_config_path,
    get_credentials,
    make_store,
    run_remote,
)


@click.group(name="config")
def config_group():
    """Show and change configuration."""
    pass


@config_group.command("show")
@click.pass_context
def show_config(ctx):
    """Print the effective configuration, environment overrides included."""
    config = get_config(ctx)
    console.print(f"[dim]# {escape(str(get_config_path(ctx)))}[/dim]")
    click.echo(config.to_yaml(), nl=False)


@config_group.group("tasklist")
def tasklist_group():
    """Select the remote task list to sync with."""
    pass


@tasklist_group.command("get")
@click.pass_context
def get_tasklist(ctx):
    """Print the configured task list id."""
    config = get_config(ctx)
    if not config.tasklist:
        err_console.print("[yellow]No task list configured.[/yellow]")
        sys.exit(1)
    click.echo(config.tasklist)


@tasklist_group.command("set")
@click.argument("tasklist_id")
@click.pass_context
def set_tasklist(ctx, tasklist_id):
    """Store TASKLIST_ID in the configuration file."""
    config_path = get_config_path(ctx)
    try:
        config = Config.read(config_path)
        config.tasklist = tasklist_id
        Config.save(config, config_path)
    except ConfigError as e:
        err_console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]Task list set to {escape(tasklist_id)}[/green]")


async def _list_tasklists(store: RemoteTaskStore):
    async with store:
        return await store.list_tasklists()


@tasklist_group.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print task lists as JSON.")
@click.pass_context
def list_tasklists(ctx, as_json):
    """List the task lists of the account."""
    config = get_config(ctx)
    store = make_store(ctx)
    tasklists = run_remote(_list_tasklists(store))

    if as_json:
        click.echo(json.dumps(tasklists, indent=2, ensure_ascii=False))
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("", justify="center")
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    for tasklist_id, title in tasklists.items():
        marker = "[green]●[/green]" if tasklist_id == config.tasklist else ""
        table.add_row(marker, escape(tasklist_id), escape(title))
    console.print(table)


@click.group(name="auth")
def auth_group():
    """Manage credentials for the remote task store."""
    pass


@auth_group.command("set-token")
@click.option("--access-token", help="OAuth access token.")
@click.option("--refresh-token", help="OAuth refresh token; requires client credentials to be imported.")
@click.pass_context
def set_token(ctx, access_token, refresh_token):
    """Store OAuth tokens in the system keyring."""
    if not access_token and not refresh_token:
        access_token = click.prompt("Access token", hide_input=True)

    credentials = get_credentials(ctx)
    stored = []
    for key, value in ((ACCESS_TOKEN, access_token), (REFRESH_TOKEN, refresh_token)):
        if value:
            if not credentials.store_credential(key, value):
                err_console.print(f"[red]Could not store {key}[/red]")
                sys.exit(1)
            stored.append(key)
    console.print(f"[green]Stored {', '.join(stored)}[/green]")


@auth_group.command("import-client-secret")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_client_secret(ctx, file):
    """Store client id and secret from a downloaded client_secret.json FILE."""
    credentials = get_credentials(ctx)
    try:
        stored = credentials.import_client_secret(file)
    except (OSError, ValueError) as e:
        err_console.print(f"[red]Cannot import client secret: {escape(str(e))}[/red]")
        sys.exit(1)
    console.print(f"[green]Stored client credentials ({escape(stored['client_id'])})[/green]")


@auth_group.command("status")
@click.pass_context
def auth_status(ctx):
    """Show which credentials are available."""
    credentials = get_credentials(ctx)
    if not credentials.is_keyring_available():
        console.print("[yellow]No keyring backend; only environment variables are used.[/yellow]")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Credential")
    table.add_column("Available", justify="center")
    table.add_column("Environment variable", style="dim")
    for key in KNOWN_KEYS:
        available = credentials.get_credential(key) is not None
        table.add_row(key, "[green]✓[/green]" if available else "[red]✗[/red]", credentials.env_var(key))
    console.print(table)


@auth_group.command("logout")
@click.pass_context
def logout(ctx):
    """Remove all stored credentials from the keyring."""
    credentials = get_credentials(ctx)
    deleted = [key for key in KNOWN_KEYS if credentials.delete_credential(key)]
    if deleted:
        console.print(f"[green]Removed {', '.join(deleted)}[/green]")
    else:
        console.print("[yellow]No stored credentials.[/yellow]")
