"""Helpers shared by the CLI commands."""

import asyncio
import sys
from pathlib import Path
from typing import Any, Callable, Coroutine, Optional, TypeVar

import click
from rich.console import Console

from ..adapters import GoogleTasksAdapter
from ..config import ConfigModel, default_config_path, load_config
from ..credential_manager import CredentialManager
from ..errors import ConfigError
from ..sync.sync_adapter import RemoteAuthError, RemoteError, RemoteTaskStore


T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


def get_config(ctx: click.Context) -> ConfigModel:
    """Effective configuration for the invocation, exiting on errors."""
    config_path = ctx.obj.get("config_path")
    try:
        return load_config(Path(config_path) if config_path else None)
    except ConfigError as e:
        err_console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)


def get_config_path(ctx: click.Context) -> Path:
    config_path = ctx.obj.get("config_path")
    return Path(config_path) if config_path else default_config_path()


def get_credentials(ctx: click.Context) -> CredentialManager:
    factory = ctx.obj.get("credentials_factory") or CredentialManager
    return factory()


def make_store(ctx: click.Context) -> RemoteTaskStore:
    """Create the remote task store, exiting if no credentials are stored."""
    factory: Optional[Callable[[], RemoteTaskStore]] = ctx.obj.get("store_factory")
    try:
        if factory is not None:
            return factory()
        return GoogleTasksAdapter.from_credentials(get_credentials(ctx))
    except RemoteAuthError as e:
        err_console.print(f"[red]Authentication error: {e}[/red]")
        sys.exit(1)


def require_tasklist(config: ConfigModel) -> str:
    if not config.tasklist:
        err_console.print(
            "[red]No task list configured.[/red] "
            "Run 'neorg-task-sync config tasklist list' and "
            "'neorg-task-sync config tasklist set ID'."
        )
        sys.exit(1)
    return config.tasklist


def run_remote(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine that talks to the remote store, exiting on remote errors."""
    try:
        return asyncio.run(coro)
    except RemoteAuthError as e:
        err_console.print(f"[red]Authentication error: {e}[/red]")
        sys.exit(1)
    except RemoteError as e:
        err_console.print(f"[red]Remote error: {e}[/red]")
        sys.exit(1)
