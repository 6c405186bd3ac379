"""Command-line interface package for neorg-task-sync."""

import logging

import click

from .. import __version__
from .config_cmds import auth_group, config_group
from .inspect import parse, tasks
from .sync import sync

__all__ = ["main"]


def setup_logging(verbose: int):
    """Configure the root logger from the ``-v`` count."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)
    # Request logging is only interesting when asked for explicitly
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose >= 3 else logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.DEBUG if verbose >= 3 else logging.WARNING)


@click.group()
@click.option("--config", type=click.Path(dir_okay=False), help="Path to config file")
@click.option("--verbose", "-v", count=True, help="Make output more verbose (repeat for more).")
@click.version_option(__version__, prog_name="neorg-task-sync")
@click.pass_context
def main(ctx, config, verbose):
    """Sync tasks in norg documents with a Google Tasks list."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config
    setup_logging(verbose)


main.add_command(sync)
main.add_command(parse)
main.add_command(tasks)
main.add_command(config_group)
main.add_command(auth_group)
