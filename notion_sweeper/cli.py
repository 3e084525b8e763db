"""
Notion Sweeper CLI

Usage:
    notion-sweeper                  # Run a sweep
    notion-sweeper --dry-run        # Report without advancing the checkpoint
    notion-sweeper --workers 3      # Scan surfaces concurrently
    notion-sweeper status           # Show checkpoint status
    notion-sweeper resolve          # Show database ids found on the bootstrap page
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .bootstrap import resolve_config_surfaces
from .config import Config
from .errors import GatewayError
from .notion_api import NotionAPI
from .sweeper import Sweeper

console = Console(stderr=True)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration and apply CLI overrides."""
    config = Config.from_env(ctx.obj.get("env_file"))

    if ctx.obj.get("dry_run"):
        config.dry_run = True
    if ctx.obj.get("debug"):
        config.debug = True
    if ctx.obj.get("state_file"):
        config.state_file = ctx.obj["state_file"]
    if ctx.obj.get("workers"):
        config.max_workers = ctx.obj["workers"]

    return config


def _fail(ctx: click.Context, e: BaseException) -> None:
    """Report an error on stderr and exit with the matching status."""
    if isinstance(e, KeyboardInterrupt):
        console.print("\n[yellow]Sweep cancelled; checkpoint not updated.[/yellow]")
        sys.exit(130)

    if isinstance(e, ValueError):
        console.print(f"[red]Configuration error:[/red] {e}")
    else:
        console.print(f"[red]Error:[/red] {e}")

    if isinstance(e, GatewayError) and e.data is not None:
        console.print(json.dumps(e.data, indent=2, default=str), markup=False, highlight=False)

    if ctx.obj.get("debug"):
        console.print_exception()
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option("--dry-run", is_flag=True, help="Report changes without advancing the checkpoint")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.option(
    "--state-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Checkpoint file (default: .notion-sweeper/state.json)",
)
@click.option("--workers", type=click.IntRange(min=1), help="Surfaces scanned concurrently")
@click.option(
    "--env-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Load environment from this file instead of ./.env",
)
@click.pass_context
def cli(
    ctx,
    dry_run: bool,
    debug: bool,
    state_file: Optional[Path],
    workers: Optional[int],
    env_file: Optional[Path],
):
    """
    Notion Sweeper

    Reports Notion database items that are new, updated or commented
    since the last successful sweep.
    """
    ctx.ensure_object(dict)
    ctx.obj["dry_run"] = dry_run
    ctx.obj["debug"] = debug
    ctx.obj["state_file"] = state_file
    ctx.obj["workers"] = workers
    ctx.obj["env_file"] = env_file

    # If no subcommand, run a sweep
    if ctx.invoked_subcommand is None:
        ctx.invoke(sweep)


@cli.command()
@click.pass_context
def sweep(ctx):
    """Run one sweep and print the report as JSON."""
    try:
        config = _load_config(ctx)
        Sweeper(config).run()
    except (Exception, KeyboardInterrupt) as e:
        _fail(ctx, e)


@cli.command()
@click.pass_context
def status(ctx):
    """Show current checkpoint status."""
    try:
        config = _load_config(ctx)
        Sweeper(config, surfaces=list(config.surfaces)).status()
    except Exception as e:
        _fail(ctx, e)


@cli.command()
@click.pass_context
def resolve(ctx):
    """Show the database id used for each surface."""
    try:
        config = _load_config(ctx)
        surfaces = resolve_config_surfaces(config, NotionAPI(config))
    except Exception as e:
        _fail(ctx, e)
        return

    for surface in surfaces:
        click.echo(f"{surface.key}: {surface.collection_id}")


@cli.command()
def version():
    """Show version information."""
    click.echo(f"Notion Sweeper v{__version__}")


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
