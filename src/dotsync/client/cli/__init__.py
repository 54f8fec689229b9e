"""Command-line interface for dotsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- add: Track a dotfile in a profile
- remove: Stop tracking a dotfile
- sync: Run one reconciliation pass
- diff: Show differences with the repository
- watch: Sync continuously on file changes
- schedule: Sync at a fixed interval

Exit codes: 0 success, 1 partial success, 2 configuration error.
"""

from __future__ import annotations

from pathlib import Path

import click

from dotsync.client.cli.config import (
    EXIT_CONFIG_ERROR,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    build_pipeline,
    canonicalize_path,
    setup_logging,
)
from dotsync.client.cli.files import add, remove
from dotsync.client.cli.sync import diff, schedule, sync, watch


@click.group()
@click.version_option(package_name="dotsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to the configuration file.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """dotsync - Keep dotfiles in sync across machines."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# Mapping commands
cli.add_command(add)
cli.add_command(remove)

# Sync commands
cli.add_command(sync)
cli.add_command(diff)
cli.add_command(watch)
cli.add_command(schedule)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Helpers
    "build_pipeline",
    "canonicalize_path",
    "setup_logging",
    # Exit codes
    "EXIT_CONFIG_ERROR",
    "EXIT_PARTIAL",
    "EXIT_SUCCESS",
]
