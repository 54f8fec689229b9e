"""Mapping management commands for the dotsync CLI.

Commands:
- add: Track a dotfile in a profile
- remove: Stop tracking a dotfile
"""

from __future__ import annotations

import click

from dotsync.client.cli.config import (
    canonicalize_path,
    fail,
    get_config_path,
    load_config_or_exit,
    select_profile_or_exit,
)
from dotsync.core.config import save_config
from dotsync.core.errors import ConfigurationError


@click.command()
@click.argument("path")
@click.option("--profile", "-p", default=None, help="Profile to add the file to.")
@click.pass_context
def add(ctx: click.Context, path: str, profile: str | None) -> None:
    """Track PATH (a file inside your home directory) in a profile."""
    config_path = get_config_path(ctx)
    config = load_config_or_exit(config_path)
    profile_name = select_profile_or_exit(config, profile)

    try:
        local_path, key = canonicalize_path(path)
    except ConfigurationError as e:
        fail(str(e))

    if not local_path.exists() and not local_path.is_symlink():
        fail(f"File not found: {local_path}")
    if local_path.is_dir():
        fail(f"Directories cannot be tracked: {local_path}")

    files = config.profiles[profile_name].files
    if files.get(key) == str(local_path):
        click.echo(f"{key} is already tracked in profile {profile_name}")
        return

    files[key] = str(local_path)
    save_config(config, config_path)
    click.echo(f"Added {key} to profile {profile_name}")
    click.echo("Run 'dotsync sync' to upload it.")


@click.command()
@click.argument("path")
@click.option("--profile", "-p", default=None, help="Profile to remove the file from.")
@click.pass_context
def remove(ctx: click.Context, path: str, profile: str | None) -> None:
    """Stop tracking PATH.

    In symlink mode the link is replaced by a regular copy of the repository
    content, so the file stays in place.
    """
    from dotsync.client.state import SyncStateStore
    from dotsync.client.sync.executor import atomic_copy

    config_path = get_config_path(ctx)
    config = load_config_or_exit(config_path)
    profile_name = select_profile_or_exit(config, profile)
    profile_config = config.profiles[profile_name]

    try:
        local_path, key = canonicalize_path(path)
    except ConfigurationError as e:
        fail(str(e))

    if key not in profile_config.files:
        matching = [k for k, v in profile_config.files.items() if v == str(local_path)]
        if not matching:
            fail(f"{local_path} is not tracked in profile {profile_name}")
        key = matching[0]

    if profile_config.use_symlinks and local_path.is_symlink():
        target = local_path.resolve()
        if target.is_file():
            try:
                atomic_copy(target, local_path)
            except OSError as e:
                fail(f"Cannot replace link {local_path} with a copy: {e}", code=1)
            click.echo(f"Replaced link {local_path} with a regular file")
        else:
            click.echo(
                click.style(f"Warning: {local_path} points to a missing file", fg="yellow"),
                err=True,
            )

    del profile_config.files[key]
    save_config(config, config_path)

    state = SyncStateStore(config.state_db)
    try:
        state.remove_file(profile_name, key)
    finally:
        state.close()

    click.echo(f"Removed {key} from profile {profile_name}")
