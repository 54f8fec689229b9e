"""Sync commands for the dotsync CLI.

Commands:
- sync: Run one reconciliation pass
- diff: Show differences between local files and the repository
- watch: Sync continuously on file changes
- schedule: Sync at a fixed interval
"""

from __future__ import annotations

import difflib
import sys
import time
from pathlib import Path

import click

from dotsync.client.cli.config import (
    EXIT_PARTIAL,
    build_pipeline,
    exit_code_for,
    fail,
    get_config_path,
    load_config_or_exit,
)
from dotsync.client.sync.pipeline import SyncPipeline
from dotsync.client.sync.types import (
    Action,
    FileState,
    OutcomeStatus,
    PassResult,
    TriggerSource,
)
from dotsync.client.sync.watcher import ChangeWatcher
from dotsync.core.errors import ConfigurationError, TransportFailure

_ARROWS = {
    Action.MATERIALIZE_TO_REMOTE: "↑",
    Action.MATERIALIZE_FROM_REMOTE: "↓",
    Action.DELETE_LOCAL: "✗",
}


def _pipeline_or_exit(ctx: click.Context, profile: str | None) -> SyncPipeline:
    try:
        return build_pipeline(get_config_path(ctx), profile)
    except ConfigurationError as e:
        fail(str(e))


def display_result(result: PassResult | None) -> None:
    """Display the per-mapping results and summary of a pass."""
    if result is None:
        click.echo("A sync is already in progress.")
        return

    for outcome in result.applied:
        arrow = _ARROWS.get(outcome.planned.effective_action, "•")
        line = f"  {arrow} {outcome.key}"
        if outcome.backup is not None:
            line += f" (backup: {outcome.backup.filename})"
        click.echo(line)

    if result.dry_run:
        for outcome in result.skipped:
            if outcome.planned.is_mutating:
                arrow = _ARROWS.get(outcome.planned.effective_action, "•")
                click.echo(f"  {arrow} {outcome.key} (dry run)")

    if result.conflicted:
        click.echo(click.style("\nConflicts:", fg="yellow"))
        for outcome in result.conflicted:
            click.echo(f"  ! {outcome.key}: {outcome.detail}")

    if result.failed:
        click.echo(click.style("\nErrors:", fg="red"))
        for outcome in result.failed:
            click.echo(f"  ✗ {outcome.key}: {outcome.detail}")

    if result.transport_error:
        click.echo(click.style(f"\nRemote error: {result.transport_error}", fg="red"))

    if not result.applied and not result.conflicted and not result.failed and not result.dry_run:
        if not result.transport_error:
            click.echo("Everything is up to date.")
        return

    prefix = "Dry run" if result.dry_run else "Sync complete"
    click.echo(
        f"\n{prefix}: {len(result.applied)} applied, "
        f"{len(result.skipped)} skipped, "
        f"{len(result.failed)} failed, "
        f"{len(result.conflicted)} conflicts"
    )


def _run_pass_or_exit(
    pipeline: SyncPipeline,
    trigger: TriggerSource,
    dry_run: bool = False,
) -> PassResult | None:
    try:
        return pipeline.run_pass(trigger, dry_run=dry_run)
    except ConfigurationError as e:
        fail(str(e))


def follow_profile(
    pipeline: SyncPipeline,
    watcher: ChangeWatcher,
    config_path: Path,
    result: PassResult | None,
) -> None:
    """Display a watched pass, then point the watcher at the current mappings."""
    display_result(result)
    try:
        active = pipeline.load_profile()
    except ConfigurationError as e:
        click.echo(f"Warning: keeping previous mappings: {e}", err=True)
        return
    watcher.update_paths([*active.local_paths, config_path], active.ignore_patterns)


def _wait_for_interrupt() -> None:
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        click.echo("\nStopping...")


@click.command()
@click.option("--profile", "-p", default=None, help="Profile to sync (bypasses detection).")
@click.option("--dry-run", is_flag=True, help="Show what would change without touching files.")
@click.pass_context
def sync(ctx: click.Context, profile: str | None, dry_run: bool) -> None:
    """Synchronize tracked dotfiles with the repository."""
    pipeline = _pipeline_or_exit(ctx, profile)
    click.echo(f"Syncing with {pipeline.transport.root}...")

    result = _run_pass_or_exit(pipeline, TriggerSource.MANUAL, dry_run=dry_run)
    display_result(result)
    sys.exit(exit_code_for(result))


def _read_lines(path: Path) -> list[str] | None:
    """Read a file as text lines, or None if it is binary."""
    data = path.read_bytes()
    if b"\0" in data:
        return None
    return data.decode("utf-8", errors="replace").splitlines(keepends=True)


def _echo_diff(lines: list[str]) -> None:
    for line in lines:
        text = line.rstrip("\n")
        if line.startswith(("+++", "---")):
            click.echo(click.style(text, bold=True))
        elif line.startswith("+"):
            click.echo(click.style(text, fg="green"))
        elif line.startswith("-"):
            click.echo(click.style(text, fg="red"))
        elif line.startswith("@@"):
            click.echo(click.style(text, fg="cyan"))
        else:
            click.echo(text)


@click.command()
@click.option("--profile", "-p", default=None, help="Profile to compare (bypasses detection).")
@click.pass_context
def diff(ctx: click.Context, profile: str | None) -> None:
    """Show differences between local dotfiles and the repository."""
    pipeline = _pipeline_or_exit(ctx, profile)
    try:
        _, plan, repo_root = pipeline.preview()
    except ConfigurationError as e:
        fail(str(e))
    except TransportFailure as e:
        fail(str(e), code=EXIT_PARTIAL)

    differences = 0
    for planned in plan:
        if planned.state in (None, FileState.IN_SYNC, FileState.MISSING_BOTH):
            continue

        differences += 1
        mapping = planned.mapping
        if planned.state == FileState.LOCAL_ONLY:
            click.echo(f"Only in local: {mapping.key}")
            continue
        if planned.state == FileState.REMOTE_ONLY:
            click.echo(f"Only in repository: {mapping.key}")
            continue

        repo_file = mapping.repo_file(repo_root)
        try:
            remote_lines = _read_lines(repo_file)
            local_lines = _read_lines(mapping.local_path)
        except OSError as e:
            click.echo(click.style(f"Cannot read {mapping.key}: {e}", fg="red"), err=True)
            continue
        if remote_lines is None or local_lines is None:
            click.echo(f"Binary files differ: {mapping.key}")
            continue

        _echo_diff(list(difflib.unified_diff(
            remote_lines,
            local_lines,
            fromfile=f"repository/{mapping.repo_path}",
            tofile=str(mapping.local_path),
        )))

    if differences == 0:
        click.echo("No differences.")


@click.command()
@click.option("--profile", "-p", default=None, help="Profile to sync (bypasses detection).")
@click.option("--no-schedule", is_flag=True, help="Only sync on local changes, never poll the remote.")
@click.pass_context
def watch(ctx: click.Context, profile: str | None, no_schedule: bool) -> None:
    """Watch tracked dotfiles and sync continuously.

    The remote is also polled every sync_interval seconds, since remote
    commits produce no local file events.
    """
    from dotsync.client.sync.scheduler import SyncScheduler

    config_path = get_config_path(ctx)
    config = load_config_or_exit(config_path)
    pipeline = _pipeline_or_exit(ctx, profile)

    result = _run_pass_or_exit(pipeline, TriggerSource.MANUAL)
    display_result(result)

    try:
        active = pipeline.load_profile()
    except ConfigurationError as e:
        fail(str(e))

    # Editing the configuration (e.g. dotsync add) triggers a pass too
    watcher = ChangeWatcher(
        on_trigger=lambda: pipeline.run_pass(TriggerSource.WATCHER),
        local_paths=[*active.local_paths, config_path],
        repo_root=pipeline.transport.root,
        ignore_patterns=active.ignore_patterns,
        debounce_s=config.debounce_s,
        max_debounce_s=config.max_debounce_s,
    )
    pipeline.set_on_pass_complete(lambda finished: follow_profile(pipeline, watcher, config_path, finished))
    scheduler = None if no_schedule else SyncScheduler(pipeline, config.sync_interval)

    click.echo(f"\nWatching {len(active.mappings)} files in profile {active.name}... (Ctrl+C to stop)\n")
    watcher.start()
    if scheduler:
        scheduler.start()
    try:
        _wait_for_interrupt()
    finally:
        if scheduler:
            scheduler.stop()
        watcher.stop()


@click.command()
@click.option("--profile", "-p", default=None, help="Profile to sync (bypasses detection).")
@click.option(
    "--interval",
    "-i",
    type=click.IntRange(min=1),
    default=None,
    help="Seconds between passes (defaults to sync_interval from the configuration).",
)
@click.pass_context
def schedule(ctx: click.Context, profile: str | None, interval: int | None) -> None:
    """Sync at a fixed interval."""
    from dotsync.client.sync.scheduler import SyncScheduler

    config = load_config_or_exit(get_config_path(ctx))
    pipeline = _pipeline_or_exit(ctx, profile)
    pipeline.set_on_pass_complete(display_result)

    scheduler = SyncScheduler(pipeline, interval or config.sync_interval)
    click.echo(f"Syncing every {scheduler.interval} seconds... (Ctrl+C to stop)\n")
    scheduler.start()
    try:
        _wait_for_interrupt()
    finally:
        scheduler.stop()
