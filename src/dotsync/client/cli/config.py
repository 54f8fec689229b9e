"""Configuration utilities for the dotsync CLI.

This module provides shared functions used across CLI commands: loading
the configuration with CLI error handling, path canonicalization, and
assembly of the reconciliation pipeline.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import NoReturn

import click

from dotsync.client.profiles import resolve_profile
from dotsync.client.state import SyncStateStore
from dotsync.client.sync.backup import BackupStore
from dotsync.client.sync.pipeline import SyncPipeline
from dotsync.client.sync.types import PassResult, PassStatus
from dotsync.client.transport import create_transport
from dotsync.core.config import DotsyncConfig, get_config_file, load_config
from dotsync.core.errors import ConfigurationError

EXIT_SUCCESS = 0
EXIT_PARTIAL = 1
EXIT_CONFIG_ERROR = 2

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Configure the dotsync logger to output to stderr.

    Args:
        verbose: Log at DEBUG instead of INFO.
    """
    root_logger = logging.getLogger("dotsync")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stream_handler)
    root_logger.propagate = False


def get_config_path(ctx: click.Context) -> Path:
    """Get the config file chosen on the command line, or the default one."""
    obj = ctx.obj or {}
    return obj.get("config_path") or get_config_file()


def fail(message: str, code: int = EXIT_CONFIG_ERROR) -> NoReturn:
    """Print an error and exit."""
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


def load_config_or_exit(config_path: Path) -> DotsyncConfig:
    """Load configuration, exiting with the configuration error code on failure."""
    try:
        return load_config(config_path)
    except ConfigurationError as e:
        fail(str(e))


def select_profile_or_exit(config: DotsyncConfig, explicit: str | None) -> str:
    """Resolve the active profile, exiting on failure."""
    try:
        return resolve_profile(config, explicit)
    except ConfigurationError as e:
        fail(str(e))


def canonicalize_path(path: str, home: Path | None = None) -> tuple[Path, str]:
    """Canonicalize a dotfile path and derive its logical key.

    The path is made absolute and normalized without following symlinks, so a
    local link into the repository keeps its own location.

    Args:
        path: Path given on the command line (``~`` is expanded).
        home: Home directory (defaults to the current user's).

    Returns:
        (absolute path, key relative to home using forward slashes)

    Raises:
        ConfigurationError: If the path is not inside the home directory.
    """
    home_dir = Path(os.path.normpath(home or Path.home()))
    absolute = Path(os.path.normpath(Path(path).expanduser().absolute()))
    try:
        relative = absolute.relative_to(home_dir)
    except ValueError:
        raise ConfigurationError(f"{absolute} is not inside the home directory {home_dir}") from None
    if not relative.parts:
        raise ConfigurationError("The home directory itself cannot be tracked")
    return absolute, relative.as_posix()


def build_pipeline(config_path: Path, explicit_profile: str | None) -> SyncPipeline:
    """Assemble the reconciliation pipeline from the configuration.

    Raises:
        ConfigurationError: If the configuration or remote is invalid.
    """
    config = load_config(config_path)
    config.validate_remote()
    return SyncPipeline(
        config_loader=lambda: load_config(config_path),
        transport=create_transport(config.remote),
        state=SyncStateStore(config.state_db),
        backups=BackupStore(config.backup_dir),
        explicit_profile=explicit_profile,
    )


def exit_code_for(result: PassResult | None) -> int:
    """Map a pass result to the process exit code."""
    if result is None or result.status == PassStatus.SUCCESS:
        return EXIT_SUCCESS
    return EXIT_PARTIAL
