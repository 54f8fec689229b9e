"""Shared pytest fixtures for dotsync tests."""

from __future__ import annotations

import functools
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from dotsync.client.state import SyncStateStore
from dotsync.client.sync.backup import BackupStore
from dotsync.client.sync.types import FileMapping, LinkMode, ProfileModel


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Create a fake home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Create an empty repository working tree."""
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def backups(tmp_path: Path) -> BackupStore:
    """Create a backup store."""
    return BackupStore(tmp_path / "backups")


@pytest.fixture
def state(tmp_path: Path) -> Generator[SyncStateStore, None, None]:
    """Create a sync state store."""
    store = SyncStateStore(tmp_path / "state.db")
    yield store
    store.close()


def _make_profile(
    home: Path,
    keys: list[str],
    name: str = "default",
    link_mode: LinkMode = LinkMode.COPY,
    ignore_patterns: tuple[str, ...] = (),
) -> ProfileModel:
    """Build a profile mapping each key to ``home / key``."""
    return ProfileModel(
        name=name,
        mappings=tuple(
            FileMapping(key=key, local_path=home / key, repo_path=f"{name}/{key}")
            for key in keys
        ),
        ignore_patterns=ignore_patterns,
        link_mode=link_mode,
    )


@pytest.fixture
def make_profile(home: Path) -> Callable[..., ProfileModel]:
    """Factory building a profile whose keys map into the fake home."""
    return functools.partial(_make_profile, home)
