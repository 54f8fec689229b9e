"""Filesystem snapshots of the local and repository sides.

A snapshot is read once at the start of every pass and never cached: either
side may change externally between passes.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotsync.client.sync.types import FileMapping, ProfileModel, SideState, Snapshot
from dotsync.core.hashing import compute_file_hash

logger = logging.getLogger(__name__)


def _realpath(path: Path) -> str:
    return os.path.realpath(path)


def _read_content(path: Path) -> SideState:
    """Checksum a path that is expected to be a regular file."""
    if path.is_dir():
        return SideState(exists=False, error=f"{path} is a directory")
    return SideState(exists=True, checksum=compute_file_hash(path))


def inspect_local(mapping: FileMapping, repo_root: Path) -> SideState:
    """Inspect the local side of a mapping.

    A symlink resolving to the mapping's repository copy is reported with
    ``linked_to_repo`` set, carrying the repository content when the copy
    exists. Other symlinks are followed; a dangling one counts as missing.
    """
    path = mapping.local_path
    try:
        if path.is_symlink():
            target = Path(os.readlink(path))
            repo_file = mapping.repo_file(repo_root)
            if _realpath(path) == _realpath(repo_file):
                if repo_file.is_file():
                    return SideState(
                        exists=True,
                        checksum=compute_file_hash(repo_file),
                        link_target=target,
                        linked_to_repo=True,
                    )
                return SideState(exists=False, link_target=target, linked_to_repo=True)
            if not path.exists():
                return SideState(exists=False, link_target=target)
            state = _read_content(path)
            return SideState(
                exists=state.exists,
                checksum=state.checksum,
                link_target=target,
                error=state.error,
            )
        if not path.exists():
            return SideState.missing()
        return _read_content(path)
    except OSError as e:
        logger.warning("Cannot inspect local file %s: %s", path, e)
        return SideState(exists=False, error=str(e))


def inspect_remote(mapping: FileMapping, repo_root: Path) -> SideState:
    """Inspect the repository copy of a mapping."""
    path = mapping.repo_file(repo_root)
    try:
        if not path.exists():
            return SideState.missing()
        return _read_content(path)
    except OSError as e:
        logger.warning("Cannot inspect repository file %s: %s", path, e)
        return SideState(exists=False, error=str(e))


def take_snapshots(profile: ProfileModel, repo_root: Path) -> tuple[Snapshot, Snapshot]:
    """Read both sides of every mapping of the profile.

    Returns:
        (local_snapshot, remote_snapshot), both keyed by mapping key.
    """
    local: dict[str, SideState] = {}
    remote: dict[str, SideState] = {}
    for mapping in profile.mappings:
        local[mapping.key] = inspect_local(mapping, repo_root)
        remote[mapping.key] = inspect_remote(mapping, repo_root)
    logger.debug("Snapshot of %d mappings for profile %s", len(profile.mappings), profile.name)
    return local, remote
