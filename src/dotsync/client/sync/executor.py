"""Action executor: apply a reconciliation plan to the filesystem.

Each planned action is applied independently; a failing mapping is reported
and the executor moves on to the next one. The only paths touched are the
mapping's local path, its repository copy and the backup directory.

Writes go to a temporary sibling first and are moved into place with
os.replace, so an interrupted write never leaves a partial file behind.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from dotsync.client.sync.backup import BackupStore
from dotsync.client.sync.ignore import TEMP_SUFFIX
from dotsync.client.sync.types import (
    Action,
    BackupRecord,
    LinkMode,
    MappingOutcome,
    OutcomeStatus,
    PlannedAction,
    ReconciliationPlan,
)
from dotsync.core.errors import BackupError, FilesystemFailure

logger = logging.getLogger(__name__)


def atomic_copy(source: Path, dest: Path) -> None:
    """Copy ``source`` over ``dest`` atomically, preserving permission bits.

    If ``dest`` is a symlink, the link itself is replaced by a regular file.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest.with_name(dest.name + TEMP_SUFFIX)
    try:
        shutil.copy2(source, tmp_path)
        os.replace(tmp_path, dest)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


def atomic_symlink(target: Path, dest: Path) -> None:
    """Create or replace a symbolic link at ``dest`` pointing at ``target``."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest.with_name(dest.name + TEMP_SUFFIX)
    tmp_path.unlink(missing_ok=True)
    try:
        os.symlink(target, tmp_path)
        os.replace(tmp_path, dest)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise


class ActionExecutor:
    """Applies plans produced by the ReconciliationEngine.

    Usage:
        executor = ActionExecutor(repo_root, BackupStore(backup_dir))
        outcomes = executor.execute(plan)
    """

    def __init__(
        self,
        repo_root: Path,
        backups: BackupStore,
        dry_run: bool = False,
    ) -> None:
        """Initialize the executor.

        Args:
            repo_root: Root of the repository working tree.
            backups: Where to write backups before destructive overwrites.
            dry_run: Report what would happen without touching anything.
        """
        self._repo_root = Path(repo_root)
        self._backups = backups
        self._dry_run = dry_run

    def execute(self, plan: ReconciliationPlan) -> list[MappingOutcome]:
        """Apply every action of the plan, in order.

        Returns:
            One outcome per planned action.
        """
        outcomes = [self._execute_one(planned) for planned in plan]
        logger.debug(
            "Executed plan for %s: %d actions",
            plan.profile,
            len(outcomes),
        )
        return outcomes

    def _execute_one(self, planned: PlannedAction) -> MappingOutcome:
        if planned.error:
            logger.error("Cannot sync %s: %s", planned.key, planned.error)
            return MappingOutcome(planned, OutcomeStatus.FAILED, planned.error)

        if planned.action == Action.NO_OP:
            return MappingOutcome(planned, OutcomeStatus.SKIPPED, planned.reason or "no-op")

        if planned.action == Action.REPORT_CONFLICT:
            logger.warning("Conflict on %s: %s", planned.key, planned.reason)
            return MappingOutcome(planned, OutcomeStatus.CONFLICTED, planned.reason)

        if self._dry_run:
            return MappingOutcome(planned, OutcomeStatus.SKIPPED, "dry run")

        backup: BackupRecord | None = None
        try:
            if planned.action == Action.BACKUP_THEN_OVERWRITE:
                backup = self._backup(planned)
            self._apply(planned)
        except BackupError as e:
            logger.error("Skipping overwrite of %s: %s", planned.key, e)
            return MappingOutcome(planned, OutcomeStatus.FAILED, str(e))
        except (OSError, FilesystemFailure) as e:
            logger.error("Failed to apply %s to %s: %s", planned.effective_action.value, planned.key, e)
            return MappingOutcome(planned, OutcomeStatus.FAILED, str(e), backup=backup)

        return MappingOutcome(
            planned,
            OutcomeStatus.APPLIED,
            planned.effective_action.value,
            backup=backup,
        )

    def _backup(self, planned: PlannedAction) -> BackupRecord | None:
        local_path = planned.mapping.local_path
        if not local_path.exists():
            return None
        return self._backups.backup(local_path, key=planned.key)

    def _apply(self, planned: PlannedAction) -> None:
        action = planned.effective_action
        if action == Action.MATERIALIZE_FROM_REMOTE:
            self._materialize_from_remote(planned)
        elif action == Action.MATERIALIZE_TO_REMOTE:
            self._materialize_to_remote(planned)
        elif action == Action.DELETE_LOCAL:
            self._delete_local(planned)
        else:
            raise FilesystemFailure(planned.key, f"unsupported action {action.value}")

    def _materialize_from_remote(self, planned: PlannedAction) -> None:
        mapping = planned.mapping
        repo_file = mapping.repo_file(self._repo_root)
        if planned.link_mode == LinkMode.SYMLINK:
            atomic_symlink(repo_file, mapping.local_path)
            logger.info("Created symlink: %s -> %s", mapping.local_path, repo_file)
        else:
            atomic_copy(repo_file, mapping.local_path)
            logger.info("Synced from repository: %s", mapping.key)

    def _materialize_to_remote(self, planned: PlannedAction) -> None:
        mapping = planned.mapping
        repo_file = mapping.repo_file(self._repo_root)
        atomic_copy(mapping.local_path, repo_file)
        logger.info("Synced to repository: %s", mapping.key)
        if planned.link_mode == LinkMode.SYMLINK:
            # Content is now identical, the local file becomes a link
            atomic_symlink(repo_file, mapping.local_path)
            logger.info("Created symlink: %s -> %s", mapping.local_path, repo_file)

    def _delete_local(self, planned: PlannedAction) -> None:
        local_path = planned.mapping.local_path
        if not local_path.is_symlink():
            raise FilesystemFailure(planned.key, "refusing to delete a regular file")
        local_path.unlink()
        logger.info("Removed stale link: %s", local_path)
