"""Reconciliation pipeline: the single coordination point for passes.

Manual commands, the ChangeWatcher and the SyncScheduler all funnel into
SyncPipeline.run_pass(). One lock guarantees that at most one pass
(selection → classification → execution) is in flight at any time.

Pass steps:
    1. Load configuration and select the active profile (fatal on error)
    2. Pull the repository working tree (abort pass on TransportFailure)
    3. Snapshot both sides and reconcile against last-known checksums
    4. Execute the plan, continuing past per-mapping failures
    5. Push working-tree changes (failure is reported, local results stand)
    6. Record checksums of applied and in-sync mappings once the push succeeds
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from dotsync.client.profiles import HostFacts, resolve_profile
from dotsync.client.sync.engine import ReconciliationEngine
from dotsync.client.sync.executor import ActionExecutor, atomic_copy
from dotsync.client.sync.snapshot import take_snapshots
from dotsync.client.sync.types import (
    Action,
    FileState,
    LinkMode,
    MappingOutcome,
    OutcomeStatus,
    PassResult,
    PlannedAction,
    ProfileModel,
    ReconciliationPlan,
    TriggerSource,
)
from dotsync.core.errors import TransportFailure
from dotsync.core.hashing import compute_file_hash

if TYPE_CHECKING:
    from dotsync.client.state import SyncStateStore
    from dotsync.client.sync.backup import BackupStore
    from dotsync.client.transport import RepositoryTransport
    from dotsync.core.config import DotsyncConfig

logger = logging.getLogger(__name__)


class SyncPipeline:
    """Runs reconciliation passes, one at a time.

    Usage:
        pipeline = SyncPipeline(load_config, transport, state, backups)
        result = pipeline.run_pass(TriggerSource.MANUAL)
    """

    def __init__(
        self,
        config_loader: Callable[[], DotsyncConfig],
        transport: RepositoryTransport,
        state: SyncStateStore,
        backups: BackupStore,
        explicit_profile: str | None = None,
        facts_provider: Callable[[], HostFacts] = HostFacts.current,
        engine: ReconciliationEngine | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config_loader: Returns a fresh configuration for every pass.
            transport: Remote repository transport.
            state: Store of last-known synced checksums.
            backups: Backup store used before destructive overwrites.
            explicit_profile: Profile forced by the caller, bypassing detection.
            facts_provider: Returns host facts for profile detection.
            engine: Reconciliation engine (default engine if None).
        """
        self._config_loader = config_loader
        self._transport = transport
        self._state = state
        self._backups = backups
        self._explicit_profile = explicit_profile
        self._facts_provider = facts_provider
        self._engine = engine or ReconciliationEngine()

        self._lock = threading.Lock()
        self._on_pass_complete: Callable[[PassResult], None] | None = None

    @property
    def is_running(self) -> bool:
        """Check if a pass is in flight."""
        return self._lock.locked()

    @property
    def transport(self) -> RepositoryTransport:
        return self._transport

    def set_on_pass_complete(self, callback: Callable[[PassResult], None]) -> None:
        """Set callback invoked with every finished PassResult."""
        self._on_pass_complete = callback

    def load_profile(self) -> ProfileModel:
        """Load configuration and build the active profile.

        Raises:
            ConfigurationError: If the profile cannot be resolved.
        """
        config = self._config_loader()
        name = resolve_profile(config, self._explicit_profile, self._facts_provider())
        return ProfileModel.from_config(name, config.get_profile(name))

    def preview(self) -> tuple[ProfileModel, ReconciliationPlan, Path]:
        """Pull and plan without executing anything.

        Returns:
            (profile, plan, repository root)

        Raises:
            ConfigurationError: If the profile cannot be resolved.
            TransportFailure: If the pull fails.
        """
        with self._lock:
            profile = self.load_profile()
            repo_root = self._pull(profile)
            return profile, self._plan(profile, repo_root), repo_root

    def run_pass(
        self,
        trigger: TriggerSource = TriggerSource.MANUAL,
        blocking: bool = True,
        dry_run: bool = False,
    ) -> PassResult | None:
        """Run one reconciliation pass.

        Args:
            trigger: What started the pass.
            blocking: Wait for an in-flight pass instead of coalescing.
            dry_run: Plan and report without touching the filesystem.

        Returns:
            The pass report, or None if the trigger was coalesced because a
            pass was already running.

        Raises:
            ConfigurationError: Fatal; raised before any filesystem mutation.
        """
        if not self._lock.acquire(blocking=blocking):
            logger.info("Pass already in progress, coalescing %s trigger", trigger.value)
            return None
        try:
            result = self._run_locked(trigger, dry_run)
        finally:
            self._lock.release()

        if self._on_pass_complete:
            self._on_pass_complete(result)
        return result

    def _pull(self, profile: ProfileModel) -> Path:
        """Pull the working tree, keeping local versions of diverged files.

        A symlinked local file reads through to the repository copy, which
        now holds the remote version. Its local version is written back as
        a regular file so classification sees both sides.
        """
        repo_root = self._transport.pull()
        if profile.link_mode != LinkMode.SYMLINK:
            return repo_root

        diverged = self._transport.diverged
        for mapping in profile.mappings:
            saved = diverged.get(mapping.repo_path)
            if saved is None or not mapping.local_path.is_symlink():
                continue
            try:
                atomic_copy(saved, mapping.local_path)
            except OSError as e:
                logger.error("Cannot restore local %s: %s", mapping.key, e)
                continue
            logger.warning("Restored local version of %s, changed on both sides", mapping.key)
        return repo_root

    def _plan(self, profile: ProfileModel, repo_root: Path) -> ReconciliationPlan:
        local, remote = take_snapshots(profile, repo_root)
        last_known = self._state.last_known_checksums(profile.name)
        return self._engine.reconcile(profile, local, remote, last_known)

    def _run_locked(self, trigger: TriggerSource, dry_run: bool) -> PassResult:
        profile = self.load_profile()
        result = PassResult(profile=profile.name, trigger=trigger, dry_run=dry_run)
        logger.info("Starting %s pass for profile %s", trigger.value, profile.name)

        try:
            repo_root = self._pull(profile)
        except TransportFailure as e:
            logger.error("Pull failed, skipping pass: %s", e)
            result.transport_error = str(e)
            result.outcomes = [
                MappingOutcome(
                    PlannedAction(mapping=m, action=Action.NO_OP, state=None, link_mode=profile.link_mode),
                    OutcomeStatus.SKIPPED,
                    "remote unavailable",
                )
                for m in profile.mappings
            ]
            result.finished_at = time.time()
            return result

        plan = self._plan(profile, repo_root)
        executor = ActionExecutor(repo_root, self._backups, dry_run=dry_run)
        result.outcomes = executor.execute(plan)

        if not dry_run:
            try:
                result.pushed = self._transport.push(f"Sync dotfiles ({profile.name})")
            except TransportFailure as e:
                # Unpublished results must be reconciled again next pass
                logger.error("Push failed, checksums not recorded: %s", e)
                result.transport_error = str(e)
            else:
                self._record(profile, result.outcomes, repo_root)
                self._state.set_last_sync_at(time.time())

        result.finished_at = time.time()
        self._log_summary(result)
        return result

    def _record(
        self,
        profile: ProfileModel,
        outcomes: list[MappingOutcome],
        repo_root: Path,
    ) -> None:
        """Record the shared checksum of every mapping both sides now agree on."""
        for outcome in outcomes:
            planned = outcome.planned
            if planned.action == Action.DELETE_LOCAL:
                if outcome.status == OutcomeStatus.APPLIED:
                    self._state.remove_file(profile.name, planned.key)
                continue

            agreed = outcome.status == OutcomeStatus.APPLIED or (
                outcome.status == OutcomeStatus.SKIPPED and planned.state == FileState.IN_SYNC
            )
            if not agreed:
                continue

            repo_file = planned.mapping.repo_file(repo_root)
            try:
                checksum = compute_file_hash(repo_file)
            except OSError as e:
                logger.warning("Cannot record %s: %s", planned.key, e)
                continue
            self._state.mark_synced(profile.name, planned.key, checksum)

    def _log_summary(self, result: PassResult) -> None:
        logger.info(
            "Pass finished for %s: %d applied, %d skipped, %d failed, %d conflicts",
            result.profile,
            len(result.applied),
            len(result.skipped),
            len(result.failed),
            len(result.conflicted),
        )
