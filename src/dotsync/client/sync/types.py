"""Shared types and dataclasses for reconciliation.

This module provides:
- LinkMode, FileMapping, ProfileModel: Immutable profile snapshot
- SideState, Snapshot: What one side of the mappings looks like
- FileState, Action, PlannedAction, ReconciliationPlan: Classification output
- BackupRecord: Backup written before a destructive overwrite
- OutcomeStatus, MappingOutcome: Per-mapping execution result
- TriggerSource, PassStatus, PassResult: Result of one reconciliation pass
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

from dotsync.core.config import ProfileConfig


class LinkMode(str, Enum):
    """How a mapping is materialized at its local path."""

    COPY = "copy"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class FileMapping:
    """A tracked dotfile.

    Attributes:
        key: Logical key, the path relative to the user's home (e.g. ".bashrc").
        local_path: Absolute local path.
        repo_path: Path of the tracked copy relative to the repository root.
    """

    key: str
    local_path: Path
    repo_path: str

    def repo_file(self, repo_root: Path) -> Path:
        """Absolute path of the repository copy."""
        return repo_root / PurePosixPath(self.repo_path)


@dataclass(frozen=True)
class ProfileModel:
    """Immutable snapshot of one profile for a reconciliation pass."""

    name: str
    mappings: tuple[FileMapping, ...]
    ignore_patterns: tuple[str, ...] = ()
    link_mode: LinkMode = LinkMode.COPY

    @classmethod
    def from_config(cls, name: str, profile: ProfileConfig) -> ProfileModel:
        """Build the model from a configured profile.

        Mappings keep the declaration order of the configuration. The
        repository copy of key ``k`` lives at ``<profile>/<k>``.
        """
        mappings = tuple(
            FileMapping(
                key=key,
                local_path=Path(local).expanduser(),
                repo_path=str(PurePosixPath(name) / PurePosixPath(key.replace("\\", "/"))),
            )
            for key, local in profile.files.items()
        )
        return cls(
            name=name,
            mappings=mappings,
            ignore_patterns=tuple(profile.ignore_patterns),
            link_mode=LinkMode.SYMLINK if profile.use_symlinks else LinkMode.COPY,
        )

    @property
    def local_paths(self) -> list[Path]:
        return [m.local_path for m in self.mappings]


@dataclass(frozen=True)
class SideState:
    """State of one side of a mapping at snapshot time.

    Attributes:
        exists: Whether readable content exists.
        checksum: SHA-256 of the content (None when missing).
        link_target: Target of a local symlink, if the local path is one.
        linked_to_repo: Local symlink resolves to the mapping's repository copy.
        error: Read error, if the path could not be inspected.
    """

    exists: bool
    checksum: str | None = None
    link_target: Path | None = None
    linked_to_repo: bool = False
    error: str | None = None

    @classmethod
    def missing(cls) -> SideState:
        return cls(exists=False)


# Mapping key -> SideState
Snapshot = Mapping[str, SideState]


class FileState(str, Enum):
    """Classification of a mapping, derived fresh on every pass."""

    IN_SYNC = "in-sync"
    LOCAL_NEWER = "local-newer"
    REMOTE_NEWER = "remote-newer"
    LOCAL_ONLY = "local-only"
    REMOTE_ONLY = "remote-only"
    MISSING_BOTH = "missing-both"
    CONFLICT = "conflict"


class Action(str, Enum):
    """Filesystem action planned for one mapping."""

    MATERIALIZE_FROM_REMOTE = "materialize-from-remote"
    MATERIALIZE_TO_REMOTE = "materialize-to-remote"
    BACKUP_THEN_OVERWRITE = "backup-then-overwrite"
    DELETE_LOCAL = "delete-local"
    NO_OP = "no-op"
    REPORT_CONFLICT = "report-conflict"


@dataclass(frozen=True)
class PlannedAction:
    """One entry of a reconciliation plan.

    Attributes:
        mapping: The mapping this action applies to.
        action: The action to take.
        state: Classification that led to the action (None when ignored).
        wrapped: For BACKUP_THEN_OVERWRITE, the materialize action it guards.
        link_mode: Link mode of the profile.
        reason: Human-readable explanation.
        error: Snapshot read error; the executor reports it as a failure.
    """

    mapping: FileMapping
    action: Action
    state: FileState | None
    wrapped: Action | None = None
    link_mode: LinkMode = LinkMode.COPY
    reason: str = ""
    error: str | None = None

    @property
    def key(self) -> str:
        return self.mapping.key

    @property
    def effective_action(self) -> Action:
        """The materialize action behind a backup wrapper, else the action."""
        return self.wrapped if self.wrapped is not None else self.action

    @property
    def is_mutating(self) -> bool:
        return self.action not in (Action.NO_OP, Action.REPORT_CONFLICT)


@dataclass(frozen=True)
class ReconciliationPlan:
    """Ordered actions for one pass, in mapping declaration order."""

    profile: str
    actions: tuple[PlannedAction, ...]

    def __iter__(self) -> Iterator[PlannedAction]:
        return iter(self.actions)

    def __len__(self) -> int:
        return len(self.actions)

    @property
    def conflicts(self) -> list[PlannedAction]:
        return [a for a in self.actions if a.action == Action.REPORT_CONFLICT]

    @property
    def has_changes(self) -> bool:
        return any(a.is_mutating for a in self.actions)


@dataclass(frozen=True)
class BackupRecord:
    """A backup taken right before a destructive overwrite.

    Attributes:
        filename: Name of the backup file inside the backup directory.
        timestamp: Unix timestamp when the backup was written.
        original_path: Path that was backed up.
    """

    filename: str
    timestamp: float
    original_path: Path


class OutcomeStatus(str, Enum):
    """Per-mapping result of executing a plan."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"
    CONFLICTED = "conflicted"


@dataclass(frozen=True)
class MappingOutcome:
    """Result of executing one planned action."""

    planned: PlannedAction
    status: OutcomeStatus
    detail: str = ""
    backup: BackupRecord | None = None

    @property
    def key(self) -> str:
        return self.planned.key


class TriggerSource(str, Enum):
    """What started a reconciliation pass."""

    MANUAL = "manual"
    WATCHER = "watcher"
    SCHEDULE = "schedule"


class PassStatus(str, Enum):
    """Overall result of a pass."""

    SUCCESS = "success"
    PARTIAL = "partial"


@dataclass
class PassResult:
    """Full report of one reconciliation pass.

    Every mapping of the profile has exactly one outcome.
    """

    profile: str
    trigger: TriggerSource
    outcomes: list[MappingOutcome] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    transport_error: str | None = None
    pushed: bool = False
    dry_run: bool = False

    def _with_status(self, status: OutcomeStatus) -> list[MappingOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def applied(self) -> list[MappingOutcome]:
        return self._with_status(OutcomeStatus.APPLIED)

    @property
    def skipped(self) -> list[MappingOutcome]:
        return self._with_status(OutcomeStatus.SKIPPED)

    @property
    def failed(self) -> list[MappingOutcome]:
        return self._with_status(OutcomeStatus.FAILED)

    @property
    def conflicted(self) -> list[MappingOutcome]:
        return self._with_status(OutcomeStatus.CONFLICTED)

    @property
    def status(self) -> PassStatus:
        if self.failed or self.conflicted or self.transport_error:
            return PassStatus.PARTIAL
        return PassStatus.SUCCESS
