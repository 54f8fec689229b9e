"""Reconciliation of dotfile mappings against the repository working tree.

Architecture:
    ChangeWatcher ─┐
    SyncScheduler ─┼─> SyncPipeline → ReconciliationEngine → ActionExecutor
    manual command ┘

Components:
- **SyncPipeline**: Single-flight coordination of passes
- **ReconciliationEngine**: Pure classification of each mapping into a plan
- **ActionExecutor**: Applies a plan to the filesystem, with backups
- **ChangeWatcher**: Debounced watchdog trigger
- **SyncScheduler**: Interval trigger
- **BackupStore**: Copies of files taken before destructive overwrites
"""

from dotsync.client.sync.backup import BackupStore, generate_backup_filename
from dotsync.client.sync.engine import ReconciliationEngine, reconcile
from dotsync.client.sync.executor import ActionExecutor, atomic_copy, atomic_symlink
from dotsync.client.sync.ignore import IgnorePatterns
from dotsync.client.sync.pipeline import SyncPipeline
from dotsync.client.sync.scheduler import SyncScheduler
from dotsync.client.sync.snapshot import inspect_local, inspect_remote, take_snapshots
from dotsync.client.sync.types import (
    Action,
    BackupRecord,
    FileMapping,
    FileState,
    LinkMode,
    MappingOutcome,
    OutcomeStatus,
    PassResult,
    PassStatus,
    PlannedAction,
    ProfileModel,
    ReconciliationPlan,
    SideState,
    Snapshot,
    TriggerSource,
)
from dotsync.client.sync.watcher import ChangeWatcher, WatcherState

__all__ = [
    # Coordination
    "SyncPipeline",
    "ChangeWatcher",
    "WatcherState",
    "SyncScheduler",
    # Classification
    "ReconciliationEngine",
    "reconcile",
    "inspect_local",
    "inspect_remote",
    "take_snapshots",
    "IgnorePatterns",
    # Execution
    "ActionExecutor",
    "atomic_copy",
    "atomic_symlink",
    "BackupStore",
    "generate_backup_filename",
    # Types
    "Action",
    "BackupRecord",
    "FileMapping",
    "FileState",
    "LinkMode",
    "MappingOutcome",
    "OutcomeStatus",
    "PassResult",
    "PassStatus",
    "PlannedAction",
    "ProfileModel",
    "ReconciliationPlan",
    "SideState",
    "Snapshot",
    "TriggerSource",
]
