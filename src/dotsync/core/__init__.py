"""Core module - Configuration, errors and hashing."""

from dotsync.core.config import (
    DetectionCondition,
    DetectionRule,
    DotsyncConfig,
    ProfileConfig,
    RemoteConfig,
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from dotsync.core.errors import (
    BackupError,
    ConfigurationError,
    DotsyncError,
    FilesystemFailure,
    NoProfileResolved,
    TransportFailure,
)
from dotsync.core.hashing import compute_bytes_hash, compute_file_hash

__all__ = [
    # Config
    "DetectionCondition",
    "DetectionRule",
    "DotsyncConfig",
    "ProfileConfig",
    "RemoteConfig",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
    # Errors
    "BackupError",
    "ConfigurationError",
    "DotsyncError",
    "FilesystemFailure",
    "NoProfileResolved",
    "TransportFailure",
    # Hashing
    "compute_bytes_hash",
    "compute_file_hash",
]
