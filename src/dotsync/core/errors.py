"""Exception hierarchy for dotsync.

This module defines:
- DotsyncError: Base class for every error raised by dotsync
- ConfigurationError / NoProfileResolved: Fatal, abort a pass before any mutation
- FilesystemFailure / BackupError: Local to one mapping, reported in the pass result
- TransportFailure: Remote pull/push failed
"""

from __future__ import annotations


class DotsyncError(Exception):
    """Base exception for dotsync errors."""


class ConfigurationError(DotsyncError):
    """Configuration is invalid or cannot be resolved."""


class NoProfileResolved(ConfigurationError):
    """No detection rule matched and no default profile is configured."""


class FilesystemFailure(DotsyncError):
    """A filesystem operation on one mapping failed.

    Attributes:
        key: Logical key of the mapping the failure belongs to.
    """

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"{key}: {message}")


class BackupError(FilesystemFailure):
    """Failed to write a backup before a destructive overwrite."""


class TransportFailure(DotsyncError):
    """Remote repository pull or push failed."""
