"""Ignore patterns for dotfile mappings and watcher events.

This module provides:
- IgnorePatterns: gitignore-style glob matching on mapping keys and paths
- DEFAULT_IGNORE_PATTERNS: Patterns that are never synchronized
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable
from pathlib import Path

# Temporary files written by the executor use this suffix
TEMP_SUFFIX = ".dotsync-tmp"

DEFAULT_IGNORE_PATTERNS = [
    ".git",
    ".git/**",
    "*/.git/**",
    ".DS_Store",
    "*.swp",
    "*.swo",
    f"*{TEMP_SUFFIX}",
]


class IgnorePatterns:
    """Handles ignore pattern matching for mapping keys."""

    def __init__(self, patterns: Iterable[str] | None = None) -> None:
        """Initialize with patterns.

        Args:
            patterns: Extra gitignore-style patterns on top of the defaults.
        """
        self._patterns = list(DEFAULT_IGNORE_PATTERNS)
        if patterns:
            self._patterns.extend(patterns)

    @property
    def patterns(self) -> list[str]:
        return list(self._patterns)

    def matches(self, rel_str: str) -> bool:
        """Check a forward-slash relative path against the patterns.

        Args:
            rel_str: Relative path such as a mapping key.

        Returns:
            True if the path should be ignored.
        """
        rel_str = rel_str.replace("\\", "/").strip("/")
        name = rel_str.rsplit("/", 1)[-1]
        parts = rel_str.split("/")

        for pattern in self._patterns:
            # Directory-only pattern: match any leading component
            if pattern.endswith("/"):
                stripped = pattern[:-1]
                if any(fnmatch.fnmatch(part, stripped) for part in parts[:-1]):
                    return True
            elif "**" in pattern:
                if fnmatch.fnmatch(rel_str, pattern):
                    return True
            elif fnmatch.fnmatch(rel_str, pattern) or fnmatch.fnmatch(name, pattern):
                return True

        return False

    def should_ignore(self, path: Path, base_path: Path) -> bool:
        """Check if an absolute path below ``base_path`` should be ignored.

        Paths outside ``base_path`` are never ignored.
        """
        try:
            rel_path = path.relative_to(base_path)
        except ValueError:
            return False
        return self.matches(str(rel_path))
