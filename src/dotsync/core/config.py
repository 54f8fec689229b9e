"""Configuration classes for dotsync.

This module defines the in-memory configuration model and its JSON
representation:
- RemoteConfig: Remote repository location and credentials
- ProfileConfig: Declared file mappings of one profile
- DetectionCondition / DetectionRule: Automatic profile detection
- DotsyncConfig: The whole configuration document

Configuration is stored as JSON in ``~/.dotsync/config.json``. A missing file
is replaced by a default configuration holding a single ``default`` profile.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotsync.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"
DEFAULT_SYNC_INTERVAL = 300
DEFAULT_IGNORE = [".git", ".gitignore"]
CONDITION_KINDS = ("hostname", "os", "env")


def get_config_dir() -> Path:
    """Get the configuration directory for dotsync.

    Returns:
        Path to ~/.dotsync.
    """
    return Path.home() / ".dotsync"


def get_config_file() -> Path:
    """Get the path to the config file.

    The ``DOTSYNC_CONFIG`` environment variable overrides the default location.
    """
    override = os.environ.get("DOTSYNC_CONFIG")
    if override:
        return Path(override).expanduser()
    return get_config_dir() / "config.json"


@dataclass
class RemoteConfig:
    """Configuration for the remote dotfiles repository.

    Attributes:
        repo_url: Clone URL of the repository (https, ssh or local path).
        token: Access token injected into https URLs (may be empty).
        branch: Branch to pull from and push to.
        repo_path: Local working tree of the repository.
    """

    repo_url: str = ""
    token: str = ""
    branch: str = "master"
    repo_path: Path = field(default_factory=lambda: get_config_dir() / "repo")

    def __post_init__(self) -> None:
        """Normalize repository path."""
        self.repo_path = Path(self.repo_path).expanduser()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RemoteConfig:
        remote = cls(
            repo_url=str(data.get("repo_url", "")),
            token=str(data.get("token", "")),
            branch=str(data.get("branch", "master")),
        )
        if data.get("repo_path"):
            remote.repo_path = Path(data["repo_path"]).expanduser()
        return remote

    def to_dict(self) -> dict[str, Any]:
        return {
            "repo_url": self.repo_url,
            "token": self.token,
            "branch": self.branch,
            "repo_path": str(self.repo_path),
        }


@dataclass
class ProfileConfig:
    """Declared mappings of one profile.

    Attributes:
        files: Logical key (path relative to home) -> local absolute path.
            Insertion order is the declaration order.
        ignore_patterns: Glob patterns of keys excluded from synchronization.
        use_symlinks: Link local paths to the repository copy instead of copying.
    """

    files: dict[str, str] = field(default_factory=dict)
    ignore_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE))
    use_symlinks: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProfileConfig:
        files = data.get("files", {})
        if not isinstance(files, dict):
            raise ConfigurationError("Profile 'files' must be an object of key -> path")
        return cls(
            files={str(k): str(v) for k, v in files.items()},
            ignore_patterns=[str(p) for p in data.get("ignore_patterns", DEFAULT_IGNORE)],
            use_symlinks=bool(data.get("use_symlinks", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "files": dict(self.files),
            "ignore_patterns": list(self.ignore_patterns),
            "use_symlinks": self.use_symlinks,
        }


@dataclass(frozen=True)
class DetectionCondition:
    """One condition of a detection rule.

    ``kind`` is one of ``hostname``, ``os`` or ``env``. For ``env`` the
    variable name is carried in ``name``.
    """

    kind: str
    value: str
    name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetectionCondition:
        kind = str(data.get("kind", "")).lower()
        if kind not in CONDITION_KINDS:
            raise ConfigurationError(f"Unknown detection condition kind: {kind!r}")
        if kind == "env" and not data.get("name"):
            raise ConfigurationError("Environment condition requires a variable name")
        return cls(
            kind=kind,
            value=str(data.get("value", "")),
            name=str(data["name"]) if data.get("name") else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind, "value": self.value}
        if self.name is not None:
            data["name"] = self.name
        return data


@dataclass(frozen=True)
class DetectionRule:
    """Selects ``profile`` when all conditions hold."""

    profile: str
    conditions: tuple[DetectionCondition, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetectionRule:
        if not data.get("profile"):
            raise ConfigurationError("Detection rule requires a profile")
        return cls(
            profile=str(data["profile"]),
            conditions=tuple(
                DetectionCondition.from_dict(c) for c in data.get("conditions", [])
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "profile": self.profile,
            "conditions": [c.to_dict() for c in self.conditions],
        }


@dataclass
class DotsyncConfig:
    """Complete dotsync configuration.

    Attributes:
        profiles: Profile name -> ProfileConfig.
        remote: Remote repository settings.
        sync_interval: Scheduler interval in seconds.
        default_profile: Profile used when no detection rule matches.
        detection_rules: Ordered profile detection rules.
        backup_dir: Directory receiving backups before destructive overwrites.
        state_db: SQLite database with last-known synced checksums.
        debounce_s: Watcher quiet window in seconds.
        max_debounce_s: Upper bound of one watcher debounce cycle.
    """

    profiles: dict[str, ProfileConfig] = field(default_factory=dict)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync_interval: int = DEFAULT_SYNC_INTERVAL
    default_profile: str | None = DEFAULT_PROFILE
    detection_rules: list[DetectionRule] = field(default_factory=list)
    backup_dir: Path = field(default_factory=lambda: get_config_dir() / "backups")
    state_db: Path = field(default_factory=lambda: get_config_dir() / "state.db")
    debounce_s: float = 1.0
    max_debounce_s: float = 10.0

    @classmethod
    def default(cls) -> DotsyncConfig:
        """Configuration written on first run."""
        return cls(profiles={DEFAULT_PROFILE: ProfileConfig()})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DotsyncConfig:
        """Build a configuration from its JSON document.

        Raises:
            ConfigurationError: If the document is malformed.
        """
        try:
            profiles = {
                str(name): ProfileConfig.from_dict(p)
                for name, p in data.get("profiles", {}).items()
            }
            detection = data.get("profile_detection") or {}
            config = cls(
                profiles=profiles,
                remote=RemoteConfig.from_dict(data.get("remote", {})),
                sync_interval=int(data.get("sync_interval", DEFAULT_SYNC_INTERVAL)),
                default_profile=data.get("default_profile", DEFAULT_PROFILE),
                detection_rules=[DetectionRule.from_dict(r) for r in detection.get("rules", [])],
                debounce_s=float(data.get("debounce_s", 1.0)),
                max_debounce_s=float(data.get("max_debounce_s", 10.0)),
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Malformed configuration: {e}") from e

        if data.get("backup_dir"):
            config.backup_dir = Path(data["backup_dir"]).expanduser()
        if data.get("state_db"):
            config.state_db = Path(data["state_db"]).expanduser()
        config.validate()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
            "remote": self.remote.to_dict(),
            "sync_interval": self.sync_interval,
            "default_profile": self.default_profile,
            "profile_detection": {"rules": [r.to_dict() for r in self.detection_rules]},
            "backup_dir": str(self.backup_dir),
            "state_db": str(self.state_db),
            "debounce_s": self.debounce_s,
            "max_debounce_s": self.max_debounce_s,
        }

    def validate(self) -> None:
        """Check invariants that do not depend on the remote.

        Raises:
            ConfigurationError: On the first violated invariant.
        """
        if self.sync_interval <= 0:
            raise ConfigurationError("Sync interval must be greater than 0")
        if self.debounce_s <= 0 or self.max_debounce_s < self.debounce_s:
            raise ConfigurationError("Debounce window must be positive and below max_debounce_s")
        if self.default_profile is not None and self.default_profile not in self.profiles:
            raise ConfigurationError(f"Default profile not found: {self.default_profile}")
        for rule in self.detection_rules:
            if rule.profile not in self.profiles:
                raise ConfigurationError(f"Detection rule references unknown profile: {rule.profile}")
        for name, profile in self.profiles.items():
            for key, local in profile.files.items():
                if not key or Path(key).is_absolute() or ".." in Path(key).parts:
                    raise ConfigurationError(f"Invalid mapping key in profile {name}: {key!r}")
                if not Path(local).expanduser().is_absolute():
                    raise ConfigurationError(f"Mapping {key!r} must use an absolute local path")

    def validate_remote(self) -> None:
        """Check that a remote repository is configured.

        Raises:
            ConfigurationError: If the repository URL is missing.
        """
        if not self.remote.repo_url:
            raise ConfigurationError("Remote repository URL is missing in the configuration")

    def get_profile(self, name: str) -> ProfileConfig:
        """Get a profile by name.

        Raises:
            ConfigurationError: If the profile does not exist.
        """
        try:
            return self.profiles[name]
        except KeyError:
            raise ConfigurationError(f"Profile not found: {name}") from None


def load_config(path: Path | None = None) -> DotsyncConfig:
    """Load configuration from the config file.

    A missing file is created with the default configuration.

    Raises:
        ConfigurationError: If the file cannot be parsed or is invalid.
    """
    config_file = path or get_config_file()
    if not config_file.exists():
        config = DotsyncConfig.default()
        save_config(config, config_file)
        logger.info("Created default configuration at %s", config_file)
        return config

    try:
        data = json.loads(config_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to read config file {config_file}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a JSON object")
    return DotsyncConfig.from_dict(data)


def save_config(config: DotsyncConfig, path: Path | None = None) -> None:
    """Save configuration to the config file."""
    config_file = path or get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
