"""Tests for CLI commands - add, remove, sync, diff, schedule."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from dotsync.client.cli import EXIT_CONFIG_ERROR, EXIT_PARTIAL, EXIT_SUCCESS, canonicalize_path, cli
from dotsync.client.cli.config import build_pipeline
from dotsync.client.cli.sync import follow_profile
from dotsync.core.errors import ConfigurationError


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Undo the handler installed by the CLI group."""
    logger = logging.getLogger("dotsync")
    handlers = logger.handlers[:]
    yield
    logger.handlers = handlers
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a fake home directory and make it the current user's."""
    path = tmp_path / "home"
    path.mkdir()
    monkeypatch.setenv("HOME", str(path))
    return path


@pytest.fixture
def config_file(tmp_path: Path, home: Path) -> Path:
    """Write a configuration syncing into a plain directory."""
    path = tmp_path / "config.json"
    write_config(path, tmp_path)
    return path


def write_config(path: Path, base: Path, files: dict[str, str] | None = None, **extra: Any) -> None:
    data: dict[str, Any] = {
        "profiles": {"default": {"files": files or {}}},
        "remote": {"repo_url": f"dir://{base / 'repo'}"},
        "state_db": str(base / "state.db"),
        "backup_dir": str(base / "backups"),
    }
    data.update(extra)
    path.write_text(json.dumps(data))


def tracked_files(config_file: Path) -> dict[str, str]:
    return json.loads(config_file.read_text())["profiles"]["default"]["files"]


def invoke(runner: CliRunner, config_file: Path, *args: str) -> Any:
    return runner.invoke(cli, ["--config", str(config_file), *args])


class TestCanonicalizePath:
    """Tests for canonicalize_path."""

    def test_key_relative_to_home(self, tmp_path: Path) -> None:
        """Keys are home-relative with forward slashes."""
        path, key = canonicalize_path(str(tmp_path / ".config" / "git" / "config"), home=tmp_path)
        assert path == tmp_path / ".config" / "git" / "config"
        assert key == ".config/git/config"

    def test_normalizes_dots(self, tmp_path: Path) -> None:
        """Redundant components are removed."""
        _, key = canonicalize_path(str(tmp_path / ".config" / ".." / ".bashrc"), home=tmp_path)
        assert key == ".bashrc"

    def test_symlink_not_followed(self, tmp_path: Path) -> None:
        """A link keeps its own location."""
        target = tmp_path / "repo" / ".bashrc"
        target.parent.mkdir()
        target.write_text("x")
        (tmp_path / ".bashrc").symlink_to(target)

        path, key = canonicalize_path(str(tmp_path / ".bashrc"), home=tmp_path)

        assert path == tmp_path / ".bashrc"
        assert key == ".bashrc"

    def test_outside_home_rejected(self, tmp_path: Path) -> None:
        """Paths outside the home directory cannot be tracked."""
        with pytest.raises(ConfigurationError):
            canonicalize_path("/etc/hosts", home=tmp_path / "home")

    def test_home_itself_rejected(self, tmp_path: Path) -> None:
        """The home directory is not a file mapping."""
        with pytest.raises(ConfigurationError):
            canonicalize_path(str(tmp_path), home=tmp_path)


class TestAddCommand:
    """Tests for 'dotsync add' command."""

    def test_add_tracks_file(self, runner: CliRunner, home: Path, config_file: Path) -> None:
        """Add should store the canonical key and absolute path."""
        (home / ".bashrc").write_text("x")

        result = invoke(runner, config_file, "add", str(home / ".bashrc"))

        assert result.exit_code == EXIT_SUCCESS
        assert "Added .bashrc to profile default" in result.output
        assert tracked_files(config_file) == {".bashrc": str(home / ".bashrc")}

    def test_add_twice_is_idempotent(self, runner: CliRunner, home: Path, config_file: Path) -> None:
        """Adding a tracked file reports it and changes nothing."""
        (home / ".vimrc").write_text("x")
        invoke(runner, config_file, "add", str(home / ".vimrc"))

        result = invoke(runner, config_file, "add", str(home / ".vimrc"))

        assert result.exit_code == EXIT_SUCCESS
        assert "already tracked" in result.output
        assert len(tracked_files(config_file)) == 1

    def test_add_missing_file(self, runner: CliRunner, home: Path, config_file: Path) -> None:
        """Add should fail for a file that does not exist."""
        result = invoke(runner, config_file, "add", str(home / ".nope"))

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "File not found" in result.output

    def test_add_outside_home(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """Add should refuse files outside the home directory."""
        outside = tmp_path / "outside.txt"
        outside.write_text("x")

        result = invoke(runner, config_file, "add", str(outside))

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "not inside the home directory" in result.output

    def test_add_unknown_profile(self, runner: CliRunner, home: Path, config_file: Path) -> None:
        """Add should fail for an unknown profile."""
        (home / ".bashrc").write_text("x")

        result = invoke(runner, config_file, "add", str(home / ".bashrc"), "--profile", "work")

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "work" in result.output


class TestRemoveCommand:
    """Tests for 'dotsync remove' command."""

    def test_remove_untracks_file(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """Remove should drop the mapping and keep the file."""
        (home / ".bashrc").write_text("x")
        write_config(config_file, tmp_path, files={".bashrc": str(home / ".bashrc")})

        result = invoke(runner, config_file, "remove", str(home / ".bashrc"))

        assert result.exit_code == EXIT_SUCCESS
        assert "Removed .bashrc" in result.output
        assert tracked_files(config_file) == {}
        assert (home / ".bashrc").read_text() == "x"

    def test_remove_untracked(self, runner: CliRunner, home: Path, config_file: Path) -> None:
        """Remove should fail for a file that is not tracked."""
        result = invoke(runner, config_file, "remove", str(home / ".bashrc"))

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "not tracked" in result.output

    def test_remove_replaces_symlink(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """In symlink mode the link becomes a regular copy."""
        target = tmp_path / "repo" / "default" / ".bashrc"
        target.parent.mkdir(parents=True)
        target.write_text("from repo")
        (home / ".bashrc").symlink_to(target)
        data = {
            "profiles": {
                "default": {"files": {".bashrc": str(home / ".bashrc")}, "use_symlinks": True}
            },
            "remote": {"repo_url": f"dir://{tmp_path / 'repo'}"},
            "state_db": str(tmp_path / "state.db"),
        }
        config_file.write_text(json.dumps(data))

        result = invoke(runner, config_file, "remove", str(home / ".bashrc"))

        assert result.exit_code == EXIT_SUCCESS
        assert not (home / ".bashrc").is_symlink()
        assert (home / ".bashrc").read_text() == "from repo"
        assert target.exists()


class TestSyncCommand:
    """Tests for 'dotsync sync' command."""

    def test_sync_uploads(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """A first sync uploads local files and exits 0."""
        (home / ".bashrc").write_text("alias ll='ls -l'\n")
        write_config(config_file, tmp_path, files={".bashrc": str(home / ".bashrc")})

        result = invoke(runner, config_file, "sync")

        assert result.exit_code == EXIT_SUCCESS
        assert "↑ .bashrc" in result.output
        assert (tmp_path / "repo" / "default" / ".bashrc").read_text() == "alias ll='ls -l'\n"

    def test_sync_up_to_date(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """A second sync reports nothing to do."""
        (home / ".bashrc").write_text("x")
        write_config(config_file, tmp_path, files={".bashrc": str(home / ".bashrc")})
        invoke(runner, config_file, "sync")

        result = invoke(runner, config_file, "sync")

        assert result.exit_code == EXIT_SUCCESS
        assert "Everything is up to date." in result.output

    def test_sync_dry_run(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """Dry run reports the plan without writing."""
        (home / ".bashrc").write_text("x")
        write_config(config_file, tmp_path, files={".bashrc": str(home / ".bashrc")})

        result = invoke(runner, config_file, "sync", "--dry-run")

        assert result.exit_code == EXIT_SUCCESS
        assert ".bashrc (dry run)" in result.output
        assert "Dry run:" in result.output
        assert not (tmp_path / "repo" / "default" / ".bashrc").exists()

    def test_sync_conflict_is_partial(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """Both sides differing without history exits with the partial code."""
        (home / ".gitconfig").write_text("local")
        (tmp_path / "repo" / "default").mkdir(parents=True)
        (tmp_path / "repo" / "default" / ".gitconfig").write_text("remote")
        write_config(config_file, tmp_path, files={".gitconfig": str(home / ".gitconfig")})

        result = invoke(runner, config_file, "sync")

        assert result.exit_code == EXIT_PARTIAL
        assert "Conflicts:" in result.output
        assert (home / ".gitconfig").read_text() == "local"

    def test_sync_without_remote(self, runner: CliRunner, tmp_path: Path, home: Path) -> None:
        """A missing repository URL is a configuration error."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"profiles": {"default": {}}}))

        result = invoke(runner, config_file, "sync")

        assert result.exit_code == EXIT_CONFIG_ERROR
        assert "repository URL is missing" in result.output

    def test_sync_malformed_config(self, runner: CliRunner, tmp_path: Path, home: Path) -> None:
        """An unreadable configuration is a configuration error."""
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        result = invoke(runner, config_file, "sync")

        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_sync_unknown_profile(self, runner: CliRunner, config_file: Path) -> None:
        """An explicit unknown profile is a configuration error."""
        result = invoke(runner, config_file, "sync", "--profile", "work")

        assert result.exit_code == EXIT_CONFIG_ERROR


class TestDiffCommand:
    """Tests for 'dotsync diff' command."""

    def test_no_differences(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """Diff after a sync shows nothing."""
        (home / ".bashrc").write_text("x\n")
        write_config(config_file, tmp_path, files={".bashrc": str(home / ".bashrc")})
        invoke(runner, config_file, "sync")

        result = invoke(runner, config_file, "diff")

        assert result.exit_code == EXIT_SUCCESS
        assert "No differences." in result.output

    def test_only_in_local(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """Files never uploaded are listed as local only."""
        (home / ".bashrc").write_text("x\n")
        write_config(config_file, tmp_path, files={".bashrc": str(home / ".bashrc")})

        result = invoke(runner, config_file, "diff")

        assert "Only in local: .bashrc" in result.output

    def test_unified_diff(
        self, runner: CliRunner, home: Path, tmp_path: Path, config_file: Path
    ) -> None:
        """Local edits are shown as a unified diff against the repository."""
        (home / ".vimrc").write_text("set number\n")
        write_config(config_file, tmp_path, files={".vimrc": str(home / ".vimrc")})
        invoke(runner, config_file, "sync")
        (home / ".vimrc").write_text("set relativenumber\n")

        result = invoke(runner, config_file, "diff")

        assert result.exit_code == EXIT_SUCCESS
        assert "-set number" in result.output
        assert "+set relativenumber" in result.output
        assert (tmp_path / "repo" / "default" / ".vimrc").read_text() == "set number\n"


class TestScheduleCommand:
    """Tests for 'dotsync schedule' option parsing."""

    def test_interval_must_be_positive(self, runner: CliRunner, config_file: Path) -> None:
        """A zero interval is rejected by click."""
        result = invoke(runner, config_file, "schedule", "--interval", "0")

        assert result.exit_code != EXIT_SUCCESS
        assert "Invalid value" in result.output


class TestWatchFollowsConfiguration:
    """Tests for re-reading mappings between watched passes."""

    def test_added_file_is_watched_after_next_pass(
        self, runner: CliRunner, home: Path, config_file: Path
    ) -> None:
        """A file tracked while watching joins the watched paths."""
        pipeline = build_pipeline(config_file, None)
        watcher = MagicMock()
        (home / ".zshrc").write_text("x")
        invoke(runner, config_file, "add", str(home / ".zshrc"))

        follow_profile(pipeline, watcher, config_file, None)

        watcher.update_paths.assert_called_once()
        assert watcher.update_paths.call_args.args[0] == [home / ".zshrc", config_file]

    def test_broken_configuration_keeps_previous_paths(self, config_file: Path) -> None:
        """An unloadable configuration leaves the watcher untouched."""
        pipeline = build_pipeline(config_file, None)
        watcher = MagicMock()
        config_file.write_text("{not json")

        follow_profile(pipeline, watcher, config_file, None)

        watcher.update_paths.assert_not_called()
