"""Tests for ignore pattern matching."""

from pathlib import Path

from dotsync.client.sync.ignore import DEFAULT_IGNORE_PATTERNS, IgnorePatterns


class TestIgnorePatterns:
    """Tests for IgnorePatterns."""

    def test_defaults_always_present(self) -> None:
        """Extra patterns are added on top of the defaults."""
        ignore = IgnorePatterns(["*.log"])
        assert ignore.patterns == [*DEFAULT_IGNORE_PATTERNS, "*.log"]

    def test_git_metadata(self) -> None:
        """Git metadata is never synchronized."""
        ignore = IgnorePatterns()
        assert ignore.matches(".git")
        assert ignore.matches(".git/config")
        assert ignore.matches("nvim/.git/HEAD")

    def test_name_match_in_subdirectory(self) -> None:
        """Plain patterns match the file name anywhere."""
        ignore = IgnorePatterns(["*.local"])
        assert ignore.matches(".config/fish/config.local")
        assert not ignore.matches(".config/fish/config.fish")

    def test_temp_files(self) -> None:
        """In-flight copies are ignored."""
        assert IgnorePatterns().matches(".bashrc.dotsync-tmp")

    def test_directory_pattern(self) -> None:
        """Trailing-slash patterns match leading directories only."""
        ignore = IgnorePatterns(["cache/"])
        assert ignore.matches(".config/cache/state")
        assert not ignore.matches(".config/cache")

    def test_tracked_key_not_ignored(self) -> None:
        """Ordinary dotfiles pass through."""
        assert not IgnorePatterns().matches(".bashrc")

    def test_should_ignore_relative_to_base(self, tmp_path: Path) -> None:
        """Paths are matched relative to the base directory."""
        ignore = IgnorePatterns()
        assert ignore.should_ignore(tmp_path / ".git" / "index", tmp_path)
        assert not ignore.should_ignore(tmp_path / "default" / ".bashrc", tmp_path)

    def test_outside_base_never_ignored(self, tmp_path: Path) -> None:
        """Paths outside the base are not matched."""
        assert not IgnorePatterns().should_ignore(Path("/elsewhere/.git"), tmp_path / "repo")
