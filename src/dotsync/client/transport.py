"""Remote repository transport.

The sync core only needs two operations from the remote:
- pull(): bring the working tree up to date and return its root
- push(message): publish working-tree changes

GitTransport drives the git command line and never lets git merge file
contents; files changed on both sides are reported through ``diverged``.
DirectoryTransport treats a plain directory as the working tree, for
offline use and tests.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit, urlunsplit

from dotsync.core.config import RemoteConfig
from dotsync.core.errors import TransportFailure

logger = logging.getLogger(__name__)

DEFAULT_COMMIT_MESSAGE = "Sync dotfiles"
GIT_TIMEOUT = 120


class RepositoryTransport(Protocol):
    """Contract the reconciliation pipeline requires from a remote."""

    @property
    def root(self) -> Path:
        """Root of the repository working tree."""
        ...

    @property
    def diverged(self) -> dict[str, Path]:
        """Paths changed both locally and remotely by the last pull."""
        ...

    def pull(self) -> Path:
        """Update the working tree from the remote.

        Raises:
            TransportFailure: If the remote cannot be reached or merged.
        """
        ...

    def push(self, message: str = DEFAULT_COMMIT_MESSAGE) -> bool:
        """Publish working-tree changes.

        Returns:
            True if anything was pushed.

        Raises:
            TransportFailure: If the push fails.
        """
        ...


class DirectoryTransport:
    """A plain directory used as the repository working tree."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def diverged(self) -> dict[str, Path]:
        return {}

    def pull(self) -> Path:
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransportFailure(f"Cannot create working tree {self._root}: {e}") from e
        return self._root

    def push(self, message: str = DEFAULT_COMMIT_MESSAGE) -> bool:
        return False


def authenticated_url(url: str, token: str) -> str:
    """Inject an access token into an https clone URL."""
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or "@" in parts.netloc:
        return url
    return urlunsplit(parts._replace(netloc=f"x-access-token:{token}@{parts.netloc}"))


class GitTransport:
    """Git working tree synchronized with a remote through the git CLI.

    Git never merges file contents here. ``pull`` moves the working tree to
    the fetched remote branch and re-applies local edits to files the remote
    did not change. A file changed on both sides keeps the remote content in
    the working tree; the local version is saved under ``.git/dotsync`` and
    listed in ``diverged`` so the reconciliation pass can report the
    conflict. ``push`` undoes its own commit when the remote rejects it.
    """

    def __init__(self, remote: RemoteConfig) -> None:
        """Initialize the transport.

        Args:
            remote: Repository URL, token, branch and working-tree path.
        """
        self._remote = remote
        self._root = Path(remote.repo_path).expanduser().resolve()
        self._diverged: dict[str, Path] = {}

    @property
    def root(self) -> Path:
        return self._root

    @property
    def diverged(self) -> dict[str, Path]:
        """Repository paths changed on both sides by the last pull.

        Maps each path to the saved copy of the local version.
        """
        return dict(self._diverged)

    @property
    def _url(self) -> str:
        return authenticated_url(self._remote.repo_url, self._remote.token)

    @property
    def _diverged_dir(self) -> Path:
        return self._root / ".git" / "dotsync" / "diverged"

    def _redact(self, text: str) -> str:
        if self._remote.token:
            return text.replace(self._remote.token, "***")
        return text

    def _run(self, *args: str, cwd: Path | None = None) -> str:
        """Run a git command and return stdout."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(cwd or self._root),
                capture_output=True,
                text=True,
                check=True,
                timeout=GIT_TIMEOUT,
            )
        except subprocess.CalledProcessError as e:
            raise TransportFailure(self._redact(f"Git command failed: {e.stderr.strip()}")) from None
        except subprocess.TimeoutExpired:
            raise TransportFailure(f"Git command timed out: git {args[0]}") from None
        except FileNotFoundError as e:
            raise TransportFailure("Git executable not found") from e
        return result.stdout.strip()

    def _paths(self, *args: str) -> list[str]:
        """Run a git command printing NUL-separated paths."""
        return [p for p in self._run(*args).split("\0") if p]

    def ensure_clone(self) -> None:
        """Clone the remote on first use."""
        if (self._root / ".git").exists():
            return
        try:
            if self._root.exists() and any(self._root.iterdir()):
                raise TransportFailure(f"{self._root} exists and is not a git repository")
            self._root.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TransportFailure(f"Cannot prepare working tree {self._root}: {e}") from e

        logger.info("Cloning %s into %s", self._remote.repo_url, self._root)
        self._run("clone", self._url, str(self._root), cwd=self._root.parent)
        # Keep the token out of .git/config
        self._run("remote", "set-url", "origin", self._remote.repo_url)

    def _remote_has_branch(self) -> bool:
        output = self._run("ls-remote", "--heads", self._url, self._remote.branch)
        return bool(output)

    def _has_head(self) -> bool:
        try:
            self._run("rev-parse", "--verify", "HEAD")
        except TransportFailure:
            return False
        return True

    def _head(self) -> str | None:
        return self._run("rev-parse", "HEAD") if self._has_head() else None

    def _abort_unfinished(self) -> None:
        """Abort a rebase or merge left behind by an interrupted git command."""
        git_dir = self._root / ".git"
        if (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists():
            logger.warning("Aborting unfinished rebase in %s", self._root)
            self._run("rebase", "--abort")
        if (git_dir / "MERGE_HEAD").exists():
            logger.warning("Aborting unfinished merge in %s", self._root)
            self._run("merge", "--abort")

    def _merge_base(self, upstream: str) -> str | None:
        if not self._has_head():
            return None
        try:
            return self._run("merge-base", "HEAD", upstream)
        except TransportFailure:
            return None  # Unrelated histories

    def _read_worktree(self, path: str) -> tuple[bytes, int] | None:
        file_path = self._root / path
        if not file_path.is_file():
            return None
        return file_path.read_bytes(), file_path.stat().st_mode & 0o777

    def _write_worktree(self, path: str, content: tuple[bytes, int] | None) -> None:
        file_path = self._root / path
        if content is None:
            file_path.unlink(missing_ok=True)
            return
        data, mode = content
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(data)
        file_path.chmod(mode)

    def _save_diverged(self, path: str, content: tuple[bytes, int]) -> Path:
        saved = self._diverged_dir / path
        saved.parent.mkdir(parents=True, exist_ok=True)
        saved.write_bytes(content[0])
        saved.chmod(content[1])
        return saved

    def pull(self) -> Path:
        self.ensure_clone()
        self._abort_unfinished()
        self._diverged = {}
        if not self._remote_has_branch():
            logger.info("Remote branch %s does not exist yet", self._remote.branch)
            return self._root

        self._run("fetch", self._url, self._remote.branch)
        upstream = self._run("rev-parse", "FETCH_HEAD")
        base = self._merge_base(upstream)
        if base == upstream:
            logger.debug("Working tree already contains %s", upstream[:8])
            return self._root

        # Local changes since the common base, committed or not
        self._run("add", "-A")
        if base is None:
            local_changes = self._paths("ls-files", "-z")
            remote_changes = set(self._paths("ls-tree", "-r", "--name-only", "-z", upstream))
        else:
            local_changes = self._paths("diff", "--cached", "--no-renames", "--name-only", "-z", base)
            remote_changes = set(
                self._paths("diff", "--no-renames", "--name-only", "-z", base, upstream)
            )

        try:
            saved = {path: self._read_worktree(path) for path in local_changes}
        except OSError as e:
            raise TransportFailure(f"Cannot read working tree {self._root}: {e}") from e

        self._run("reset", "--hard", upstream)
        logger.debug("Moved working tree to %s", upstream[:8])

        try:
            for path, content in saved.items():
                if path not in remote_changes:
                    self._write_worktree(path, content)
                elif content is not None and content != self._read_worktree(path):
                    self._diverged[path] = self._save_diverged(path, content)
                    logger.warning("%s changed locally and on the remote", path)
                elif content is None:
                    logger.warning("%s was deleted locally but changed on the remote", path)
        except OSError as e:
            raise TransportFailure(f"Cannot restore local changes in {self._root}: {e}") from e
        return self._root

    def is_dirty(self) -> bool:
        """Check if the working tree has uncommitted changes."""
        return bool(self._run("status", "--porcelain"))

    def _commit(self, message: str) -> None:
        identity: list[str] = []
        try:
            self._run("config", "user.email")
        except TransportFailure:
            identity = ["-c", "user.name=dotsync", "-c", "user.email=dotsync@localhost"]
        self._run(*identity, "commit", "-m", message)

    def _ahead_of_remote(self) -> bool:
        if not self._has_head():
            return False
        if not self._remote_has_branch():
            return True
        self._run("fetch", self._url, self._remote.branch)
        count = self._run("rev-list", "--count", "FETCH_HEAD..HEAD")
        return int(count or 0) > 0

    def _undo_commit(self, previous: str | None) -> None:
        """Drop the sync commit, keeping its changes in the working tree."""
        if previous is None:
            self._run("update-ref", "-d", "HEAD")
        else:
            self._run("reset", "--soft", previous)

    def push(self, message: str = DEFAULT_COMMIT_MESSAGE) -> bool:
        self.ensure_clone()
        self._run("add", "-A")
        previous = self._head()
        committed = False
        if self.is_dirty():
            self._commit(message)
            committed = True
        try:
            if not self._ahead_of_remote():
                return False
            self._run("push", self._url, f"HEAD:refs/heads/{self._remote.branch}")
        except TransportFailure:
            if committed:
                self._undo_commit(previous)
                logger.info("Push failed, local changes left uncommitted")
            raise
        logger.info("Pushed changes to %s", self._remote.repo_url)
        return True


def create_transport(remote: RemoteConfig) -> RepositoryTransport:
    """Create the transport for a configured remote.

    A ``dir://`` URL selects a plain directory working tree.
    """
    if remote.repo_url.startswith("dir://"):
        return DirectoryTransport(Path(remote.repo_url[len("dir://"):]))
    return GitTransport(remote)
