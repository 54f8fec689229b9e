"""File system watcher with debouncing for reconciliation triggers.

This module provides:
- ChangeWatcher: Watches mapped dotfiles and the repository working tree
  using watchdog and triggers one reconciliation pass per burst of changes
- MappedPathsHandler: watchdog handler filtering events to relevant paths

State machine:

    idle ──start()──> armed ──event──> debouncing ──window elapsed──> triggering
                        ^                 │  ^                            │
                        │                 └──┘ event: restart window      │
                        └──────────────── pass done (no pending) ─────────┘

- Every event while debouncing restarts the quiet window, but a burst never
  waits longer than max_debounce_s after its first event.
- Events while triggering are remembered; when the pass finishes a fresh
  debounce cycle starts instead of returning to armed.
- Passes are never run concurrently: only one trigger runs at a time.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from dotsync.client.sync.ignore import IgnorePatterns

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver, ObservedWatch

logger = logging.getLogger(__name__)


class WatcherState(Enum):
    """State of the change watcher."""

    IDLE = "idle"
    ARMED = "armed"
    DEBOUNCING = "debouncing"
    TRIGGERING = "triggering"


def _decode(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8", errors="replace")
    return path


class MappedPathsHandler(FileSystemEventHandler):
    """Forwards relevant file system events to a ChangeWatcher."""

    def __init__(
        self,
        watcher: ChangeWatcher,
        local_paths: Iterable[Path],
        repo_root: Path | None,
        ignore_patterns: IgnorePatterns,
    ) -> None:
        super().__init__()
        self._watcher = watcher
        self._repo_root = Path(os.path.abspath(repo_root)) if repo_root else None
        self.update(local_paths, ignore_patterns)

    def update(self, local_paths: Iterable[Path], ignore_patterns: IgnorePatterns) -> None:
        """Replace the mapped local paths and the ignore patterns."""
        self._local_paths = frozenset(os.path.abspath(p) for p in local_paths)
        self._ignore = ignore_patterns

    def is_relevant(self, path: Path) -> bool:
        """Check if a changed path can affect a reconciliation pass."""
        absolute = os.path.abspath(path)
        if absolute in self._local_paths:
            return True
        if self._repo_root is None:
            return False
        try:
            Path(absolute).relative_to(self._repo_root)
        except ValueError:
            return False
        return not self._ignore.should_ignore(Path(absolute), self._repo_root)

    def on_any_event(self, event: FileSystemEvent) -> None:
        """Handle any event, including both ends of a move."""
        if event.event_type in ("opened", "closed_no_write"):
            return
        paths = [Path(_decode(event.src_path))]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(Path(_decode(dest)))
        for path in paths:
            if self.is_relevant(path):
                self._watcher.notify(path)
                return


class ChangeWatcher:
    """Debounces file change notifications into reconciliation passes.

    Usage:
        watcher = ChangeWatcher(
            on_trigger=lambda: pipeline.run_pass(TriggerSource.WATCHER),
            local_paths=profile.local_paths,
            repo_root=transport.root,
        )
        with watcher:
            ...
    """

    def __init__(
        self,
        on_trigger: Callable[[], object],
        local_paths: Iterable[Path] = (),
        repo_root: Path | None = None,
        ignore_patterns: Iterable[str] | None = None,
        debounce_s: float = 1.0,
        max_debounce_s: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the watcher.

        Args:
            on_trigger: Runs one reconciliation pass.
            local_paths: Mapped local paths to watch.
            repo_root: Repository working tree, watched recursively.
            ignore_patterns: Extra patterns for repository events to drop.
            debounce_s: Quiet window after the last event.
            max_debounce_s: Upper bound from the first event of a burst.
            clock: Monotonic clock (seconds).
        """
        if debounce_s <= 0 or max_debounce_s < debounce_s:
            raise ValueError("debounce_s must be positive and not above max_debounce_s")

        self._on_trigger = on_trigger
        self._local_paths = [Path(p) for p in local_paths]
        self._repo_root = Path(repo_root) if repo_root else None
        self._ignore = IgnorePatterns(ignore_patterns)
        self._debounce_s = debounce_s
        self._max_debounce_s = max_debounce_s
        self._clock = clock

        self._state = WatcherState.IDLE
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._burst_started = 0.0
        self._pending = False
        self._trigger_count = 0

        self._handler = MappedPathsHandler(self, self._local_paths, self._repo_root, self._ignore)
        self._observer: BaseObserver | None = None
        self._watches: dict[str, ObservedWatch] = {}
        self._watch_lock = threading.Lock()

    @property
    def state(self) -> WatcherState:
        """Get current watcher state."""
        return self._state

    @property
    def trigger_count(self) -> int:
        """Number of passes triggered since creation."""
        return self._trigger_count

    @property
    def is_running(self) -> bool:
        return self._state != WatcherState.IDLE

    def watched_directories(self) -> list[tuple[Path, bool]]:
        """Directories to subscribe to, with their recursive flag."""
        directories: dict[str, tuple[Path, bool]] = {}
        for path in self._local_paths:
            parent = path.parent
            directories.setdefault(str(parent), (parent, False))
        if self._repo_root is not None:
            directories[str(self._repo_root)] = (self._repo_root, True)
        return list(directories.values())

    def arm(self) -> None:
        """Enter the armed state without subscribing to the filesystem."""
        with self._lock:
            if self._state == WatcherState.IDLE:
                self._state = WatcherState.ARMED

    def start(self) -> None:
        """Subscribe to change notifications and arm the watcher."""
        if self._observer is not None:
            return

        self._observer = Observer()
        self.refresh()
        self._observer.start()
        self.arm()
        logger.info("Watching %d mapped files for changes", len(self._local_paths))

    def refresh(self) -> None:
        """Bring subscriptions in line with the directories that exist now.

        Directories missing at start are picked up once they appear;
        directories no longer wanted or gone are dropped.
        """
        with self._watch_lock:
            observer = self._observer
            if observer is None:
                return
            wanted = {str(d): (d, recursive) for d, recursive in self.watched_directories()}

            for key in list(self._watches):
                if key in wanted and wanted[key][0].is_dir():
                    continue
                try:
                    observer.unschedule(self._watches.pop(key))
                except KeyError:
                    pass  # Emitter already gone with its directory
                logger.debug("Stopped watching %s", key)

            for key, (directory, recursive) in wanted.items():
                if key in self._watches:
                    continue
                if not directory.is_dir():
                    logger.debug("Not watching missing directory: %s", directory)
                    continue
                try:
                    self._watches[key] = observer.schedule(self._handler, key, recursive=recursive)
                except OSError as e:
                    logger.warning("Cannot watch %s: %s", directory, e)
                    continue
                logger.debug("Watching %s (recursive=%s)", directory, recursive)

    def update_paths(
        self,
        local_paths: Iterable[Path],
        ignore_patterns: Iterable[str] | None = None,
    ) -> None:
        """Replace the mapped local paths, e.g. after the configuration changed."""
        self._local_paths = [Path(p) for p in local_paths]
        if ignore_patterns is not None:
            self._ignore = IgnorePatterns(ignore_patterns)
        self._handler.update(self._local_paths, self._ignore)
        self.refresh()

    @property
    def watched(self) -> list[str]:
        """Directories currently subscribed to."""
        with self._watch_lock:
            return sorted(self._watches)

    def stop(self) -> None:
        """Unsubscribe and return to idle, cancelling any pending window."""
        with self._lock:
            self._state = WatcherState.IDLE
            self._pending = False
            self._generation += 1
            if self._timer:
                self._timer.cancel()
                self._timer = None

        with self._watch_lock:
            observer, self._observer = self._observer, None
            self._watches.clear()
        if observer is not None:
            observer.stop()
            observer.join(timeout=5.0)

    def notify(self, path: Path | None = None) -> None:
        """Record a change event.

        Args:
            path: Changed path (for logging only).
        """
        with self._lock:
            if self._state == WatcherState.IDLE:
                return
            if self._state == WatcherState.TRIGGERING:
                self._pending = True
                return

            now = self._clock()
            if self._state == WatcherState.ARMED:
                self._state = WatcherState.DEBOUNCING
                self._burst_started = now
                logger.debug("Change detected (%s), debouncing", path)
            self._schedule_window(now)

    def _schedule_window(self, now: float) -> None:
        """(Re)start the quiet window. Must hold the lock."""
        if self._timer:
            self._timer.cancel()

        deadline = min(now + self._debounce_s, self._burst_started + self._max_debounce_s)
        self._generation += 1
        self._timer = threading.Timer(
            max(0.0, deadline - now),
            self._on_window_elapsed,
            args=(self._generation,),
        )
        self._timer.daemon = True
        self._timer.start()

    def _on_window_elapsed(self, generation: int) -> None:
        """Timer callback: run one pass if the window was not restarted."""
        with self._lock:
            if generation != self._generation or self._state != WatcherState.DEBOUNCING:
                return
            self._state = WatcherState.TRIGGERING
            self._pending = False
            self._timer = None

        try:
            self._trigger_count += 1
            logger.info("Changes settled, triggering reconciliation pass")
            self._on_trigger()
        except Exception:
            logger.exception("Error during watcher-triggered pass")
        finally:
            # A pass may have created parent directories of mapped files
            self.refresh()
            self._finish_trigger()

    def _finish_trigger(self) -> None:
        with self._lock:
            if self._state != WatcherState.TRIGGERING:
                return  # Stopped while the pass was running
            if self._pending:
                self._pending = False
                self._state = WatcherState.DEBOUNCING
                now = self._clock()
                self._burst_started = now
                self._schedule_window(now)
            else:
                self._state = WatcherState.ARMED

    def __enter__(self) -> ChangeWatcher:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
