# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Workspace file system watcher.

Monitors a workspace folder for source file changes:
- Watchdog library for cross-platform file watching
- Timestamp-only tracking: nothing is parsed on the observer thread, the
  IndexUpdater replays recorded paths on the handler thread
- Extension filter (.sp / .inc by default) and ignore patterns
  (hardcoded directories, .gitignore, user configuration)

Thread Safety:
- file_event_timestamps is the only state shared with the observer thread;
  plain dict writes are atomic under the GIL

Known Limitations:
- Renames of whole directories are reported by watchdog as a directory
  event only; files below are picked up on their next modification
"""

import fnmatch
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterable, Optional, Set

from watchdog.events import FileMovedEvent, FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".sp", ".inc")

# Directories never worth indexing
ALWAYS_IGNORED = {
    ".git",
    ".hg",
    ".svn",
    ".vscode",
    ".idea",
    "node_modules",
    "compiled",
}


def matches_ignore_pattern(path: Path, rel_path_str: str, patterns: Iterable[str]) -> bool:
    """Check a path against glob patterns.

    A pattern matches when it matches the relative path, the filename, or
    (for patterns without a slash) any single path component.

    Args:
        path: Path to check.
        rel_path_str: Path relative to the workspace root, POSIX separators.
        patterns: Glob patterns.

    Returns:
        True if any pattern matches.
    """
    for pattern in patterns:
        if fnmatch.fnmatch(rel_path_str, pattern) or fnmatch.fnmatch(path.name, pattern):
            return True
        if "/" not in pattern and any(fnmatch.fnmatch(part, pattern) for part in path.parts):
            return True
    return False


class WorkspaceWatcher:
    """File system watcher for one workspace folder.

    Usage:
        watcher = WorkspaceWatcher(workspace_root="/path/to/scripting")
        watcher.start()
        # ... periodically: updater.process_pending_changes() ...
        watcher.stop()
    """

    def __init__(
        self,
        workspace_root: str,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        user_ignore_patterns: Optional[Set[str]] = None,
        gitignore_path: Optional[str] = None,
    ):
        """Initialize WorkspaceWatcher.

        Args:
            workspace_root: Root directory to watch.
            extensions: Source file extensions to track.
            user_ignore_patterns: Additional user-configured ignore patterns.
            gitignore_path: Path to .gitignore (defaults to {workspace_root}/.gitignore).
        """
        self.workspace_root = Path(workspace_root).resolve()
        self.extensions = {ext.lower() for ext in extensions}
        self.user_ignore_patterns = user_ignore_patterns or set()
        self.gitignore_path = (
            Path(gitignore_path) if gitignore_path else self.workspace_root / ".gitignore"
        )

        self.file_event_timestamps: Dict[str, float] = {}
        self._gitignore_patterns: Set[str] = self._load_gitignore()

        self._observer: Optional["BaseObserver"] = None
        self._event_handler = _WorkspaceEventHandler(self)

        logger.info(f"WorkspaceWatcher initialized for {self.workspace_root}")

    def _load_gitignore(self) -> Set[str]:
        """Load .gitignore patterns, skipping comments and negations."""
        patterns: Set[str] = set()
        if not self.gitignore_path.exists():
            return patterns

        try:
            with open(self.gitignore_path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith(("#", "!")):
                        continue
                    patterns.add(line.rstrip("/"))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read .gitignore: {e}")

        logger.debug(f"Loaded {len(patterns)} patterns from .gitignore")
        return patterns

    def should_ignore(self, file_path: str) -> bool:
        """Check if a file should be ignored.

        Args:
            file_path: Absolute or workspace-relative file path.

        Returns:
            True if the file lies in an always-ignored directory or matches a
            .gitignore or user pattern.
        """
        path = Path(file_path)
        try:
            rel_path = path.relative_to(self.workspace_root)
        except ValueError:
            rel_path = path
        rel_path_str = rel_path.as_posix()

        if any(part in ALWAYS_IGNORED for part in rel_path.parts):
            return True
        if matches_ignore_pattern(rel_path, rel_path_str, self._gitignore_patterns):
            return True
        return matches_ignore_pattern(rel_path, rel_path_str, self.user_ignore_patterns)

    def is_supported_file(self, file_path: str) -> bool:
        """Check if a file has a tracked source extension."""
        return Path(file_path).suffix.lower() in self.extensions

    def update_timestamp(self, file_path: str) -> None:
        """Record an event for a file."""
        self.file_event_timestamps[file_path] = time.time()
        logger.debug(f"Updated timestamp for {file_path}")

    def get_timestamp(self, file_path: str) -> Optional[float]:
        """Get the last event timestamp for a file, or None."""
        return self.file_event_timestamps.get(file_path)

    def take_pending(self) -> Dict[str, float]:
        """Remove and return recorded events.

        Events recorded while the snapshot is processed stay pending.
        """
        snapshot = dict(self.file_event_timestamps)
        for file_path, timestamp in snapshot.items():
            if self.file_event_timestamps.get(file_path) == timestamp:
                self.file_event_timestamps.pop(file_path, None)
        return snapshot

    def start(self) -> None:
        """Start watching the workspace.

        Raises:
            RuntimeError: If the watcher is already running.
        """
        if self._observer is not None and self._observer.is_alive():
            raise RuntimeError("WorkspaceWatcher is already running")

        self._observer = Observer()
        self._observer.schedule(  # type: ignore  # watchdog types vary by version
            self._event_handler, str(self.workspace_root), recursive=True
        )
        self._observer.start()  # type: ignore  # watchdog types vary by version
        logger.info(f"WorkspaceWatcher started, monitoring {self.workspace_root}")

    def stop(self) -> None:
        """Stop watching; blocks until the observer thread ends (with timeout)."""
        if self._observer is not None and self._observer.is_alive():
            self._observer.stop()  # type: ignore  # watchdog types vary by version
            self._observer.join(timeout=5.0)
            logger.info("WorkspaceWatcher stopped")

    def is_running(self) -> bool:
        """Check if the observer thread is alive."""
        return self._observer is not None and self._observer.is_alive()


class _WorkspaceEventHandler(FileSystemEventHandler):
    """Watchdog handler delegating filtering and recording to the watcher."""

    def __init__(self, watcher: WorkspaceWatcher):
        super().__init__()
        self.watcher = watcher

    def _record(self, file_path: str, event_type: str) -> None:
        if self.watcher.should_ignore(file_path):
            return
        if not self.watcher.is_supported_file(file_path):
            return
        self.watcher.update_timestamp(file_path)
        logger.debug(f"Event: {event_type} - {file_path}")

    def _handle_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._record(str(event.src_path), event.event_type)

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle_event(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Treat a move as a delete of the old path plus a create of the new one."""
        if event.is_directory or not isinstance(event, FileMovedEvent):
            return
        self._record(str(event.src_path), "moved_from")
        self._record(str(event.dest_path), "moved_to")
