# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Incremental index updater for file system changes.

Replays events recorded by WorkspaceWatcher into the WorkspaceIndex:
- Path exists and is indexed: on_change with the text on disk
- Path exists and is not indexed: on_create
- Path vanished: on_delete

Design:
- Runs on the handler thread only; the watcher's observer thread never
  touches the index
- One failing file never stops the batch

Thread Safety:
- NOT thread-safe: designed for single-threaded use
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict

from pawn_index.resolver import read_source
from pawn_index.uris import path_to_uri
from pawn_index.watcher import WorkspaceWatcher
from pawn_index.workspace import WorkspaceIndex

logger = logging.getLogger(__name__)


class IndexUpdater:
    """Coordinates incremental updates of a workspace index.

    Usage:
        updater = IndexUpdater(index, watcher)
        stats = updater.process_pending_changes()
    """

    def __init__(self, index: WorkspaceIndex, watcher: WorkspaceWatcher):
        """Initialize index updater.

        Args:
            index: WorkspaceIndex to update.
            watcher: WorkspaceWatcher recording file events.
        """
        self.index = index
        self.watcher = watcher

    def update_on_modify(self, file_path: str) -> bool:
        """Re-index a modified file from disk.

        Returns:
            True if the file was read and parsed.
        """
        uri = path_to_uri(file_path)
        try:
            text = read_source(file_path, self.index.config.max_file_size_bytes)
        except OSError as e:
            logger.warning(f"Failed to read modified file {file_path}: {e}")
            return False
        logger.debug(f"Updating index for modified file: {file_path}")
        return self.index.on_change(uri, text)

    def update_on_create(self, file_path: str) -> bool:
        """Index a newly created file.

        Returns:
            True if the file was read and parsed.
        """
        logger.debug(f"Updating index for created file: {file_path}")
        return self.index.on_create(path_to_uri(file_path))

    def update_on_delete(self, file_path: str) -> bool:
        """Remove a deleted file from the index.

        Returns:
            True (deleting a file that was never indexed is not a failure).
        """
        logger.debug(f"Updating index for deleted file: {file_path}")
        self.index.on_delete(path_to_uri(file_path))
        return True

    def process_pending_changes(self) -> Dict[str, Any]:
        """Process all pending file changes recorded by the watcher.

        Returns:
            Dictionary with processing statistics:
            - total: Total files processed
            - modified: Files re-indexed due to modification
            - created: Files added due to creation
            - deleted: Files removed due to deletion
            - failed: Files that failed to process
            - elapsed_ms: Total processing time in milliseconds
        """
        start_time = time.time()
        stats: Dict[str, Any] = {
            "total": 0,
            "modified": 0,
            "created": 0,
            "deleted": 0,
            "failed": 0,
            "elapsed_ms": 0.0,
        }

        for file_path in sorted(self.watcher.take_pending()):
            stats["total"] += 1
            outcome = "failed"
            success = False
            try:
                if Path(file_path).exists():
                    if path_to_uri(file_path) in self.index.completions:
                        outcome = "modified"
                        success = self.update_on_modify(file_path)
                    else:
                        outcome = "created"
                        success = self.update_on_create(file_path)
                else:
                    outcome = "deleted"
                    success = self.update_on_delete(file_path)
            except Exception as e:
                logger.error(f"Index update failed for {file_path}: {e}", exc_info=True)

            stats[outcome if success else "failed"] += 1

        stats["elapsed_ms"] = (time.time() - start_time) * 1000
        if stats["total"]:
            logger.info(
                f"Processed {stats['total']} file changes in {stats['elapsed_ms']:.1f}ms: "
                f"{stats['modified']} modified, {stats['created']} created, "
                f"{stats['deleted']} deleted, {stats['failed']} failed"
            )
        return stats
