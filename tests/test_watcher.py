# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for WorkspaceWatcher."""

import time
from pathlib import Path

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from pawn_index.watcher import WorkspaceWatcher, matches_ignore_pattern


class TestWorkspaceWatcher:
    """Tests for WorkspaceWatcher timestamp tracking and filtering."""

    def test_initialization(self, tmp_path):
        """Test WorkspaceWatcher initialization."""
        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))

        assert watcher.workspace_root == tmp_path.resolve()
        assert watcher.file_event_timestamps == {}
        assert not watcher.is_running()

    def test_gitignore_loading(self, tmp_path):
        """Test loading .gitignore patterns."""
        (tmp_path / ".gitignore").write_text("# Comment line\n*.smx\nbuild/\n!keep.sp\n\n")

        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))

        assert watcher._gitignore_patterns == {"*.smx", "build"}

    def test_should_ignore_always_ignored(self, tmp_path):
        """Test hardcoded always-ignored directories."""
        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))

        assert watcher.should_ignore(str(tmp_path / ".git" / "plugin.sp"))
        assert watcher.should_ignore(str(tmp_path / "compiled" / "plugin.sp"))
        assert watcher.should_ignore(str(tmp_path / "node_modules" / "x.inc"))
        assert not watcher.should_ignore(str(tmp_path / "scripting" / "plugin.sp"))

    def test_should_ignore_gitignore_patterns(self, tmp_path):
        """Test .gitignore patterns are respected."""
        (tmp_path / ".gitignore").write_text("build/\ntemp_*\n")

        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))

        assert watcher.should_ignore(str(tmp_path / "build" / "plugin.sp"))
        assert watcher.should_ignore(str(tmp_path / "temp_plugin.sp"))
        assert not watcher.should_ignore(str(tmp_path / "plugin.sp"))

    def test_should_ignore_user_patterns(self, tmp_path):
        """Test user-configured ignore patterns."""
        watcher = WorkspaceWatcher(
            workspace_root=str(tmp_path), user_ignore_patterns={"vendor/*.inc", "*_generated.sp"}
        )

        assert watcher.should_ignore(str(tmp_path / "vendor" / "lib.inc"))
        assert watcher.should_ignore(str(tmp_path / "menus_generated.sp"))
        assert not watcher.should_ignore(str(tmp_path / "include" / "lib.inc"))

    def test_is_supported_file(self, tmp_path):
        """Test extension-based file filtering."""
        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))

        assert watcher.is_supported_file(str(tmp_path / "plugin.sp"))
        assert watcher.is_supported_file(str(tmp_path / "include" / "lib.INC"))
        assert not watcher.is_supported_file(str(tmp_path / "plugin.smx"))
        assert not watcher.is_supported_file(str(tmp_path / "README.md"))

    def test_custom_extensions(self, tmp_path):
        """Test configured extensions replace the defaults."""
        watcher = WorkspaceWatcher(workspace_root=str(tmp_path), extensions=[".sma"])

        assert watcher.is_supported_file(str(tmp_path / "plugin.sma"))
        assert not watcher.is_supported_file(str(tmp_path / "plugin.sp"))

    def test_update_and_get_timestamp(self, tmp_path):
        """Test timestamp tracking for file events."""
        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))
        test_file = str(tmp_path / "plugin.sp")

        assert watcher.get_timestamp(test_file) is None

        before = time.time()
        watcher.update_timestamp(test_file)
        after = time.time()

        timestamp = watcher.get_timestamp(test_file)
        assert timestamp is not None
        assert before <= timestamp <= after

    def test_take_pending(self, tmp_path):
        """Test pending events are handed out once."""
        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))
        watcher.update_timestamp(str(tmp_path / "a.sp"))
        watcher.update_timestamp(str(tmp_path / "b.sp"))

        pending = watcher.take_pending()

        assert set(pending) == {str(tmp_path / "a.sp"), str(tmp_path / "b.sp")}
        assert watcher.take_pending() == {}

    @pytest.mark.integration
    def test_start_twice_raises(self, tmp_path):
        """Test the watcher refuses to start while running."""
        watcher = WorkspaceWatcher(workspace_root=str(tmp_path))
        watcher.start()
        try:
            assert watcher.is_running()
            with pytest.raises(RuntimeError):
                watcher.start()
        finally:
            watcher.stop()
        assert not watcher.is_running()


class TestEventHandler:
    """Tests for event filtering in the watchdog handler."""

    @pytest.fixture
    def watcher(self, tmp_path):
        return WorkspaceWatcher(workspace_root=str(tmp_path))

    def test_file_events_recorded(self, watcher, tmp_path):
        """Test created, modified and deleted events record timestamps."""
        handler = watcher._event_handler
        created = str(tmp_path / "created.sp")
        modified = str(tmp_path / "modified.inc")
        deleted = str(tmp_path / "deleted.sp")

        handler.on_created(FileCreatedEvent(created))
        handler.on_modified(FileModifiedEvent(modified))
        handler.on_deleted(FileDeletedEvent(deleted))

        assert set(watcher.file_event_timestamps) == {created, modified, deleted}

    def test_filtered_events_ignored(self, watcher, tmp_path):
        """Test directories, unsupported and ignored files are not recorded."""
        handler = watcher._event_handler

        handler.on_created(DirCreatedEvent(str(tmp_path / "newdir")))
        handler.on_created(FileCreatedEvent(str(tmp_path / "notes.txt")))
        handler.on_created(FileCreatedEvent(str(tmp_path / "compiled" / "plugin.sp")))

        assert watcher.file_event_timestamps == {}

    def test_move_records_both_paths(self, watcher, tmp_path):
        """Test a rename records the old and the new path."""
        old = str(tmp_path / "old.sp")
        new = str(tmp_path / "new.sp")

        watcher._event_handler.on_moved(FileMovedEvent(old, new))

        assert set(watcher.file_event_timestamps) == {old, new}


def test_matches_ignore_pattern():
    """Test pattern matching against relative path, name and components."""
    path = Path("/ws/vendor/lib/util.inc")

    assert matches_ignore_pattern(path, "vendor/lib/util.inc", ["vendor"])
    assert matches_ignore_pattern(path, "vendor/lib/util.inc", ["*.inc"])
    assert matches_ignore_pattern(path, "vendor/lib/util.inc", ["vendor/*/util.inc"])
    assert not matches_ignore_pattern(path, "vendor/lib/util.inc", ["other/*"])
    assert not matches_ignore_pattern(path, "vendor/lib/util.inc", [])
