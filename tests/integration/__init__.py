# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for the workspace index.

This package contains tests that run the index, the watcher and the updater
together against workspaces on disk.
"""
