# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Command line entry point: index a folder and print JSON."""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from pawn_index.config import Config, ConfigurationError
from pawn_index.logging_setup import setup_logging
from pawn_index.updater import IndexUpdater
from pawn_index.uris import path_to_uri
from pawn_index.watcher import WorkspaceWatcher
from pawn_index.workspace import WorkspaceIndex

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="pawn_index",
        description="Index a SourcePawn workspace and print symbols as JSON",
    )
    parser.add_argument("folder", type=Path, help="Workspace folder to index")
    parser.add_argument(
        "--builtin-root",
        type=Path,
        default=None,
        help="Built-in include root (overrides builtin_include_root from .pawn_index.yml)",
    )
    parser.add_argument(
        "--outline",
        type=Path,
        action="append",
        default=[],
        help="Print the outline of this file (repeatable)",
    )
    parser.add_argument(
        "--watch",
        type=float,
        default=0.0,
        metavar="SECONDS",
        help="Keep watching the folder for changes for this many seconds",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory for JSON log files")
    parser.add_argument("--verbose", action="store_true", help="Log at DEBUG level")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line.

    Returns:
        Process exit code.
    """
    args = parse_args(argv)
    folder = args.folder.resolve()
    if not folder.is_dir():
        print(f"error: {folder} is not a directory", file=sys.stderr)
        return 2

    setup_logging(
        log_dir=args.log_dir or folder / ".pawn_index_logs",
        log_level=logging.DEBUG if args.verbose else logging.INFO,
        console_output=args.verbose,
    )

    config = Config.for_workspace(folder)
    if args.builtin_root is not None:
        try:
            config.with_overrides(builtin_include_root=str(args.builtin_root))
        except ConfigurationError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2

    index = WorkspaceIndex(config)
    output: Dict[str, Any] = {
        "builtins": index.load_builtins(),
        "indexing": index.index_folder(folder),
    }

    if args.watch > 0:
        output["updates"] = _watch(index, config, folder, args.watch)

    if args.outline:
        output["outlines"] = {
            str(path): [node.to_dict() for node in index.outline_of(path_to_uri(path.resolve()))]
            for path in args.outline
        }
    output["statistics"] = index.statistics()

    json.dump(output, sys.stdout, indent=2)
    sys.stdout.write("\n")
    index.close()
    return 0


def _watch(index: WorkspaceIndex, config: Config, folder: Path, seconds: float) -> Dict[str, int]:
    """Replay file system changes into the index for a while."""
    watcher = WorkspaceWatcher(
        str(folder),
        extensions=config.file_extensions,
        user_ignore_patterns=set(config.ignore_patterns),
    )
    updater = IndexUpdater(index, watcher)
    totals = {"modified": 0, "created": 0, "deleted": 0, "failed": 0}
    watcher.start()
    try:
        deadline = time.time() + seconds
        while time.time() < deadline:
            time.sleep(min(0.5, max(0.0, deadline - time.time())))
            stats = updater.process_pending_changes()
            for key in totals:
                totals[key] += stats[key]
    except KeyboardInterrupt:
        logger.info("Watch interrupted")
    finally:
        watcher.stop()
    return totals
