# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Built-in API loader.

Parses every ``*.inc`` file under the built-in include root once, flags its
items as built-in and registers it under the synthetic built-in namespace
(``file://__sourcemod_builtin/<relative path>``), disjoint from workspace
URIs.
"""

import logging
import time
from pathlib import Path
from typing import Dict, Union

from pawn_index.parser import SourceParser
from pawn_index.registry import CompletionsRepository
from pawn_index.resolver import DEFAULT_MAX_FILE_SIZE_BYTES, read_source
from pawn_index.uris import builtin_uri

logger = logging.getLogger(__name__)


class BuiltinLoader:
    """Loads the built-in include tree into a completions repository."""

    def __init__(
        self,
        parser: SourceParser,
        completions: CompletionsRepository,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
    ):
        self.parser = parser
        self.completions = completions
        self.max_file_size_bytes = max_file_size_bytes

    def load(self, root: Union[str, Path]) -> Dict[str, int]:
        """Parse and register every ``*.inc`` file under a root.

        Files already registered (e.g. reached earlier through an include)
        are not parsed again. One bad file never stops the scan.

        Args:
            root: Built-in include root directory.

        Returns:
            Statistics dictionary with keys loaded, skipped, failed.
        """
        stats = {"loaded": 0, "skipped": 0, "failed": 0}
        root = Path(root)
        if not root.is_dir():
            logger.warning(f"Built-in include root does not exist: {root}")
            return stats

        start_time = time.time()
        for path in sorted(root.rglob("*.inc")):
            if not path.is_file():
                continue
            relative = path.relative_to(root).as_posix()
            uri = builtin_uri(relative)
            if uri in self.completions:
                stats["skipped"] += 1
                continue
            try:
                text = read_source(path, self.max_file_size_bytes)
            except OSError as e:
                logger.warning(f"Failed to read built-in {relative}: {e}")
                stats["failed"] += 1
                continue

            result = self.parser.parse(
                text,
                uri,
                self.completions.definitions,
                self.completions,
                is_builtin=True,
                file_path=path,
            )
            if not result.ok:
                logger.warning(f"Failed to parse built-in: {result.error}")
                stats["failed"] += 1
                continue
            self.completions.register(result.table)
            stats["loaded"] += 1

        elapsed = time.time() - start_time
        logger.info(
            f"Loaded {stats['loaded']} built-in files from {root} "
            f"({stats['failed']} failed) in {elapsed:.2f}s"
        )
        return stats
