# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Include resolution.

Walks the include references of a freshly parsed table and parses every
reachable file that is not yet in the completions repository.

Design:
- Explicit FIFO worklist plus a visited set: include cycles and diamonds
  terminate without recursion
- A URI already present in the repository is never parsed again here
- Missing files are skipped silently (debug log); unreadable or unparseable
  files are logged and skipped, the walk continues
"""

import logging
import time
from collections import deque
from pathlib import Path
from typing import Deque, Dict, Iterable, Optional, Set, Union

from pawn_index.models import Include
from pawn_index.parser import SourceParser
from pawn_index.registry import CompletionsRepository
from pawn_index.uris import uri_to_path

logger = logging.getLogger(__name__)

# Default maximum file size to read (10MB)
DEFAULT_MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024


class SourceTooLargeError(OSError):
    """Raised when a file exceeds the configured size limit."""


def read_source(path: Union[str, Path], max_size: int = DEFAULT_MAX_FILE_SIZE_BYTES) -> str:
    """Read a source file as text.

    Undecodable bytes are replaced instead of failing the whole file.

    Raises:
        SourceTooLargeError: If the file exceeds max_size.
        OSError: If the file cannot be read.
    """
    path = Path(path)
    size = path.stat().st_size
    if size > max_size:
        raise SourceTooLargeError(f"{path} is {size} bytes (limit {max_size})")
    return path.read_text(encoding="utf-8", errors="replace")


class IncludeResolver:
    """Parses the transitive include closure of a table.

    Usage:
        resolver = IncludeResolver(parser, completions, builtin_root=root)
        stats = resolver.resolve(table.includes)
    """

    def __init__(
        self,
        parser: SourceParser,
        completions: CompletionsRepository,
        builtin_root: Optional[Union[str, Path]] = None,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
        trace: bool = False,
    ):
        """Initialize resolver.

        Args:
            parser: Parser used for every newly reached file.
            completions: Repository receiving the parsed tables.
            builtin_root: Root directory that built-in URIs map under.
            max_file_size_bytes: Files larger than this are skipped.
            trace: Log every resolution step at INFO instead of DEBUG.
        """
        self.parser = parser
        self.completions = completions
        self.builtin_root = builtin_root
        self.max_file_size_bytes = max_file_size_bytes
        self._trace_level = logging.INFO if trace else logging.DEBUG

    def resolve(self, includes: Iterable[Include]) -> Dict[str, int]:
        """Parse and register every reachable unregistered include.

        Args:
            includes: Include references of the table that was just parsed.

        Returns:
            Statistics dictionary:
            - resolved: Files parsed and registered
            - skipped: References already registered or already visited
            - missing: References whose file does not exist
            - failed: Files that could not be read or parsed
            - elapsed_ms: Wall time of the walk
        """
        start_time = time.time()
        stats = {"resolved": 0, "skipped": 0, "missing": 0, "failed": 0}
        worklist: Deque[Include] = deque(includes)
        visited: Set[str] = set()

        while worklist:
            include = worklist.popleft()
            uri = include.uri
            if uri in visited or uri in self.completions:
                stats["skipped"] += 1
                continue
            visited.add(uri)

            path = uri_to_path(uri, self.builtin_root)
            if path is None or not path.is_file():
                logger.log(self._trace_level, f"Include not found, skipping: {uri}")
                stats["missing"] += 1
                continue

            try:
                text = read_source(path, self.max_file_size_bytes)
            except OSError as e:
                logger.warning(f"Failed to read include {uri}: {e}")
                stats["failed"] += 1
                continue

            result = self.parser.parse(
                text,
                uri,
                self.completions.definitions,
                self.completions,
                is_builtin=include.is_builtin,
                file_path=path,
            )
            if not result.ok:
                logger.warning(f"Failed to parse include: {result.error}")
                stats["failed"] += 1
                continue

            self.completions.register(result.table)
            stats["resolved"] += 1
            logger.log(
                self._trace_level,
                f"Resolved include {uri} ({len(result.table.items)} items, "
                f"{len(result.table.includes)} includes)",
            )
            worklist.extend(result.table.includes)

        elapsed_ms = (time.time() - start_time) * 1000
        if stats["resolved"] or stats["failed"]:
            logger.debug(
                f"Include resolution: {stats['resolved']} resolved, {stats['skipped']} skipped, "
                f"{stats['missing']} missing, {stats['failed']} failed in {elapsed_ms:.1f}ms"
            )
        return {**stats, "elapsed_ms": round(elapsed_ms, 3)}
