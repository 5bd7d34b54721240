# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""WorkspaceIndex - the owned value tying the index together.

Key Responsibilities:
- Own the definitions and completions repositories, the parser and the
  include resolver (no process-wide state)
- Handle editor events: open, change, create, delete
- Answer queries: completion, hover, definition, outline, references,
  signature help and rename

Event flow:
1. Document registry update
2. Parse into a fresh table
3. Atomic swap into the repositories
4. Include resolution over the new table's includes
5. Reference re-linking for the table

Every query degrades to an empty list or None on unknown URIs or positions.

Thread Safety:
- NOT thread-safe: all events and queries run on one handler thread
"""

import logging
import re
import time
from collections import deque
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from pawn_index.builtins import BuiltinLoader
from pawn_index.config import Config
from pawn_index.items import (
    build_outline,
    is_visible,
    project_completion,
    project_definition,
    project_hover,
    project_member_completion,
    project_signature,
    scope_rank,
)
from pawn_index.models import (
    GLOBAL_IDENTIFIER,
    CompletionCandidate,
    CursorContext,
    DefinitionTarget,
    FileCompletions,
    HoverPayload,
    Item,
    ItemKind,
    Location,
    OutlineNode,
    Position,
    Range,
    SignatureHelp,
    TextEdit,
)
from pawn_index.parser import SourceParser, include_file_name
from pawn_index.registry import CompletionsRepository, DefinitionsRepository
from pawn_index.resolver import IncludeResolver, read_source
from pawn_index.uris import canonicalize_uri, file_name_of, is_builtin_uri, path_to_uri, uri_to_path
from pawn_index.watcher import ALWAYS_IGNORED, matches_ignore_pattern

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[A-Za-z_]\w*")
_MEMBER_ACCESS = re.compile(r"(?P<receiver>[A-Za-z_]\w*)\s*(?:\[[^\]]*\]\s*)*(?:\(\s*\)\s*)?\.\s*(?P<prefix>\w*)$")
_RECEIVER_BEFORE = re.compile(r"(?P<receiver>[A-Za-z_]\w*)\s*(?:\[[^\]]*\]\s*)*(?:\(\s*\)\s*)?\.\s*$")
_NAME_BEFORE = re.compile(r"(?P<name>[A-Za-z_]\w*)\s*$")
_LITERAL = re.compile(r"\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*'")
_LINE_COMMENT = re.compile(r"//.*$")

# How far back signature help looks for the opening parenthesis of a call
MAX_CALL_LINES = 20


class WorkspaceIndex:
    """Incremental symbol index of one workspace.

    Usage:
        index = WorkspaceIndex(Config.for_workspace(root))
        index.load_builtins()
        index.discover(root)
        index.on_open(uri, text)
        candidates = index.complete_at(uri, Position(10, 4))
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        definitions: Optional[DefinitionsRepository] = None,
        completions: Optional[CompletionsRepository] = None,
        parser: Optional[SourceParser] = None,
    ):
        """Initialize the index with its collaborators.

        Args:
            config: Configuration (default: .pawn_index.yml in the cwd).
            definitions: Definitions repository (default: new, empty).
            completions: Completions repository (default: new, empty).
            parser: Source parser (default: built from config).
        """
        self.config = config if config is not None else Config()
        self.definitions = definitions if definitions is not None else DefinitionsRepository()
        self.completions = (
            completions if completions is not None else CompletionsRepository(self.definitions)
        )
        self.builtin_root = self.config.builtin_include_root
        self.parser = (
            parser
            if parser is not None
            else SourceParser(
                builtin_root=self.builtin_root,
                include_directories=self.config.include_directories,
                implicit_includes=self.config.implicit_includes,
            )
        )
        self.resolver = IncludeResolver(
            self.parser,
            self.completions,
            builtin_root=self.builtin_root,
            max_file_size_bytes=self.config.max_file_size_bytes,
            trace=self.config.trace_includes,
        )
        self._workspace_roots: List[Path] = []
        logger.debug(f"WorkspaceIndex initialized (builtin root: {self.builtin_root})")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_open(self, uri: str, text: str) -> bool:
        """Index a document opened in the editor.

        Returns:
            True if the document parsed; False if it failed (an empty table
            is registered so stale items disappear).
        """
        return self._index(canonicalize_uri(uri), text)

    def on_change(self, uri: str, text: str) -> bool:
        """Re-index a document after an edit.

        The previous table is replaced as a whole, never merged.
        """
        return self._index(canonicalize_uri(uri), text)

    def on_create(self, uri: str) -> bool:
        """Index a file created on disk.

        Tables whose unresolved includes name the new file are re-parsed so
        the include now resolves.

        Returns:
            True if the created file was read and parsed.
        """
        uri = canonicalize_uri(uri)
        text = self._read(uri)
        if text is None:
            return False
        success = self._index(uri, text)
        self._resolve_missing_includes(uri)
        return success

    def on_delete(self, uri: str) -> bool:
        """Drop a deleted file's table, definitions and references.

        Returns:
            True if the file was indexed.
        """
        uri = canonicalize_uri(uri)
        self.completions.registry.remove(uri)
        removed = self.completions.remove(uri)
        if removed is not None:
            logger.debug(f"Removed {uri} ({len(removed.items)} items)")
        return removed is not None

    def discover(self, folder: Union[str, Path]) -> int:
        """Register every source file under a folder without parsing it.

        Populates the document registry so includes can be resolved by
        filename before the named files are opened.

        Returns:
            Number of files registered.
        """
        root = Path(folder).resolve()
        if root not in self._workspace_roots:
            self._workspace_roots.append(root)
        count = 0
        for path in self._source_files(root):
            self.completions.registry.add(path_to_uri(path))
            count += 1
        logger.info(f"Discovered {count} source files under {root}")
        return count

    def index_folder(self, folder: Union[str, Path]) -> Dict[str, Any]:
        """Discover a folder, then parse every discovered file.

        Returns:
            Statistics dictionary: total, success, failed, skipped (already
            registered through an include), elapsed_ms.
        """
        start_time = time.time()
        stats: Dict[str, Any] = {"total": 0, "success": 0, "failed": 0, "skipped": 0}
        self.discover(folder)
        for path in self._source_files(Path(folder).resolve()):
            stats["total"] += 1
            uri = path_to_uri(path)
            if uri in self.completions:
                stats["skipped"] += 1
                continue
            text = self._read(uri)
            if text is not None and self._index(uri, text):
                stats["success"] += 1
            else:
                stats["failed"] += 1
        stats["elapsed_ms"] = (time.time() - start_time) * 1000
        logger.info(
            f"Indexed {stats['total']} files in {stats['elapsed_ms']:.1f}ms: "
            f"{stats['success']} success, {stats['failed']} failed, {stats['skipped']} skipped"
        )
        return stats

    def load_builtins(self, root: Optional[Union[str, Path]] = None) -> Dict[str, int]:
        """Load the built-in API.

        Args:
            root: Built-in include root (default: configured root).

        Returns:
            Loader statistics (loaded, skipped, failed).
        """
        if root is not None:
            self._set_builtin_root(Path(root))
        if self.builtin_root is None:
            logger.info("No built-in include root configured, skipping built-ins")
            return {"loaded": 0, "skipped": 0, "failed": 0}
        loader = BuiltinLoader(self.parser, self.completions, self.config.max_file_size_bytes)
        return loader.load(self.builtin_root)

    def close(self) -> None:
        """Release every table. The index is empty afterwards."""
        for uri in self.completions.uris():
            self.completions.remove(uri)
            self.completions.registry.remove(uri)
        self._workspace_roots.clear()
        logger.info("WorkspaceIndex closed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def complete_at(self, uri: str, position: Position) -> List[CompletionCandidate]:
        """Completion candidates at a position.

        After ``expr.`` only members are offered (of the receiver's type and
        its methodmap ancestors when known). Otherwise every visible item is
        offered, same-named candidates collapsed to the most local one.
        """
        table = self.completions.get(canonicalize_uri(uri))
        if table is None:
            return []
        context = self.context_at(table, position)
        tables = self.visible_tables(table.uri)

        line = _line_at(table.text, position.line)
        if line is None:
            return []
        member = _MEMBER_ACCESS.search(line[: position.character])
        if member is not None:
            return self._member_completions(tables, table, context, member.group("receiver"))

        best: Dict[str, Tuple[int, Item, CompletionCandidate]] = {}
        collisions: Set[str] = set()
        for current in tables:
            for item in current.items:
                if current is not table and item.kind in ItemKind.SCOPED and item.function_name != GLOBAL_IDENTIFIER:
                    continue
                candidate = project_completion(item, context.function, context.container)
                if candidate is None:
                    continue
                rank = scope_rank(item)
                existing = best.get(item.name)
                if existing is None:
                    best[item.name] = (rank, item, candidate)
                    continue
                collisions.add(item.name)
                if rank > existing[0]:
                    best[item.name] = (rank, item, candidate)

        result = []
        for name, (_rank, item, candidate) in best.items():
            if name in collisions:
                merged = project_completion(item, override=True)
                if merged is not None:
                    candidate = merged
            result.append(candidate)
        return result

    def hover_at(self, uri: str, position: Position) -> Optional[HoverPayload]:
        """Hover content for the symbol at a position, or None."""
        item = self.item_at(uri, position)
        return project_hover(item) if item is not None else None

    def definition_at(self, uri: str, position: Position) -> Optional[DefinitionTarget]:
        """Definition location of the symbol at a position, or None."""
        item = self.item_at(uri, position)
        return project_definition(item) if item is not None else None

    def outline_of(self, uri: str) -> List[OutlineNode]:
        """Nested document outline of a file."""
        table = self.completions.get(canonicalize_uri(uri))
        return build_outline(table) if table is not None else []

    def references_at(
        self, uri: str, position: Position, include_declaration: bool = True
    ) -> List[Location]:
        """Reference locations of the symbol at a position.

        Top-level symbols use the references linked by the repositories.
        Locals are searched textually within their enclosing function.
        """
        table = self.completions.get(canonicalize_uri(uri))
        if table is None:
            return []
        item = self.item_at(table.uri, position)
        if item is None:
            return []

        if item.is_top_level():
            locations = list(item.references)
        elif item.kind in ItemKind.SCOPED:
            locations = self._local_references(item)
        else:
            locations = []

        if include_declaration:
            declaration = item.location()
            if declaration not in locations:
                locations.insert(0, declaration)
        else:
            locations = [loc for loc in locations if loc != item.location()]
        return locations

    def signature_help_at(self, uri: str, position: Position) -> Optional[SignatureHelp]:
        """Signature of the call whose argument list holds a position.

        The active parameter is the number of top-level commas between the
        call's opening parenthesis and the position. ``new Map(`` shows the
        methodmap's constructor.

        Returns:
            SignatureHelp, or None outside a call or for a callee that is
            not a function or method.
        """
        table = self.completions.get(canonicalize_uri(uri))
        if table is None:
            return None
        call = _call_at(table.text, position)
        if call is None:
            return None
        callee_position, active_parameter = call
        item = self.item_at(table.uri, callee_position)
        if item is not None and item.kind == ItemKind.METHODMAP:
            item = self._constructor_of(table.uri, item)
        if item is None:
            return None
        signature = project_signature(item, active_parameter)
        if signature is None:
            return None
        return SignatureHelp(signatures=[signature], active_parameter=active_parameter)

    def rename_at(
        self, uri: str, position: Position, new_name: str
    ) -> Optional[Dict[str, List[TextEdit]]]:
        """Edits renaming the symbol at a position everywhere it is referenced.

        Covers the declaration plus the locations references_at() reports.
        Built-in symbols, includes and members (whose uses are not tracked)
        are not renamed.

        Returns:
            URI -> edits, or None when nothing renamable is at the position.

        Raises:
            ValueError: If new_name is not an identifier.
        """
        if not _WORD.fullmatch(new_name):
            raise ValueError(f"Invalid identifier: {new_name!r}")
        item = self.item_at(uri, position)
        if item is None:
            return None
        if item.is_builtin or not (item.is_top_level() or item.kind in ItemKind.SCOPED):
            logger.debug(f"Not renaming {item.kind} {item.name}")
            return None

        changes: Dict[str, List[TextEdit]] = {}
        for location in self.references_at(uri, position, include_declaration=True):
            changes.setdefault(location.uri, []).append(TextEdit(range=location.range, new_text=new_name))
        return changes

    def statistics(self) -> Dict[str, Any]:
        """Summary counts of the index."""
        tables = self.completions.tables()
        builtin = [t for t in tables if t.is_builtin]
        return {
            "files": len(tables),
            "workspace_files": len(tables) - len(builtin),
            "builtin_files": len(builtin),
            "items": sum(len(t.items) for t in tables),
            "definitions": len(self.definitions),
            "documents": len(self.completions.registry),
            "missing_includes": sum(len(t.missing_includes) for t in tables),
        }

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def context_at(self, table: FileCompletions, position: Position) -> CursorContext:
        """Innermost function/method and container enclosing a position."""
        function = _innermost(
            item
            for item in table.items_of_kind(ItemKind.FUNCTION, ItemKind.METHOD)
            if item.full_range.contains(position)
        )
        container = _innermost(
            item for item in table.items_of_kind(*ItemKind.CONTAINERS) if item.full_range.contains(position)
        )
        return CursorContext(function=function, container=container)

    def visible_tables(self, uri: str) -> List[FileCompletions]:
        """A file's table followed by the registered tables it transitively includes."""
        table = self.completions.get(uri)
        if table is None:
            return []
        ordered = [table]
        seen = {uri}
        queue = deque(table.includes)
        while queue:
            include = queue.popleft()
            if include.uri in seen:
                continue
            seen.add(include.uri)
            included = self.completions.get(include.uri)
            if included is None:
                continue
            ordered.append(included)
            queue.extend(included.includes)
        return ordered

    def item_at(self, uri: str, position: Position) -> Optional[Item]:
        """Resolve the item referred to by the identifier at a position.

        Lookup order:
        1. A declaration whose name range holds the position
        2. Members, when the identifier follows ``expr.``
        3. Visible locals, most local first
        4. Top-level items of the file and its includes
        5. The definitions repository
        """
        table = self.completions.get(canonicalize_uri(uri))
        if table is None:
            return None

        for item in table.items:
            if item.range.contains(position):
                return item

        line = _line_at(table.text, position.line)
        if line is None:
            return None
        word = _word_at(line, position.character)
        if word is None:
            return None
        name, start = word

        context = self.context_at(table, position)
        tables = self.visible_tables(table.uri)

        receiver = _RECEIVER_BEFORE.search(line[:start])
        if receiver is not None:
            members = self._members_for(tables, table, context, receiver.group("receiver"))
            for member in members:
                if member.name == name:
                    return member
            return None

        scoped = [
            item
            for item in table.items_of_kind(*ItemKind.SCOPED)
            if item.name == name and is_visible(item, context.function, context.container)
        ]
        if scoped:
            return max(scoped, key=scope_rank)

        for current in tables:
            for item in current.top_level_items():
                if item.name == name:
                    return item
        return self.definitions.get(name)

    def _member_completions(
        self,
        tables: List[FileCompletions],
        table: FileCompletions,
        context: CursorContext,
        receiver: str,
    ) -> List[CompletionCandidate]:
        result: List[CompletionCandidate] = []
        seen: Set[str] = set()
        for item in self._members_for(tables, table, context, receiver):
            if item.name in seen:
                continue
            candidate = project_member_completion(item)
            if candidate is not None:
                seen.add(item.name)
                result.append(candidate)
        return result

    def _members_for(
        self,
        tables: List[FileCompletions],
        table: FileCompletions,
        context: CursorContext,
        receiver: str,
    ) -> List[Item]:
        """Members reachable through a receiver, all members when its type is unknown."""
        type_name = self._receiver_type(tables, table, context, receiver)
        if type_name is not None:
            members: List[Item] = []
            visited: Set[str] = set()
            current: Optional[str] = type_name
            while current is not None and current not in visited:
                visited.add(current)
                container = self._find_container(tables, current)
                if container is None:
                    break
                for t in tables:
                    members.extend(t.members_of(current))
                current = container.parent_name if container.kind == ItemKind.METHODMAP else None
            if members:
                return members
        return [item for t in tables for item in t.items if item.kind in ItemKind.MEMBERS]

    def _receiver_type(
        self,
        tables: List[FileCompletions],
        table: FileCompletions,
        context: CursorContext,
        receiver: str,
    ) -> Optional[str]:
        if receiver == "this":
            return context.container.name if context.container is not None else None
        scoped = [
            item
            for item in table.items_of_kind(*ItemKind.SCOPED)
            if item.name == receiver and is_visible(item, context.function, context.container)
        ]
        if scoped:
            return max(scoped, key=scope_rank).type_name
        for t in tables:
            for item in t.items_of_kind(*ItemKind.SCOPED):
                if item.name == receiver and item.function_name == GLOBAL_IDENTIFIER:
                    return item.type_name
        # Static access: "MyMap.Create()"
        if self._find_container(tables, receiver) is not None:
            return receiver
        return None

    def _find_container(self, tables: List[FileCompletions], name: str) -> Optional[Item]:
        for t in tables:
            for item in t.items_of_kind(*ItemKind.CONTAINERS):
                if item.name == name:
                    return item
        definition = self.definitions.get(name)
        if definition is not None and definition.kind in ItemKind.CONTAINERS:
            return definition
        return None

    def _constructor_of(self, uri: str, methodmap: Item) -> Optional[Item]:
        for table in self.visible_tables(uri):
            for member in table.members_of(methodmap.name):
                if member.kind == ItemKind.METHOD and member.name == methodmap.name:
                    return member
        return None

    def _local_references(self, item: Item) -> List[Location]:
        """Occurrences of a local's name inside its enclosing function."""
        table = self.completions.get(item.uri)
        if table is None:
            return []
        scope = None
        for candidate in table.items_of_kind(ItemKind.FUNCTION, ItemKind.METHOD):
            if candidate.name == item.function_name and candidate.container_name == item.container_name:
                scope = candidate.full_range
                break
        if scope is None:
            return []

        pattern = re.compile(rf"\b{re.escape(item.name)}\b")
        lines = table.text.splitlines()
        locations = []
        for line_number in range(scope.start.line, min(scope.end.line, len(lines) - 1) + 1):
            for match in pattern.finditer(lines[line_number]):
                start = Position(line_number, match.start())
                if not scope.contains(start):
                    continue
                locations.append(
                    Location(uri=item.uri, range=Range(start, Position(line_number, match.end())))
                )
        return locations

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _index(self, uri: str, text: str) -> bool:
        """Parse, swap in and resolve one document."""
        builtin = is_builtin_uri(uri)
        path = uri_to_path(uri, self.builtin_root)
        if not builtin:
            self.completions.registry.add(uri)

        result = self.parser.parse(
            text,
            uri,
            self.definitions,
            self.completions,
            is_builtin=builtin,
            file_path=path,
        )
        if not result.ok:
            assert result.error is not None
            logger.warning(
                f"Failed to parse {result.error}",
                extra={"extra_fields": {"uri": uri, "line": result.error.line}},
            )
            self.completions.register(
                FileCompletions(
                    uri=uri,
                    text=text,
                    file_path=str(path) if path else None,
                    is_builtin=builtin,
                )
            )
            return False

        table = result.table
        assert table is not None
        self.completions.register(table)
        stats = self.resolver.resolve(table.includes)
        if stats["resolved"]:
            self.completions.sync_references(uri)
        logger.debug(
            f"Indexed {uri}: {len(table.items)} items, {len(table.includes)} includes, "
            f"{stats['resolved']} newly resolved"
        )
        return True

    def _resolve_missing_includes(self, created_uri: str) -> None:
        """Re-parse tables whose unresolved includes name a newly created file."""
        created_name = file_name_of(created_uri)
        for table in self.completions.tables():
            if table.uri == created_uri:
                continue
            names = {Path(include_file_name(missing)).name for missing in table.missing_includes}
            if created_name in names:
                logger.debug(f"Re-resolving includes of {table.uri} after {created_name} appeared")
                self._index(table.uri, table.text)

    def _read(self, uri: str) -> Optional[str]:
        path = uri_to_path(uri, self.builtin_root)
        if path is None or not path.is_file():
            logger.debug(f"No file on disk for {uri}")
            return None
        try:
            return read_source(path, self.config.max_file_size_bytes)
        except OSError as e:
            logger.warning(f"Failed to read {uri}: {e}")
            return None

    def _source_files(self, root: Path) -> Iterable[Path]:
        extensions = {ext.lower() for ext in self.config.file_extensions}
        for path in sorted(root.rglob("*")):
            if path.suffix.lower() not in extensions or not path.is_file():
                continue
            rel_path = path.relative_to(root)
            if any(part in ALWAYS_IGNORED for part in rel_path.parts):
                continue
            if matches_ignore_pattern(rel_path, rel_path.as_posix(), self.config.ignore_patterns):
                continue
            yield path

    def _set_builtin_root(self, root: Path) -> None:
        self.builtin_root = root
        self.parser.builtin_root = root.resolve()
        self.resolver.builtin_root = root


def _innermost(items: Iterable[Item]) -> Optional[Item]:
    """The item whose full range starts last (the most deeply nested)."""
    innermost = None
    for item in items:
        if innermost is None or item.full_range.start >= innermost.full_range.start:
            innermost = item
    return innermost


def _line_at(text: str, line: int) -> Optional[str]:
    lines = text.split("\n")
    if line < 0 or line >= len(lines):
        return None
    return lines[line].rstrip("\r")


def _word_at(line: str, character: int) -> Optional[Tuple[str, int]]:
    """Identifier covering a character offset (end-inclusive), with its start."""
    for match in _WORD.finditer(line):
        if match.start() <= character <= match.end():
            return match.group(), match.start()
    return None


def _call_at(text: str, position: Position) -> Optional[Tuple[Position, int]]:
    """Find the innermost unclosed call around a position.

    Scans backwards from the position, skipping string and character
    literals and line comments, for at most MAX_CALL_LINES lines.

    Returns:
        (start of the callee name, number of top-level commas passed), or
        None when the position is not inside an argument list.
    """
    lines = text.split("\n")
    if position.line < 0 or position.line >= len(lines):
        return None
    depth = 0
    commas = 0
    line_number = position.line
    segment = lines[line_number][: position.character]
    while True:
        # Same-length blanks keep character offsets intact
        segment = _LITERAL.sub(lambda m: " " * len(m.group()), segment.rstrip("\r"))
        segment = _LINE_COMMENT.sub("", segment)
        for index in range(len(segment) - 1, -1, -1):
            char = segment[index]
            if char in ")]}":
                depth += 1
            elif char in "([{":
                if depth:
                    depth -= 1
                    continue
                if char != "(":
                    return None
                name = _NAME_BEFORE.search(segment[:index])
                if name is None:
                    return None
                return Position(line_number, name.start("name")), commas
            elif depth == 0 and char == ",":
                commas += 1
            elif depth == 0 and char == ";":
                return None
        line_number -= 1
        if line_number < 0 or position.line - line_number > MAX_CALL_LINES:
            return None
        segment = lines[line_number]
