# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""SourcePawn source parser producing file symbol tables.

This module implements the parsing pipeline for one file:
1. Scanning: comments and string literals are blanked out of a working copy
   (positions preserved), doc comments are collected
2. Statement splitting: brace/paren aware split into statements and blocks
3. Classification: includes, defines, enums, enum structs, methodmaps,
   typedefs, functions, global/local variables and parameters
4. Include resolution: each directive is mapped to a URI through the
   including file's directory, the document registry, the configured include
   directories and finally the built-in root
5. Use recording: identifiers naming known top-level definitions are
   recorded so the repositories can link references

Structural errors (unbalanced braces or parentheses, unterminated comments
or strings) are reported through ParseResult.error, never raised to callers.

Known limitations:
- Statements must be terminated by ';' (optional-semicolon style is not
  recognized inside function bodies)
- Preprocessor conditionals that duplicate an opening brace in both
  branches are reported as unbalanced
"""

import bisect
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence, Tuple, Union

from pawn_index.models import (
    GLOBAL_IDENTIFIER,
    FileCompletions,
    Include,
    Item,
    ItemKind,
    ParseError,
    ParseResult,
    Position,
    Range,
    SymbolUse,
)
from pawn_index.uris import builtin_uri, path_to_uri

if TYPE_CHECKING:
    from pawn_index.registry import CompletionsRepository, DefinitionsRepository

logger = logging.getLogger(__name__)

# Words that can never start a declaration's type
_KEYWORDS = frozenset(
    {
        "return",
        "if",
        "else",
        "for",
        "while",
        "do",
        "switch",
        "case",
        "default",
        "break",
        "continue",
        "delete",
        "new",
        "decl",
        "sizeof",
        "view_as",
        "goto",
        "this",
        "null",
        "true",
        "false",
        "static",
        "const",
        "public",
        "stock",
        "native",
        "forward",
        "enum",
        "struct",
        "methodmap",
        "typedef",
        "typeset",
        "property",
        "funcenum",
        "functag",
        "operator",
        "using",
        "tagof",
        "cellsof",
    }
)

_IDENT = r"[A-Za-z_]\w*"

_FUNCTION = re.compile(
    r"^(?P<mods>(?:(?:public|stock|static|native|forward)\s+)*)"
    rf"(?:(?P<type>{_IDENT}(?:\s*\[\s*\])*)(?:\s+|\s*:\s*))?"
    rf"(?P<name>{_IDENT})\s*\((?P<params>.*)\)\s*$",
    re.S,
)
_DECL_MODS = re.compile(r"^(?P<mods>(?:(?:public|stock|static|const|new|decl)\s+)*)")
_NEW_STYLE = re.compile(rf"^(?P<type>{_IDENT}(?:\s*\[\s*\])*)\s+(?P<name>{_IDENT})")
_OLD_STYLE = re.compile(rf"^(?:(?P<tag>{_IDENT})\s*:\s*)?(?P<name>{_IDENT})")
_DECLARATOR_TAIL = re.compile(r"^\s*(?:\[[^\]]*\]\s*)*(?:=.*)?$", re.S)
_PARAM = re.compile(
    r"^(?:const\s+)?"
    rf"(?:(?P<type>{_IDENT}(?:\s*\[\s*\])*)\s+)?&?\s*"
    rf"(?:(?P<tag>{_IDENT})\s*:\s*)?&?\s*"
    rf"(?P<name>{_IDENT})"
)
_FOR_INIT = re.compile(r"^for\s*\(", re.S)
_ENUM_STRUCT = re.compile(rf"^(?:enum\s+)?struct\s+(?P<name>{_IDENT})\s*$")
_METHODMAP = re.compile(
    rf"^methodmap\s+(?P<name>{_IDENT})(?:\s+__nullable__)?(?:\s*<\s*(?P<parent>{_IDENT}))?\s*$"
)
_ENUM = re.compile(rf"^enum(?:\s+(?P<name>{_IDENT})\s*:?)?(?:\s*\([^)]*\))?\s*$")
_ENUM_MEMBER = re.compile(rf"^(?:{_IDENT}\s*:\s*)?(?P<name>{_IDENT})")
_TYPEDEF = re.compile(rf"^typedef\s+(?P<name>{_IDENT})\s*=")
_TYPESET = re.compile(rf"^(?:typeset|funcenum)\s+(?P<name>{_IDENT})\s*$")
_FUNCTAG = re.compile(rf"^functag\s+(?:public\s+)?(?:{_IDENT}\s*:\s*)?(?P<name>{_IDENT})")
_PROPERTY = re.compile(
    rf"^property\s+(?P<type>{_IDENT}(?:\s*\[\s*\])*)\s+(?P<name>{_IDENT})\s*$"
)
_INCLUDE = re.compile(
    r'^\s*#\s*(?P<directive>include|tryinclude)\s*(?:<(?P<angle>[^>]+)>|"(?P<quoted>[^"]+)")'
)
_DEFINE = re.compile(rf"\s*#\s*define\s+(?P<name>{_IDENT})(?P<args>\([^)]*\))?")
_RAW_DIRECTIVE = re.compile(r"\s*#\s*(?:error|warning|pragma)\b")
_INCLUDE_LINE = re.compile(r"\s*#\s*(?:include|tryinclude)\b")
_IDENTIFIER = re.compile(rf"\b{_IDENT}\b")

_INCLUDE_EXTENSIONS = (".inc", ".sp", ".h")


class SourceSyntaxError(Exception):
    """Raised internally when the source structure cannot be recovered."""

    def __init__(self, message: str, offset: int):
        super().__init__(message)
        self.message = message
        self.offset = offset


class _Comment:
    """A comment span and its cleaned content."""

    __slots__ = ("start", "end", "content")

    def __init__(self, start: int, end: int, content: str):
        self.start = start
        self.end = end
        self.content = content


class SourceParser:
    """Parser for SourcePawn files.

    The parser is stateless between calls; all per-file state lives in a
    short-lived _FileParser.

    Usage:
        parser = SourceParser(builtin_root="/opt/sourcemod/include")
        result = parser.parse(text, uri, definitions, completions)
        if result.ok:
            table = result.table
    """

    def __init__(
        self,
        builtin_root: Optional[Union[str, Path]] = None,
        include_directories: Sequence[Union[str, Path]] = (),
        implicit_includes: Sequence[str] = (),
    ):
        """Initialize parser.

        Args:
            builtin_root: Root of the built-in include tree, if any.
            include_directories: Extra directories searched for includes.
            implicit_includes: Include names added to every workspace file
                when they resolve to an existing built-in (e.g. "sourcemod").
        """
        self.builtin_root = Path(builtin_root).resolve() if builtin_root else None
        self.include_directories = [Path(d) for d in include_directories]
        self.implicit_includes = list(implicit_includes)

    def parse(
        self,
        text: str,
        uri: str,
        definitions: Optional["DefinitionsRepository"] = None,
        completions: Optional["CompletionsRepository"] = None,
        is_builtin: bool = False,
        file_path: Optional[Union[str, Path]] = None,
    ) -> ParseResult:
        """Parse source text into a new file symbol table.

        Args:
            text: Source text.
            uri: Canonical URI of the file.
            definitions: Current definitions repository, used to record
                identifier uses of known symbols.
            completions: Current completions repository, used to resolve
                includes through the document registry.
            is_builtin: Flag every produced item as built-in.
            file_path: Filesystem path of the file, used for relative
                include resolution.

        Returns:
            ParseResult holding the table or a structured error.
        """
        file_parser = _FileParser(
            parser=self,
            text=text,
            uri=uri,
            definitions=definitions,
            completions=completions,
            is_builtin=is_builtin,
            file_path=Path(file_path) if file_path else None,
        )
        try:
            table = file_parser.run()
        except SourceSyntaxError as e:
            line = file_parser.position(e.offset).line
            logger.debug(f"Syntax error in {uri} at line {line}: {e.message}")
            return ParseResult(error=ParseError(uri=uri, message=e.message, line=line))
        return ParseResult(table=table)

    def resolve_include(
        self,
        name: str,
        quoted: bool,
        including_path: Optional[Path],
        completions: Optional["CompletionsRepository"] = None,
    ) -> Tuple[str, bool, bool]:
        """Map an include directive to a URI.

        Resolution order:
        1. Quoted includes: the including file's directory (and its include/)
        2. Document registry, by bare filename
        3. Configured include directories
        4. Built-in root

        Args:
            name: Name as written in the directive.
            quoted: True for "name", False for <name>.
            including_path: Path of the file holding the directive.
            completions: Repository whose document registry is consulted.

        Returns:
            Tuple of (uri, is_builtin, exists). When nothing matches, the URI
            points at the most likely location and exists is False.
        """
        file_name = include_file_name(name)
        including_dir = including_path.parent if including_path else None

        if quoted and including_dir is not None:
            for candidate in (including_dir / file_name, including_dir / "include" / file_name):
                if candidate.is_file():
                    uri, is_builtin = self._uri_for_path(candidate)
                    return uri, is_builtin, True

        if completions is not None:
            uri = completions.registry.lookup(Path(file_name).name, near=including_dir)
            if uri is not None:
                return uri, False, True

        for directory in self.include_directories:
            candidate = directory / file_name
            if candidate.is_file():
                uri, is_builtin = self._uri_for_path(candidate)
                return uri, is_builtin, True

        if self.builtin_root is not None:
            candidate = self.builtin_root / file_name
            if candidate.is_file():
                return builtin_uri(file_name), True, True

        if including_dir is not None and (quoted or self.builtin_root is None):
            uri, is_builtin = self._uri_for_path(including_dir / file_name)
            return uri, is_builtin, False
        return builtin_uri(file_name), True, False

    def _uri_for_path(self, path: Path) -> Tuple[str, bool]:
        """Pick the namespace for a path: built-in when under the built-in root."""
        if self.builtin_root is not None:
            try:
                relative = path.resolve().relative_to(self.builtin_root)
            except ValueError:
                pass
            else:
                return builtin_uri(relative.as_posix()), True
        return path_to_uri(path), False


class _FileParser:
    """Per-file parsing state."""

    def __init__(
        self,
        parser: SourceParser,
        text: str,
        uri: str,
        definitions: Optional["DefinitionsRepository"],
        completions: Optional["CompletionsRepository"],
        is_builtin: bool,
        file_path: Optional[Path],
    ):
        self.parser = parser
        self.text = text[1:] if text.startswith("\ufeff") else text
        self.uri = uri
        self.definitions = definitions
        self.completions = completions
        self.is_builtin = is_builtin
        self.file_path = file_path
        self.comments: List[_Comment] = []
        self.comment_ends: List[int] = []
        self.line_starts = [0] + [m.end() for m in re.finditer("\n", self.text)]
        self.clean = self.text  # comments and strings blanked
        self.code = self.text  # comments blanked
        self.table = FileCompletions(
            uri=uri,
            text=self.text,
            file_path=str(file_path) if file_path else None,
            is_builtin=is_builtin,
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self) -> FileCompletions:
        """Parse the whole file and return its table."""
        self._scan()
        for kind, start, end, body in self._statements(0, len(self.clean)):
            self._top_level(kind, start, end, body)
        if not self.is_builtin:
            self._add_implicit_includes()
        self._record_uses()
        return self.table

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _scan(self) -> None:
        """Blank comments and string contents, collecting comments."""
        text = self.text
        n = len(text)
        clean = list(text)
        code = list(text)
        i = 0
        line_start = True

        def blank(buffer: List[str], start: int, end: int) -> None:
            for k in range(start, end):
                if buffer[k] != "\n":
                    buffer[k] = " "

        while i < n:
            c = text[i]
            nxt = text[i + 1] if i + 1 < n else ""
            if c == "\n":
                line_start = True
                i += 1
                continue
            if line_start and c == "#" and _RAW_DIRECTIVE.match(text, i):
                # Free text after #error/#warning/#pragma may hold stray quotes
                end = text.find("\n", i)
                i = n if end == -1 else end
                continue
            if not c.isspace():
                line_start = False
            if c == "/" and nxt == "/":
                end = text.find("\n", i)
                end = n if end == -1 else end
                self.comments.append(_Comment(i, end, _clean_comment(text[i + 2 : end])))
                blank(clean, i, end)
                blank(code, i, end)
                i = end
            elif c == "/" and nxt == "*":
                end = text.find("*/", i + 2)
                if end == -1:
                    raise SourceSyntaxError("Unterminated block comment", i)
                self.comments.append(_Comment(i, end + 2, _clean_comment(text[i + 2 : end])))
                blank(clean, i, end + 2)
                blank(code, i, end + 2)
                i = end + 2
            elif c in "\"'":
                j = i + 1
                while j < n and text[j] != c:
                    if text[j] == "\\":
                        j += 1
                    elif text[j] == "\n":
                        break
                    j += 1
                if j >= n or text[j] != c:
                    raise SourceSyntaxError("Unterminated string literal", i)
                blank(clean, i + 1, j)
                i = j + 1
            else:
                i += 1

        self.clean = "".join(clean)
        self.code = "".join(code)
        self.comment_ends = [comment.end for comment in self.comments]

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def position(self, offset: int) -> Position:
        """Convert a character offset to a zero-based position."""
        line = bisect.bisect_right(self.line_starts, offset) - 1
        return Position(line, offset - self.line_starts[line])

    def _range(self, start: int, end: int) -> Range:
        return Range(self.position(start), self.position(end))

    # ------------------------------------------------------------------
    # Statement splitting
    # ------------------------------------------------------------------

    def _statements(
        self, start: int, end: int
    ) -> Iterator[Tuple[str, int, int, Optional[Tuple[int, int]]]]:
        """Split [start, end) into statements.

        Yields:
            Tuples (kind, header_start, header_end, body) where kind is
            "directive", "statement" or "block" and body holds the offsets of
            the opening and closing braces of a block.
        """
        clean = self.clean
        i = start
        while i < end:
            c = clean[i]
            if c.isspace() or c == ";":
                i += 1
                continue
            if c == "#":
                j = self._directive_end(i, end)
                yield "directive", i, j, None
                i = j
                continue
            if c == "}":
                raise SourceSyntaxError("Unexpected '}'", i)

            j = i
            depth = 0
            while True:
                if j >= end:
                    if depth > 0:
                        raise SourceSyntaxError("Unbalanced '('", i)
                    if clean[i:end].strip():
                        yield "statement", i, end, None
                    i = end
                    break
                ch = clean[j]
                if ch in "([":
                    depth += 1
                elif ch in ")]":
                    depth -= 1
                    if depth < 0:
                        raise SourceSyntaxError(f"Unexpected '{ch}'", j)
                elif ch == "#" and self._at_line_start(j):
                    j = self._directive_end(j, end)
                    continue
                elif depth == 0 and ch == ";":
                    yield "statement", i, j, None
                    i = j + 1
                    break
                elif depth == 0 and ch == "}":
                    raise SourceSyntaxError("Unexpected '}'", j)
                elif ch == "{":
                    close = self._match_brace(j, end)
                    if depth > 0 or _assigns_at_top(clean, i, j):
                        # Array initializer: keep scanning for the terminator
                        j = close + 1
                        continue
                    yield "block", i, j, (j, close)
                    i = close + 1
                    break
                j += 1

    def _match_brace(self, open_offset: int, limit: int) -> int:
        depth = 0
        clean = self.clean
        for k in range(open_offset, limit):
            ch = clean[k]
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return k
        raise SourceSyntaxError("Unbalanced '{'", open_offset)

    def _directive_end(self, start: int, limit: int) -> int:
        """Offset of the end of a preprocessor line (continuations included)."""
        k = start
        while True:
            newline = self.clean.find("\n", k, limit)
            if newline == -1:
                return limit
            if self.clean[k:newline].rstrip().endswith("\\"):
                k = newline + 1
                continue
            return newline

    def _at_line_start(self, offset: int) -> bool:
        line_start = self.line_starts[bisect.bisect_right(self.line_starts, offset) - 1]
        return not self.clean[line_start:offset].strip()

    def _header(self, start: int, end: int) -> Tuple[str, int]:
        """Stripped header text and the offset where it starts."""
        raw = self.clean[start:end]
        stripped = raw.lstrip()
        return stripped.rstrip(), start + (len(raw) - len(stripped))

    def _detail(self, start: int, end: int) -> str:
        """Signature text of a span with whitespace collapsed."""
        return " ".join(self.code[start:end].split())

    # ------------------------------------------------------------------
    # Top level
    # ------------------------------------------------------------------

    def _top_level(
        self, kind: str, start: int, end: int, body: Optional[Tuple[int, int]]
    ) -> None:
        if kind == "directive":
            self._directive(start, end)
            return

        header, hstart = self._header(start, end)
        if body is not None:
            match = _ENUM_STRUCT.match(header)
            if match:
                self._enum_struct(match, hstart, body)
                return
            match = _METHODMAP.match(header)
            if match:
                self._methodmap(match, hstart, body)
                return
            match = _ENUM.match(header)
            if match:
                self._enum(match, hstart, body)
                return
            match = _TYPESET.match(header)
            if match:
                self._add(
                    ItemKind.TYPEDEF,
                    match.group("name"),
                    hstart + match.start("name"),
                    (hstart, body[1] + 1),
                    detail=self._detail(hstart, body[0]),
                )
                return
            match = _FUNCTION.match(header)
            if match and self._is_function(match):
                self._function(match, hstart, end, body, container=None)
            return

        match = _TYPEDEF.match(header)
        if match:
            self._add(
                ItemKind.TYPEDEF,
                match.group("name"),
                hstart + match.start("name"),
                (hstart, end),
                detail=self._detail(hstart, end),
            )
            return
        match = _FUNCTAG.match(header)
        if match:
            self._add(
                ItemKind.TYPEDEF,
                match.group("name"),
                hstart + match.start("name"),
                (hstart, end),
                detail=self._detail(hstart, end),
            )
            return
        match = _FUNCTION.match(header)
        if match and self._is_function(match) and not _assigns_at_top(header, 0, len(header)):
            self._function(match, hstart, end, None, container=None)
            return
        self._variables(hstart, end, GLOBAL_IDENTIFIER, None, allow_untyped=True)

    def _directive(self, start: int, end: int) -> None:
        line = self.text[start:end]
        match = _INCLUDE.match(line)
        if match:
            quoted = match.group("quoted") is not None
            name = match.group("quoted") if quoted else match.group("angle")
            name_group = "quoted" if quoted else "angle"
            uri, is_builtin, exists = self.parser.resolve_include(
                name, quoted, self.file_path, self.completions
            )
            name_range = self._range(start + match.start(name_group), start + match.end(name_group))
            self._add(
                ItemKind.INCLUDE,
                name.strip(),
                start + match.start(name_group),
                (start, end),
                detail=self._detail(start, end),
                target_uri=uri,
                name_end=start + match.end(name_group),
            )
            self.table.add_include(
                Include(uri=uri, is_builtin=is_builtin, text=name.strip(), range=name_range)
            )
            if not exists:
                self.table.missing_includes.append(name.strip())
            return

        match = _DEFINE.match(self.code, start, end)
        if match:
            self._add(
                ItemKind.DEFINE,
                match.group("name"),
                match.start("name"),
                (start, end),
                detail=self._detail(start, end).replace("\\ ", ""),
            )

    def _add_implicit_includes(self) -> None:
        if self.parser.builtin_root is None:
            return
        for name in self.parser.implicit_includes:
            uri, is_builtin, exists = self.parser.resolve_include(
                name, False, self.file_path, self.completions
            )
            if exists and uri != self.uri:
                self.table.add_include(Include(uri=uri, is_builtin=is_builtin, text=name))

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _add(
        self,
        kind: str,
        name: str,
        name_start: int,
        full_span: Tuple[int, int],
        detail: str = "",
        name_end: Optional[int] = None,
        **fields: Optional[str],
    ) -> Item:
        item = Item(
            name=name,
            kind=kind,
            uri=self.uri,
            range=self._range(name_start, name_end if name_end is not None else name_start + len(name)),
            full_range=self._range(*full_span),
            detail=detail,
            description=self._description(full_span[0], full_span[1]),
            file_path=self.table.file_path,
            is_builtin=self.is_builtin,
            **fields,
        )
        self.table.add_item(item)
        return item

    def _is_function(self, match: "re.Match[str]") -> bool:
        type_name = match.group("type")
        if match.group("name") in _KEYWORDS:
            return False
        return not (type_name and type_name.split("[")[0].strip() in _KEYWORDS)

    def _function(
        self,
        match: "re.Match[str]",
        hstart: int,
        end: int,
        body: Optional[Tuple[int, int]],
        container: Optional[str],
    ) -> None:
        name = match.group("name")
        full_end = body[1] + 1 if body else end
        type_name = match.group("type")
        self._add(
            ItemKind.METHOD if container else ItemKind.FUNCTION,
            name,
            hstart + match.start("name"),
            (hstart, full_end),
            detail=self._detail(hstart, body[0] if body else end),
            type_name=_normalize_type(type_name) if type_name else None,
            container_name=container,
        )
        self._parameters(hstart + match.start("params"), hstart + match.end("params"), name, container)
        if body:
            self._function_body(body[0] + 1, body[1], name, container)

    def _parameters(self, start: int, end: int, function: str, container: Optional[str]) -> None:
        for segment, offset in _split_top(self.clean, start, end):
            stripped = segment.lstrip()
            offset += len(segment) - len(stripped)
            match = _PARAM.match(stripped)
            if not match or match.group("name") in _KEYWORDS:
                continue
            type_name = match.group("type") or match.group("tag")
            self._add(
                ItemKind.VARIABLE,
                match.group("name"),
                offset + match.start("name"),
                (offset, offset + len(stripped.rstrip())),
                detail=self._detail(offset, offset + len(stripped.split("=")[0].rstrip())),
                type_name=_normalize_type(type_name) if type_name else None,
                function_name=function,
                container_name=container,
            )

    def _function_body(self, start: int, end: int, function: str, container: Optional[str]) -> None:
        for kind, hs, he, body in self._statements(start, end):
            if kind == "directive":
                continue
            header, hstart = self._header(hs, he)
            if _FOR_INIT.match(header):
                self._for_initializer(header, hstart, function, container)
            elif kind == "statement":
                self._variables(hstart, he, function, container, allow_untyped=False)
            if body is not None:
                self._function_body(body[0] + 1, body[1], function, container)

    def _for_initializer(self, header: str, hstart: int, function: str, container: Optional[str]) -> None:
        open_paren = header.index("(")
        init_end = header.find(";", open_paren)
        if init_end == -1:
            return
        self._variables(
            hstart + open_paren + 1, hstart + init_end, function, container, allow_untyped=False
        )

    def _variables(
        self,
        start: int,
        end: int,
        function: str,
        container: Optional[str],
        allow_untyped: bool,
        kind: Optional[str] = None,
    ) -> None:
        """Parse a declaration statement into one item per declarator."""
        header, hstart = self._header(start, end)
        mods_match = _DECL_MODS.match(header)
        mods = mods_match.group("mods").split() if mods_match else []
        rest_start = hstart + (mods_match.end() if mods_match else 0)
        segments = _split_top(self.clean, rest_start, hstart + len(header))
        if not segments:
            return

        first, first_offset = segments[0]
        stripped = first.lstrip()
        first_offset += len(first) - len(stripped)
        type_name: Optional[str] = None
        match = _NEW_STYLE.match(stripped)
        if match and match.group("type").split("[")[0].strip() not in _KEYWORDS:
            type_name = _normalize_type(match.group("type"))
        else:
            match = _OLD_STYLE.match(stripped)
            old_style = bool(match and match.group("tag"))
            if not match or not (mods or old_style) or not (allow_untyped or mods):
                return
            if match.group("tag"):
                type_name = match.group("tag")
        if match.group("name") in _KEYWORDS or not _DECLARATOR_TAIL.match(stripped[match.end() :]):
            return

        if kind is None:
            kind = ItemKind.CONSTANT if "const" in mods else ItemKind.VARIABLE
        if kind == ItemKind.FIELD:
            scope = {"container_name": container}
        else:
            scope = {"function_name": function, "container_name": container}

        declarators = [(stripped, first_offset, match)]
        for segment, offset in segments[1:]:
            stripped_segment = segment.lstrip()
            offset += len(segment) - len(stripped_segment)
            extra = _OLD_STYLE.match(stripped_segment)
            if extra and extra.group("name") not in _KEYWORDS:
                declarators.append((stripped_segment, offset, extra))

        prefix = " ".join(mods)
        for text, offset, decl in declarators:
            name = decl.group("name")
            name_start = offset + decl.start("name")
            declarator_end = offset + len(text.split("=")[0].rstrip())
            dims = self._detail(name_start + len(name), declarator_end)
            detail = " ".join(part for part in (prefix, type_name or "", name + dims) if part)
            self._add(
                kind,
                name,
                name_start,
                (hstart, end),
                detail=detail,
                type_name=type_name,
                **scope,
            )

    def _enum(self, match: "re.Match[str]", hstart: int, body: Tuple[int, int]) -> None:
        name = match.group("name")
        if name:
            self._add(
                ItemKind.ENUM,
                name,
                hstart + match.start("name"),
                (hstart, body[1] + 1),
                detail=f"enum {name}",
            )
        for segment, offset in _split_top(self.clean, body[0] + 1, body[1]):
            stripped = segment.strip()
            if not stripped:
                continue
            offset += len(segment) - len(segment.lstrip())
            member = _ENUM_MEMBER.match(stripped)
            if not member:
                continue
            self._add(
                ItemKind.ENUM_MEMBER,
                member.group("name"),
                offset + member.start("name"),
                (offset, offset + len(stripped)),
                detail=self._detail(offset, offset + len(stripped)),
                parent_name=name,
            )

    def _enum_struct(self, match: "re.Match[str]", hstart: int, body: Tuple[int, int]) -> None:
        name = match.group("name")
        self._add(
            ItemKind.ENUM_STRUCT,
            name,
            hstart + match.start("name"),
            (hstart, body[1] + 1),
            detail=self._detail(hstart, body[0]),
        )
        for kind, start, end, member_body in self._statements(body[0] + 1, body[1]):
            if kind == "directive":
                continue
            header, mstart = self._header(start, end)
            method = _FUNCTION.match(header)
            if method and self._is_function(method) and not _assigns_at_top(header, 0, len(header)):
                self._function(method, mstart, end, member_body, container=name)
            elif member_body is None:
                self._variables(mstart, end, name, name, allow_untyped=False, kind=ItemKind.FIELD)

    def _methodmap(self, match: "re.Match[str]", hstart: int, body: Tuple[int, int]) -> None:
        name = match.group("name")
        self._add(
            ItemKind.METHODMAP,
            name,
            hstart + match.start("name"),
            (hstart, body[1] + 1),
            detail=self._detail(hstart, body[0]),
            parent_name=match.group("parent"),
        )
        for kind, start, end, member_body in self._statements(body[0] + 1, body[1]):
            if kind == "directive":
                continue
            header, mstart = self._header(start, end)
            prop = _PROPERTY.match(header)
            if prop:
                full_end = member_body[1] + 1 if member_body else end
                self._add(
                    ItemKind.PROPERTY,
                    prop.group("name"),
                    mstart + prop.start("name"),
                    (mstart, full_end),
                    detail=self._detail(mstart, member_body[0] if member_body else end),
                    type_name=_normalize_type(prop.group("type")),
                    container_name=name,
                )
                continue
            method = _FUNCTION.match(header)
            if method and self._is_function(method):
                self._function(method, mstart, end, member_body, container=name)

    # ------------------------------------------------------------------
    # Documentation
    # ------------------------------------------------------------------

    def _description(self, start: int, end: int) -> str:
        """Doc comments right before a declaration, or trailing on its last line."""
        parts: List[str] = []
        boundary = start
        index = bisect.bisect_right(self.comment_ends, boundary) - 1
        while index >= 0:
            comment = self.comments[index]
            if self.text[comment.end : boundary].strip():
                break
            # A trailing comment of the previous declaration is not ours
            if comment.start > 0 and self._line_has_code_before(comment.start):
                break
            parts.append(comment.content)
            boundary = comment.start
            index -= 1
        if parts:
            return "\n".join(reversed(parts)).strip()

        line_end = self.text.find("\n", end)
        line_end = len(self.text) if line_end == -1 else line_end
        following = bisect.bisect_right(self.comment_ends, end)
        if following < len(self.comments) and end <= self.comments[following].start < line_end:
            return self.comments[following].content.strip()
        return ""

    def _line_has_code_before(self, offset: int) -> bool:
        line_start = self.line_starts[bisect.bisect_right(self.line_starts, offset) - 1]
        return bool(self.clean[line_start:offset].strip())

    # ------------------------------------------------------------------
    # Uses
    # ------------------------------------------------------------------

    def _record_uses(self) -> None:
        """Record identifier occurrences that may name top-level definitions.

        Workspace files record every non-local identifier so uses of symbols
        from not-yet-resolved includes can be linked later. Built-in files
        only record names already known.
        """
        local_names = {item.name for item in self.table.top_level_items()}
        scoped_names = {
            item.name for item in self.table.items if not item.is_top_level()
        } - local_names
        declared = {
            (item.range.start, item.name)
            for item in self.table.items
            if item.kind != ItemKind.INCLUDE
        }
        for match in _IDENTIFIER.finditer(self.clean):
            name = match.group()
            if name in _KEYWORDS or name in scoped_names:
                continue
            if self.is_builtin and name not in local_names:
                if self.definitions is None or name not in self.definitions:
                    continue
            start = self.position(match.start())
            if (start, name) in declared:
                continue
            if self._at_directive(match.start()):
                continue
            self.table.uses.append(
                SymbolUse(name=name, range=Range(start, self.position(match.end())))
            )

    def _at_directive(self, offset: int) -> bool:
        line_start = self.line_starts[bisect.bisect_right(self.line_starts, offset) - 1]
        return bool(_INCLUDE_LINE.match(self.clean, line_start, offset))


def _split_top(text: str, start: int, end: int, separator: str = ",") -> List[Tuple[str, int]]:
    """Split text[start:end] on a separator at nesting depth zero.

    Returns:
        List of (segment, absolute offset) pairs; blank segments dropped.
    """
    segments: List[Tuple[str, int]] = []
    depth = 0
    seg_start = start
    for k in range(start, end):
        ch = text[k]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == separator and depth == 0:
            segments.append((text[seg_start:k], seg_start))
            seg_start = k + 1
    segments.append((text[seg_start:end], seg_start))
    return [(segment, offset) for segment, offset in segments if segment.strip()]


def _assigns_at_top(text: str, start: int, end: int) -> bool:
    """Check for an assignment '=' at nesting depth zero in text[start:end]."""
    depth = 0
    for k in range(start, end):
        ch = text[k]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "=" and depth == 0:
            before = text[k - 1] if k > start else ""
            after = text[k + 1] if k + 1 < end else ""
            if after != "=" and before not in "=!<>+-*/%&|^":
                return True
    return False


def _normalize_type(type_name: str) -> str:
    """Collapse whitespace in a type ("char [ ]" -> "char[]")."""
    return "".join(type_name.split()).rstrip(":")


def _clean_comment(raw: str) -> str:
    """Strip comment markers kept after the delimiters."""
    content = raw.lstrip("/*!<")
    lines = [line.rstrip() for line in content.splitlines()]
    return "\n".join(lines).strip()


def include_file_name(name: str) -> str:
    """Relative file name an include directive refers to ("utils" -> "utils.inc")."""
    file_name = name.strip().replace("\\", "/")
    if not file_name.endswith(_INCLUDE_EXTENSIONS):
        file_name += ".inc"
    return file_name
