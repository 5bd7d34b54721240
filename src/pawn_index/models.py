# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for the symbol index.

This module defines the data structures shared by every component:
- Position / Range / Location: zero-based source coordinates
- ItemKind: closed set of symbol kinds (tag of the Item variant)
- Item: one indexed symbol with its scope fields and reference list
- Include: a non-owning pointer from a file to a file it includes
- FileCompletions: the parse result of exactly one file
- ParseError / ParseResult: structured outcome of a parse
- CompletionCandidate, DefinitionTarget, HoverPayload, OutlineNode,
  SignatureInfo: query payloads produced by the projections in items.py
- SignatureHelp, TextEdit: results of signature help and rename

Outline nodes serialize to JSON-compatible primitives via to_dict().
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

# Parent name recorded on variables and constants declared outside any function
GLOBAL_IDENTIFIER = "$GLOBAL"


class ItemKind:
    """Kinds of indexed symbols.

    Design: Using class constants (not Enum) for JSON-compatible strings.
    """

    VARIABLE = "variable"  # int x; / new x;
    CONSTANT = "constant"  # const int X = 1;
    FUNCTION = "function"  # public void OnPluginStart()
    METHOD = "method"  # member function of an enum struct or methodmap
    PROPERTY = "property"  # methodmap property
    FIELD = "field"  # enum struct field
    ENUM_STRUCT = "enum_struct"  # enum struct Foo { ... }
    METHODMAP = "methodmap"  # methodmap Foo < Handle { ... }
    DEFINE = "define"  # #define FOO 1
    ENUM = "enum"  # enum Foo { ... }
    ENUM_MEMBER = "enum_member"  # member of an enum
    TYPEDEF = "typedef"  # typedef / typeset
    INCLUDE = "include"  # #include <foo>

    ALL = (
        VARIABLE,
        CONSTANT,
        FUNCTION,
        METHOD,
        PROPERTY,
        FIELD,
        ENUM_STRUCT,
        METHODMAP,
        DEFINE,
        ENUM,
        ENUM_MEMBER,
        TYPEDEF,
        INCLUDE,
    )

    # Kinds whose members are reached through "expr."
    CONTAINERS = (ENUM_STRUCT, METHODMAP)

    # Kinds that only ever appear at file scope
    TOP_LEVEL = (FUNCTION, ENUM_STRUCT, METHODMAP, DEFINE, ENUM, ENUM_MEMBER, TYPEDEF)

    # Kinds carrying the three-tier scope fields
    SCOPED = (VARIABLE, CONSTANT)

    # Kinds declared inside a container body
    MEMBERS = (FIELD, METHOD, PROPERTY)


class CompletionKind:
    """Completion candidate kinds exposed to the editor layer."""

    VARIABLE = "variable"
    CONSTANT = "constant"
    FUNCTION = "function"
    METHOD = "method"
    PROPERTY = "property"
    STRUCT = "struct"
    CLASS = "class"
    ENUM = "enum"
    ENUM_MEMBER = "enum_member"
    INTERFACE = "interface"
    MODULE = "module"
    FIELD = "field"


class SymbolKind:
    """Outline node kinds exposed to the editor layer."""

    VARIABLE = "variable"
    CONSTANT = "constant"
    FUNCTION = "function"
    METHOD = "method"
    PROPERTY = "property"
    STRUCT = "struct"
    CLASS = "class"
    ENUM = "enum"
    ENUM_MEMBER = "enum_member"
    INTERFACE = "interface"
    MODULE = "module"
    FIELD = "field"
    CONSTRUCTOR = "constructor"


@dataclass(frozen=True, order=True)
class Position:
    """Zero-based line/character position."""

    line: int
    character: int

    def to_dict(self) -> Dict[str, int]:
        """Serialize to JSON-compatible dict."""
        return {"line": self.line, "character": self.character}


@dataclass(frozen=True)
class Range:
    """Source range from start to end."""

    start: Position
    end: Position

    @classmethod
    def from_coords(cls, start_line: int, start_char: int, end_line: int, end_char: int) -> "Range":
        """Build a range from four integers."""
        return cls(Position(start_line, start_char), Position(end_line, end_char))

    def contains(self, position: Position) -> bool:
        """Check whether a position lies inside this range (end inclusive).

        The end is inclusive so that a cursor sitting right after the last
        character of a name or block still counts as inside it.
        """
        return self.start <= position <= self.end

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


@dataclass(frozen=True)
class Location:
    """A range inside a specific file."""

    uri: str
    range: Range


@dataclass
class Item:
    """An indexed symbol.

    Item is a tagged variant: ``kind`` selects which of the optional fields
    are meaningful and how the projections in items.py treat the item.

    Variant fields:
    - VARIABLE / CONSTANT: type_name, function_name (enclosing function name
      or GLOBAL_IDENTIFIER), container_name (enclosing enum struct/methodmap)
    - METHOD / PROPERTY / FIELD: container_name, type_name (return, property
      or field type)
    - FUNCTION: type_name (return type)
    - METHODMAP: parent_name (single inheritance chain)
    - ENUM_MEMBER: parent_name (owning enum, None for anonymous enums)
    - INCLUDE: target_uri (the included file)

    ``references`` is non-owning and grows as other files are parsed.
    """

    name: str
    kind: str  # ItemKind value
    uri: str  # URI of the declaring file (repository key)
    range: Range  # Range of the name
    full_range: Range  # Range of the whole declaration, including any body

    detail: str = ""  # Signature text, empty when none was recorded
    description: str = ""  # Documentation text (raw doc comment content)
    file_path: Optional[str] = None  # Filesystem path of the declaring file
    is_builtin: bool = False

    type_name: Optional[str] = None
    function_name: Optional[str] = None
    container_name: Optional[str] = None
    parent_name: Optional[str] = None
    target_uri: Optional[str] = None  # INCLUDE only: URI of the included file

    references: List[Location] = field(default_factory=list)

    def identity(self) -> Tuple[Any, ...]:
        """Identity of the item independent of object identity and references.

        Two parses of the same text yield items with equal identities.
        """
        return (
            self.name,
            self.kind,
            self.range,
            self.full_range,
            self.type_name,
            self.function_name,
            self.container_name,
            self.parent_name,
        )

    def is_top_level(self) -> bool:
        """Check whether the item belongs in the definitions repository."""
        if self.kind in ItemKind.TOP_LEVEL:
            return True
        return self.kind in ItemKind.SCOPED and self.function_name == GLOBAL_IDENTIFIER

    def location(self) -> Location:
        """Location of the item's name."""
        return Location(uri=self.uri, range=self.range)


@dataclass
class Include:
    """Reference from a file to a file it includes.

    Absence of a FileCompletions entry for ``uri`` means "not yet resolved".
    """

    uri: str
    is_builtin: bool
    text: str  # Name as written in the directive (e.g. "sdktools")
    range: Optional[Range] = None


@dataclass
class SymbolUse:
    """An identifier occurrence that may refer to a top-level definition."""

    name: str
    range: Range


@dataclass
class FileCompletions:
    """File symbol table: the parse result of exactly one file.

    Owns its items and include references. Replaced, never merged, when the
    same URI is parsed again.
    """

    uri: str
    text: str = ""
    file_path: Optional[str] = None
    is_builtin: bool = False
    items: List[Item] = field(default_factory=list)
    includes: List[Include] = field(default_factory=list)
    missing_includes: List[str] = field(default_factory=list)
    uses: List[SymbolUse] = field(default_factory=list)

    def add_item(self, item: Item) -> None:
        """Append an item to the table."""
        self.items.append(item)

    def add_include(self, include: Include) -> None:
        """Append an include reference, ignoring repeated targets."""
        if any(existing.uri == include.uri for existing in self.includes):
            return
        self.includes.append(include)

    def get_item(self, name: str, kind: Optional[str] = None) -> Optional[Item]:
        """Look up the first item with a name (and kind, if given)."""
        for item in self.items:
            if item.name == name and (kind is None or item.kind == kind):
                return item
        return None

    def items_of_kind(self, *kinds: str) -> List[Item]:
        """Get all items of the given kinds, in declaration order."""
        return [item for item in self.items if item.kind in kinds]

    def top_level_items(self) -> List[Item]:
        """Get items that belong in the definitions repository."""
        return [item for item in self.items if item.is_top_level()]

    def members_of(self, container_name: str) -> List[Item]:
        """Get fields, methods and properties declared inside a container."""
        members = []
        for item in self.items:
            if item.container_name != container_name:
                continue
            if item.kind in ItemKind.MEMBERS:
                members.append(item)
        return members


@dataclass
class ParseError:
    """Structured parse failure for one file."""

    uri: str
    message: str
    line: Optional[int] = None  # Zero-based line, None when unknown

    def __str__(self) -> str:
        if self.line is None:
            return f"{self.uri}: {self.message}"
        return f"{self.uri}:{self.line + 1}: {self.message}"


@dataclass
class ParseResult:
    """Either a populated table or a structured parse error."""

    table: Optional[FileCompletions] = None
    error: Optional[ParseError] = None

    @property
    def ok(self) -> bool:
        """True when the parse produced a table."""
        return self.error is None and self.table is not None


@dataclass
class CursorContext:
    """Lexical context around a cursor position."""

    function: Optional[Item] = None  # Innermost enclosing function or method
    container: Optional[Item] = None  # Innermost enclosing enum struct/methodmap


@dataclass
class CompletionCandidate:
    """Completion entry. detail/documentation are None for identity-only output."""

    label: str
    kind: str  # CompletionKind value
    detail: Optional[str] = None
    documentation: Optional[str] = None


@dataclass
class DefinitionTarget:
    """Where a symbol is declared."""

    uri: str
    path: Optional[str]
    range: Range


@dataclass
class HoverPayload:
    """Hover content: signature plus Markdown documentation."""

    signature: str
    documentation: str = ""


@dataclass
class OutlineNode:
    """Document outline entry."""

    name: str
    detail: str
    kind: str  # SymbolKind value
    range: Range
    selection_range: Range
    children: List["OutlineNode"] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "name": self.name,
            "detail": self.detail,
            "kind": self.kind,
            "range": self.range.to_dict(),
            "selection_range": self.selection_range.to_dict(),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass
class ParameterInfo:
    """One parameter of a signature."""

    label: str  # Parameter text as declared, e.g. "const char[] name"
    documentation: str = ""


@dataclass
class SignatureInfo:
    """Signature of a callable with per-parameter documentation."""

    label: str
    documentation: str = ""
    parameters: List[ParameterInfo] = field(default_factory=list)
    active_parameter: int = 0


@dataclass
class SignatureHelp:
    """Signatures of the call enclosing a cursor."""

    signatures: List[SignatureInfo]
    active_parameter: int = 0
    active_signature: int = 0


@dataclass
class TextEdit:
    """Replacement of a range with new text."""

    range: Range
    new_text: str
