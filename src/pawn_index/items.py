# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Item projections and scope visibility.

Every Item, whatever its kind, supports the same four projections:
- project_completion(): completion candidate, or None when not visible
- project_definition(): declaring file + range
- project_hover(): signature + Markdown documentation, or None
- project_outline(): outline node (nesting is done by build_outline())

Functions and methods also project to signature help (project_signature()).

Projections dispatch on ``Item.kind`` through the tables below instead of a
class hierarchy.

Scope visibility (variables and constants) is decided at query time by
exact string comparison of recorded parent names against the caller's
context; nothing here inspects types.
"""

import re
from typing import Dict, List, Optional

from pawn_index.models import (
    GLOBAL_IDENTIFIER,
    CompletionCandidate,
    CompletionKind,
    DefinitionTarget,
    FileCompletions,
    HoverPayload,
    Item,
    ItemKind,
    OutlineNode,
    ParameterInfo,
    Position,
    Range,
    SignatureInfo,
    SymbolKind,
)

_COMPLETION_KINDS: Dict[str, str] = {
    ItemKind.VARIABLE: CompletionKind.VARIABLE,
    ItemKind.CONSTANT: CompletionKind.CONSTANT,
    ItemKind.FUNCTION: CompletionKind.FUNCTION,
    ItemKind.METHOD: CompletionKind.METHOD,
    ItemKind.PROPERTY: CompletionKind.PROPERTY,
    ItemKind.FIELD: CompletionKind.FIELD,
    ItemKind.ENUM_STRUCT: CompletionKind.STRUCT,
    ItemKind.METHODMAP: CompletionKind.CLASS,
    ItemKind.DEFINE: CompletionKind.CONSTANT,
    ItemKind.ENUM: CompletionKind.ENUM,
    ItemKind.ENUM_MEMBER: CompletionKind.ENUM_MEMBER,
    ItemKind.TYPEDEF: CompletionKind.INTERFACE,
    ItemKind.INCLUDE: CompletionKind.MODULE,
}

_SYMBOL_KINDS: Dict[str, str] = {
    ItemKind.VARIABLE: SymbolKind.VARIABLE,
    ItemKind.CONSTANT: SymbolKind.CONSTANT,
    ItemKind.FUNCTION: SymbolKind.FUNCTION,
    ItemKind.METHOD: SymbolKind.METHOD,
    ItemKind.PROPERTY: SymbolKind.PROPERTY,
    ItemKind.FIELD: SymbolKind.FIELD,
    ItemKind.ENUM_STRUCT: SymbolKind.STRUCT,
    ItemKind.METHODMAP: SymbolKind.CLASS,
    ItemKind.DEFINE: SymbolKind.CONSTANT,
    ItemKind.ENUM: SymbolKind.ENUM,
    ItemKind.ENUM_MEMBER: SymbolKind.ENUM_MEMBER,
    ItemKind.TYPEDEF: SymbolKind.INTERFACE,
    ItemKind.INCLUDE: SymbolKind.MODULE,
}

# Kinds offered by plain (non-member) completion without any scope check
_ALWAYS_VISIBLE = (
    ItemKind.FUNCTION,
    ItemKind.DEFINE,
    ItemKind.ENUM,
    ItemKind.ENUM_MEMBER,
    ItemKind.TYPEDEF,
    ItemKind.ENUM_STRUCT,
    ItemKind.METHODMAP,
)

# Doc comment tags rendered as emphasized headings
_DOC_TAGS = ("return", "error", "note", "deprecated", "noreturn")

_PARAM_TAG = re.compile(r"@param\s+([A-Za-z0-9_.]+)\s*")
_OTHER_TAG = re.compile(r"@(" + "|".join(_DOC_TAGS) + r")\b\s*")
_LEADING_STARS = re.compile(r"^[ \t]*\*+[ \t]?", re.MULTILINE)
_PARAM_DOC = re.compile(r"@param\s+([A-Za-z0-9_]+)\s*(.*?)(?=@\w|\Z)", re.DOTALL)
_PARAM_NAME = re.compile(r"([A-Za-z_]\w*)\s*(?:\[[^\]]*\]\s*)*(?:=.*)?$", re.DOTALL)


def is_visible(item: Item, function: Optional[Item], container: Optional[Item]) -> bool:
    """Decide whether a scoped item is visible from a lexical context.

    Three tiers:
    1. No enclosing function: visible iff the item is global.
    2. Function, no container: visible iff the item's parent is that function
       and the item was not declared inside a container.
    3. Both: visible iff the item's parent is that function, the item was
       declared in that container AND the function's own parent is that
       container. Locals of same-named methods in other containers stay
       hidden.

    Comparison is exact and case-sensitive.

    Args:
        item: Variable or constant item.
        function: Enclosing function or method at the caller's position.
        container: Enclosing enum struct or methodmap at the caller's position.

    Returns:
        True if visible.
    """
    if function is None:
        return item.function_name == GLOBAL_IDENTIFIER
    if container is None:
        return item.function_name == function.name and item.container_name is None
    return (
        item.function_name == function.name
        and item.container_name == container.name
        and function.container_name == container.name
    )


def scope_rank(item: Item) -> int:
    """Locality rank used to pick between same-named candidates.

    Returns:
        2 for method locals, 1 for function locals, 0 for everything else.
    """
    if item.kind not in ItemKind.SCOPED or item.function_name == GLOBAL_IDENTIFIER:
        return 0
    return 2 if item.container_name is not None else 1


def completion_kind(item: Item) -> str:
    """Completion kind for an item."""
    return _COMPLETION_KINDS[item.kind]


def project_completion(
    item: Item,
    function: Optional[Item] = None,
    container: Optional[Item] = None,
    override: bool = False,
) -> Optional[CompletionCandidate]:
    """Project an item to a plain completion candidate.

    Args:
        item: Item to project.
        function: Enclosing function/method at the cursor, if any.
        container: Enclosing enum struct/methodmap at the cursor, if any.
        override: Return identity only (label + kind), skipping the scope
            check. Used when merging same-named candidates.

    Returns:
        CompletionCandidate, or None when the item is not visible here.
    """
    kind = completion_kind(item)
    if override:
        return CompletionCandidate(label=item.name, kind=kind)

    if item.kind in ItemKind.SCOPED:
        if not is_visible(item, function, container):
            return None
    elif item.kind not in _ALWAYS_VISIBLE:
        # Members are reached through member access only
        return None

    return CompletionCandidate(
        label=item.name,
        kind=kind,
        detail=item.detail or None,
        documentation=description_to_markdown(item.description) or None,
    )


def project_member_completion(item: Item) -> Optional[CompletionCandidate]:
    """Project a container member to a completion candidate after "expr.".

    Returns:
        CompletionCandidate for methods, properties and fields, None otherwise.
    """
    if item.kind not in ItemKind.MEMBERS:
        return None
    return CompletionCandidate(
        label=item.name,
        kind=completion_kind(item),
        detail=item.detail or None,
        documentation=description_to_markdown(item.description) or None,
    )


def project_definition(item: Item) -> DefinitionTarget:
    """Project an item to its definition target.

    Include items point at the start of the included file.
    """
    if item.kind == ItemKind.INCLUDE and item.target_uri is not None:
        origin = Range(Position(0, 0), Position(0, 0))
        return DefinitionTarget(uri=item.target_uri, path=None, range=origin)
    return DefinitionTarget(uri=item.uri, path=item.file_path, range=item.range)


def project_hover(item: Item) -> Optional[HoverPayload]:
    """Project an item to hover content.

    Returns:
        HoverPayload, or None if no signature was recorded for the item.
    """
    if not item.detail:
        return None
    return HoverPayload(
        signature=item.detail,
        documentation=description_to_markdown(item.description),
    )


def project_signature(item: Item, active_parameter: int = 0) -> Optional[SignatureInfo]:
    """Project a callable to signature help.

    Parameters are taken from the recorded signature; each one picks up the
    text of the matching ``@param`` tag of the description.

    Args:
        item: Item to project.
        active_parameter: Zero-based index of the argument under the cursor.

    Returns:
        SignatureInfo for functions and methods with a recorded signature,
        None for every other kind.
    """
    if item.kind not in (ItemKind.FUNCTION, ItemKind.METHOD) or not item.detail:
        return None
    docs = _parameter_docs(item.description)
    parameters = []
    for label in signature_parameters(item.detail):
        name = _PARAM_NAME.search(label)
        documentation = docs.get(name.group(1), "") if name else ""
        parameters.append(ParameterInfo(label=label, documentation=documentation))
    return SignatureInfo(
        label=item.detail,
        documentation=description_to_markdown(item.description),
        parameters=parameters,
        active_parameter=active_parameter,
    )


def signature_parameters(detail: str) -> List[str]:
    """Split the parameter list of a signature at top-level commas.

    Commas nested in brackets, braces or literals (default values such as
    ``{0, 0}`` or ``","``) do not split.
    """
    open_paren = detail.find("(")
    if open_paren == -1:
        return []
    parameters: List[str] = []
    current: List[str] = []
    depth = 0
    quote: Optional[str] = None
    escaped = False
    for char in detail[open_paren + 1 :]:
        if quote is not None:
            current.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue
        if char in "\"'":
            quote = char
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            if depth == 0:
                break
            depth -= 1
        elif char == "," and depth == 0:
            parameters.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    parameters.append("".join(current).strip())
    return [parameter for parameter in parameters if parameter]


def _parameter_docs(description: str) -> Dict[str, str]:
    """``@param`` texts of a doc comment by parameter name."""
    if not description:
        return {}
    text = _LEADING_STARS.sub("", description)
    return {match.group(1): " ".join(match.group(2).split()) for match in _PARAM_DOC.finditer(text)}


def project_outline(item: Item, children: Optional[List[OutlineNode]] = None) -> OutlineNode:
    """Project an item to an outline node.

    Variables show their type as detail, every other kind its signature.
    """
    kind = _SYMBOL_KINDS[item.kind]
    if item.kind in (ItemKind.VARIABLE, ItemKind.CONSTANT, ItemKind.FIELD):
        detail = item.type_name or ""
    else:
        detail = item.detail
        if item.kind == ItemKind.METHOD and item.name == item.container_name:
            kind = SymbolKind.CONSTRUCTOR
    return OutlineNode(
        name=item.name,
        detail=detail,
        kind=kind,
        range=item.full_range,
        selection_range=item.range,
        children=children or [],
    )


def build_outline(table: FileCompletions) -> List[OutlineNode]:
    """Build the nested document outline of one file.

    Nesting:
    - enum structs / methodmaps contain their fields, methods and properties
    - enums contain their members
    - functions and methods contain their parameters and locals

    Include directives are not part of the outline.
    """

    def locals_of(function: Item) -> List[OutlineNode]:
        return [
            project_outline(item)
            for item in table.items
            if item.kind in ItemKind.SCOPED
            and item.function_name == function.name
            and item.container_name == function.container_name
        ]

    nodes: List[OutlineNode] = []
    for item in table.items:
        if item.kind == ItemKind.FUNCTION:
            nodes.append(project_outline(item, locals_of(item)))
        elif item.kind in ItemKind.CONTAINERS:
            children = []
            for member in table.members_of(item.name):
                if member.kind == ItemKind.METHOD:
                    children.append(project_outline(member, locals_of(member)))
                else:
                    children.append(project_outline(member))
            nodes.append(project_outline(item, children))
        elif item.kind == ItemKind.ENUM:
            members = [
                project_outline(member)
                for member in table.items_of_kind(ItemKind.ENUM_MEMBER)
                if member.parent_name == item.name
            ]
            nodes.append(project_outline(item, members))
        elif item.kind == ItemKind.ENUM_MEMBER and item.parent_name is None:
            nodes.append(project_outline(item))
        elif item.kind in (ItemKind.DEFINE, ItemKind.TYPEDEF):
            nodes.append(project_outline(item))
        elif item.kind in ItemKind.SCOPED and item.function_name == GLOBAL_IDENTIFIER:
            nodes.append(project_outline(item))
    return nodes


def description_to_markdown(description: str) -> str:
    """Render a raw doc comment as Markdown.

    ``@param name text`` becomes ``_@param_ `name` text`` on its own
    paragraph; @return, @error, @note, @deprecated and @noreturn become
    emphasized paragraph headings.

    Args:
        description: Doc comment content without comment delimiters.

    Returns:
        Markdown text, empty string for an empty description.
    """
    if not description:
        return ""
    text = _LEADING_STARS.sub("", description)
    text = _PARAM_TAG.sub(lambda m: f"\n\n_@param_ `{m.group(1)}` ", text)
    text = _OTHER_TAG.sub(lambda m: f"\n\n_@{m.group(1)}_ ", text)
    lines = [line.rstrip() for line in text.strip().splitlines()]
    return "\n".join(lines).strip()
