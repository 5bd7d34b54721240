# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Incremental source index and symbol resolution for SourcePawn."""

from .builtins import BuiltinLoader
from .config import Config, ConfigurationError
from .models import (
    GLOBAL_IDENTIFIER,
    CompletionCandidate,
    DefinitionTarget,
    FileCompletions,
    HoverPayload,
    Item,
    ItemKind,
    Location,
    OutlineNode,
    ParseError,
    ParseResult,
    Position,
    Range,
    SignatureHelp,
    SignatureInfo,
    TextEdit,
)
from .parser import SourceParser
from .registry import CompletionsRepository, DefinitionsRepository, DocumentRegistry
from .resolver import IncludeResolver
from .updater import IndexUpdater
from .watcher import WorkspaceWatcher
from .workspace import WorkspaceIndex

__version__ = "0.1.0"

__all__ = [
    "GLOBAL_IDENTIFIER",
    "BuiltinLoader",
    "CompletionCandidate",
    "CompletionsRepository",
    "Config",
    "ConfigurationError",
    "DefinitionTarget",
    "DefinitionsRepository",
    "DocumentRegistry",
    "FileCompletions",
    "HoverPayload",
    "IncludeResolver",
    "IndexUpdater",
    "Item",
    "ItemKind",
    "Location",
    "OutlineNode",
    "ParseError",
    "ParseResult",
    "Position",
    "Range",
    "SignatureHelp",
    "SignatureInfo",
    "SourceParser",
    "TextEdit",
    "WorkspaceIndex",
    "WorkspaceWatcher",
]
