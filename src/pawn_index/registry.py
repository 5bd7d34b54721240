# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Document registry and symbol repositories.

Components:
- DocumentRegistry: bare filename -> set of URIs, used to resolve includes
  by name before the named file has ever been parsed
- DefinitionsRepository: name -> winning top-level Item (last write wins)
- CompletionsRepository: URI -> FileCompletions, owns the document registry
  and keeps the definitions repository in step with every swap

A table is never merged into its predecessor: register() swaps the whole
table in one step so queries never observe a half-updated file.
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from pawn_index.models import FileCompletions, Item, Location
from pawn_index.uris import file_name_of, uri_to_path

logger = logging.getLogger(__name__)


class DocumentRegistry:
    """Bare filename -> URIs of every known document with that filename."""

    def __init__(self) -> None:
        self._documents: Dict[str, Set[str]] = {}

    def add(self, uri: str) -> None:
        """Record a document URI under its filename."""
        self._documents.setdefault(file_name_of(uri), set()).add(uri)

    def remove(self, uri: str) -> None:
        """Forget a document URI."""
        name = file_name_of(uri)
        uris = self._documents.get(name)
        if not uris:
            return
        uris.discard(uri)
        if not uris:
            del self._documents[name]

    def lookup(self, file_name: str, near: Optional[Path] = None) -> Optional[str]:
        """Find the URI of a document by bare filename.

        Args:
            file_name: Filename including extension (e.g. "utils.inc").
            near: Directory of the including file. A document living in it
                wins over same-named documents elsewhere.

        Returns:
            URI, or None if no document has that filename. Ties are broken by
            lexicographic order so lookups are deterministic.
        """
        uris = self._documents.get(file_name)
        if not uris:
            return None
        candidates = sorted(uris)
        if near is not None:
            directory = Path(os.path.normpath(os.path.abspath(near)))
            for uri in candidates:
                path = uri_to_path(uri)
                if path is not None and path.parent == directory:
                    return uri
        return candidates[0]

    def uris_named(self, file_name: str) -> List[str]:
        """All URIs registered under a filename, sorted."""
        return sorted(self._documents.get(file_name, ()))

    def __contains__(self, uri: object) -> bool:
        return isinstance(uri, str) and uri in self._documents.get(file_name_of(uri), ())

    def __len__(self) -> int:
        return sum(len(uris) for uris in self._documents.values())


class DefinitionsRepository:
    """Name -> top-level definition.

    When several live files define the same name, the last registered
    definition wins. Losing definitions stay in their tables and are
    promoted when the winner goes away.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, Item] = {}

    def get(self, name: str) -> Optional[Item]:
        """Get the winning definition for a name."""
        return self._definitions.get(name)

    def publish(self, item: Item) -> None:
        """Make an item the winning definition of its name."""
        self._definitions[item.name] = item

    def withdraw(self, item: Item, replacement: Optional[Item] = None) -> bool:
        """Drop an item if it is the current winner.

        References other files recorded on the item move to the promoted
        replacement.

        Args:
            item: Item going away.
            replacement: Same-named survivor to promote, if any.

        Returns:
            True if the item was the winner.
        """
        if self._definitions.get(item.name) is not item:
            return False
        if replacement is not None:
            for ref in item.references:
                if ref.uri != item.uri and ref not in replacement.references:
                    replacement.references.append(ref)
            self._definitions[item.name] = replacement
        else:
            del self._definitions[item.name]
        return True

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


class CompletionsRepository:
    """URI -> FileCompletions, with atomic table swaps.

    Usage:
        definitions = DefinitionsRepository()
        completions = CompletionsRepository(definitions)
        completions.register(table)       # replace whatever was there
        completions.remove(uri)           # file deleted
    """

    def __init__(self, definitions: Optional[DefinitionsRepository] = None):
        self.definitions = definitions if definitions is not None else DefinitionsRepository()
        self.registry = DocumentRegistry()
        # Insertion order tracks registration recency
        self._tables: Dict[str, FileCompletions] = {}

    def get(self, uri: str) -> Optional[FileCompletions]:
        """Get the live table of a URI."""
        return self._tables.get(uri)

    def uris(self) -> List[str]:
        """All registered URIs, oldest registration first."""
        return list(self._tables)

    def tables(self) -> List[FileCompletions]:
        """All live tables, oldest registration first."""
        return list(self._tables.values())

    def register(self, table: FileCompletions) -> Optional[FileCompletions]:
        """Swap a freshly parsed table in for its URI.

        Steps, all before returning:
        1. References recorded from this URI are purged everywhere
        2. The previous table's definitions are withdrawn, promoting
           same-named survivors from other files unless the new table
           defines the name again
        3. The new table is stored and its top-level items published,
           inheriting references other files recorded on the replaced items
        4. The new table's identifier uses are linked onto definitions

        Args:
            table: Table produced by a successful parse.

        Returns:
            The replaced table, or None.
        """
        uri = table.uri
        self._purge_references_from(uri)
        old = self._tables.pop(uri, None)

        carried: Dict[Tuple[str, str], List[Location]] = {}
        if old is not None:
            # Names the new table defines again are published right below
            redefined = {item.name for item in table.top_level_items()}
            for item in old.top_level_items():
                if item.references:
                    carried[(item.name, item.kind)] = item.references
                survivor = None if item.name in redefined else self._survivor(item)
                self.definitions.withdraw(item, survivor)

        self._tables[uri] = table
        for item in table.top_level_items():
            item.references = list(carried.get((item.name, item.kind), ()))
            self.definitions.publish(item)
        self._link_uses(table)
        return old

    def remove(self, uri: str) -> Optional[FileCompletions]:
        """Drop a URI's table, its definitions and the references it recorded.

        Returns:
            The removed table, or None if the URI was not registered.
        """
        table = self._tables.pop(uri, None)
        if table is None:
            return None
        self._purge_references_from(uri)
        for item in table.top_level_items():
            self.definitions.withdraw(item, self._survivor(item))
        return table

    def sync_references(self, uri: str) -> None:
        """Re-link a table's identifier uses against current definitions.

        Needed once a file's includes are resolved: uses recorded before the
        included definitions existed are linked now.
        """
        table = self._tables.get(uri)
        if table is None:
            return
        self._purge_references_from(uri)
        self._link_uses(table)

    def items_named(self, name: str) -> List[Item]:
        """All top-level items with a name across every live table."""
        return [
            item for table in self._tables.values() for item in table.top_level_items() if item.name == name
        ]

    def _survivor(self, item: Item) -> Optional[Item]:
        """Most recently registered same-named top-level item from another file."""
        for table in reversed(list(self._tables.values())):
            if table.uri == item.uri:
                continue
            for candidate in table.top_level_items():
                if candidate.name == item.name:
                    return candidate
        return None

    def _purge_references_from(self, uri: str) -> None:
        for table in self._tables.values():
            for item in table.top_level_items():
                if item.references:
                    item.references = [ref for ref in item.references if ref.uri != uri]

    def _link_uses(self, table: FileCompletions) -> None:
        linked = 0
        for use in table.uses:
            definition = self.definitions.get(use.name)
            if definition is None:
                continue
            definition.references.append(Location(uri=table.uri, range=use.range))
            linked += 1
        if linked:
            logger.debug(f"Linked {linked} references from {table.uri}")

    def __contains__(self, uri: object) -> bool:
        return uri in self._tables

    def __len__(self) -> int:
        return len(self._tables)
