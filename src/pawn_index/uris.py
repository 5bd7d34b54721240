# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""URI canonicalization for the symbol index.

Every repository in the index is keyed by URI strings produced here. Three
disjoint namespaces exist:

- Workspace files: ``file:///abs/path/to/file.sp``
- Built-in files: ``file://__sourcemod_builtin/<path relative to the built-in root>``
- Other schemes (``untitled:``, ``git:``...): kept verbatim, minus any fragment

Canonicalization rules for workspace files:
- A trailing version-control suffix (``.git``) on the path is stripped
- The path is made absolute and normalized (``.``/``..`` collapsed)
- Case is preserved and symlinks are NOT resolved, so two spellings of the
  same file on a case-insensitive filesystem stay two keys
"""

import os
import posixpath
from pathlib import Path
from typing import Optional, Union
from urllib.parse import quote, unquote, urlsplit, urlunsplit
from urllib.request import url2pathname

BUILTIN_HOST = "__sourcemod_builtin"
BUILTIN_PREFIX = f"file://{BUILTIN_HOST}/"

# Editors open diff views of tracked files as "<file>.git"
VCS_SUFFIX = ".git"


def strip_vcs_suffix(path: str) -> str:
    """Remove a trailing version-control suffix from a path.

    Args:
        path: Filesystem path, possibly ending with ``.git``.

    Returns:
        Path without the suffix.
    """
    if path.endswith(VCS_SUFFIX) and len(path) > len(VCS_SUFFIX):
        return path[: -len(VCS_SUFFIX)]
    return path


def path_to_uri(path: Union[str, Path]) -> str:
    """Build the canonical workspace URI for a filesystem path.

    Args:
        path: Absolute or relative filesystem path.

    Returns:
        Canonical ``file://`` URI.
    """
    cleaned = strip_vcs_suffix(str(path))
    return Path(os.path.normpath(os.path.abspath(cleaned))).as_uri()


def builtin_uri(relative_path: Union[str, Path]) -> str:
    """Build the synthetic URI of a built-in file.

    Args:
        relative_path: Path of the file relative to the built-in root.

    Returns:
        URI under the built-in namespace.
    """
    rel = str(relative_path).replace("\\", "/")
    rel = posixpath.normpath(rel).lstrip("/")
    return BUILTIN_PREFIX + quote(rel)


def is_builtin_uri(uri: str) -> bool:
    """Check whether a URI lives in the built-in namespace."""
    return uri.startswith(BUILTIN_PREFIX)


def canonicalize_uri(uri: str) -> str:
    """Canonicalize a URI for use as a repository key.

    Args:
        uri: URI as received from the editor or built by the parser.

    Returns:
        Canonical URI string. Non-file schemes are returned without fragment.
    """
    parts = urlsplit(uri)
    if parts.scheme != "file":
        return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))

    if parts.netloc == BUILTIN_HOST:
        return builtin_uri(unquote(parts.path))

    if parts.netloc and parts.netloc != "localhost":
        # UNC share, keep host but normalize the path part
        path = strip_vcs_suffix(posixpath.normpath(parts.path))
        return urlunsplit(("file", parts.netloc, path, "", ""))

    return path_to_uri(url2pathname(parts.path))


def uri_to_path(uri: str, builtin_root: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Map a URI to the filesystem path holding its content.

    Args:
        uri: Canonical URI.
        builtin_root: Root directory of the built-in include tree. Required to
            map built-in URIs; without it they have no path.

    Returns:
        Filesystem path, or None when the URI has no on-disk counterpart.
    """
    parts = urlsplit(uri)
    if parts.scheme != "file":
        return None

    if parts.netloc == BUILTIN_HOST:
        if not builtin_root:
            return None
        relative = unquote(parts.path).lstrip("/")
        return Path(builtin_root) / relative

    if parts.netloc and parts.netloc != "localhost":
        return None

    return Path(url2pathname(parts.path))


def file_name_of(uri: str) -> str:
    """Return the bare filename of a URI (last path segment, unquoted)."""
    path = unquote(urlsplit(uri).path)
    return posixpath.basename(strip_vcs_suffix(path))
