# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for include resolution."""

import logging

import pytest

from pawn_index.parser import SourceParser
from pawn_index.registry import CompletionsRepository
from pawn_index.resolver import IncludeResolver, SourceTooLargeError, read_source
from pawn_index.uris import builtin_uri, path_to_uri


def write(path, text):
    """Write a source file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def parse_and_register(parser, completions, path):
    """Parse a workspace file from disk and register it."""
    result = parser.parse(
        path.read_text(encoding="utf-8"),
        path_to_uri(path),
        completions.definitions,
        completions,
        file_path=path,
    )
    assert result.ok, result.error
    completions.register(result.table)
    return result.table


@pytest.fixture
def parser():
    return SourceParser()


@pytest.fixture
def completions():
    return CompletionsRepository()


class TestReadSource:
    """Tests for read_source."""

    def test_reads_utf8_with_replacement(self, tmp_path):
        """Test undecodable bytes do not fail the read."""
        path = tmp_path / "bad.inc"
        path.write_bytes(b"int g_x; // \xff\n")
        assert read_source(path).startswith("int g_x;")

    def test_size_limit(self, tmp_path):
        """Test files over the limit raise SourceTooLargeError."""
        path = write(tmp_path / "big.inc", "int g_x;\n" * 10)
        with pytest.raises(SourceTooLargeError):
            read_source(path, max_size=5)


class TestIncludeResolver:
    """Tests for IncludeResolver.resolve()."""

    def test_transitive_includes(self, tmp_path, parser, completions):
        """Test includes of includes are parsed and registered."""
        plugin = write(tmp_path / "plugin.sp", '#include "a"\n')
        write(tmp_path / "a.inc", '#include "b"\nnative void FromA();\n')
        write(tmp_path / "b.inc", "native void FromB();\n")
        table = parse_and_register(parser, completions, plugin)

        stats = IncludeResolver(parser, completions).resolve(table.includes)

        assert stats["resolved"] == 2
        assert stats["failed"] == 0
        assert path_to_uri(tmp_path / "a.inc") in completions
        assert path_to_uri(tmp_path / "b.inc") in completions
        assert completions.definitions.get("FromB") is not None

    def test_cycle_terminates(self, tmp_path, parser, completions):
        """Test mutually including files are each parsed once."""
        plugin = write(tmp_path / "plugin.sp", '#include "a"\n')
        write(tmp_path / "a.inc", '#include "b"\n')
        write(tmp_path / "b.inc", '#include "a"\n#include "plugin.sp"\n')
        table = parse_and_register(parser, completions, plugin)

        stats = IncludeResolver(parser, completions).resolve(table.includes)

        assert stats["resolved"] == 2
        assert stats["skipped"] == 2
        assert len(completions) == 3

    def test_diamond_parses_shared_include_once(self, tmp_path, parser, completions):
        """Test a file reached through two paths is parsed once."""
        plugin = write(tmp_path / "plugin.sp", '#include "a"\n#include "b"\n')
        write(tmp_path / "a.inc", '#include "c"\n')
        write(tmp_path / "b.inc", '#include "c"\n')
        write(tmp_path / "c.inc", "native void Shared();\n")
        table = parse_and_register(parser, completions, plugin)

        stats = IncludeResolver(parser, completions).resolve(table.includes)

        assert stats["resolved"] == 3
        assert stats["skipped"] == 1

    def test_registered_includes_not_reparsed(self, tmp_path, parser, completions):
        """Test resolution never replaces a table already in the repository."""
        plugin = write(tmp_path / "plugin.sp", '#include "a"\n')
        a = write(tmp_path / "a.inc", "native void FromA();\n")
        existing = parse_and_register(parser, completions, a)
        table = parse_and_register(parser, completions, plugin)

        stats = IncludeResolver(parser, completions).resolve(table.includes)

        assert stats["resolved"] == 0
        assert stats["skipped"] == 1
        assert completions.get(path_to_uri(a)) is existing

    def test_partial_failure(self, tmp_path, parser, completions, caplog):
        """Test a broken or missing include does not stop the others."""
        plugin = write(
            tmp_path / "plugin.sp", '#include "broken"\n#include "nothere"\n#include "good"\n'
        )
        write(tmp_path / "broken.inc", "/* never closed\n")
        write(tmp_path / "good.inc", "native void Good();\n")
        table = parse_and_register(parser, completions, plugin)

        with caplog.at_level(logging.WARNING, logger="pawn_index.resolver"):
            stats = IncludeResolver(parser, completions).resolve(table.includes)

        assert stats["resolved"] == 1
        assert stats["failed"] == 1
        assert stats["missing"] == 1
        assert completions.definitions.get("Good") is not None
        assert path_to_uri(tmp_path / "broken.inc") not in completions
        assert "Unterminated block comment" in caplog.text

    def test_oversized_include_fails(self, tmp_path, parser, completions):
        """Test files over the size limit are counted as failed."""
        plugin = write(tmp_path / "plugin.sp", '#include "big"\n')
        write(tmp_path / "big.inc", "native void Big();\n" * 100)
        table = parse_and_register(parser, completions, plugin)

        stats = IncludeResolver(parser, completions, max_file_size_bytes=64).resolve(table.includes)

        assert stats["failed"] == 1
        assert completions.definitions.get("Big") is None

    def test_builtin_includes_flagged(self, tmp_path, completions):
        """Test includes under the built-in root are registered as built-ins."""
        root = tmp_path / "include"
        write(root / "sdktools.inc", "#include <core>\nnative void TeleportEntity();\n")
        write(root / "core.inc", "native void CoreNative();\n")
        parser = SourceParser(builtin_root=root)
        plugin = write(tmp_path / "scripting" / "plugin.sp", "#include <sdktools>\n")
        table = parse_and_register(parser, completions, plugin)

        stats = IncludeResolver(parser, completions, builtin_root=root).resolve(table.includes)

        assert stats["resolved"] == 2
        sdktools = completions.get(builtin_uri("sdktools.inc"))
        assert sdktools is not None
        assert sdktools.is_builtin
        assert all(item.is_builtin for item in sdktools.items)
        assert completions.get(builtin_uri("core.inc")) is not None
        assert path_to_uri(root / "sdktools.inc") not in completions
