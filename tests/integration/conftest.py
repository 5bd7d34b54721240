# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests.

Provides a representative SourcePawn workspace with a built-in include
tree next to it.
"""

from pathlib import Path

import pytest

from pawn_index.config import Config


@pytest.fixture
def builtin_root(tmp_path: Path) -> Path:
    """Create a small built-in include tree.

    Contains:
    - sourcemod.inc including core and handles (implicitly included by
      every workspace file)
    - handles.inc with the Handle methodmap
    - sdktools.inc with a documented native

    Returns:
        Path to the built-in include root
    """
    root = tmp_path / "sourcemod" / "include"
    root.mkdir(parents=True)

    (root / "sourcemod.inc").write_text(
        """#if defined _sourcemod_included
 #endinput
#endif
#define _sourcemod_included

#include <core>
#include <handles>

/**
 * Prints a message to the server console.
 *
 * @param format    Formatting rules.
 * @param ...       Variable number of format parameters.
 */
native void PrintToServer(const char[] format, any ...);
"""
    )
    (root / "core.inc").write_text(
        """#define SOURCEMOD_V_MAJOR 1

enum Action
{
    Plugin_Continue = 0,
    Plugin_Handled = 3,
    Plugin_Stop = 4
};
"""
    )
    (root / "handles.inc").write_text(
        """methodmap Handle __nullable__
{
    /** Closes the handle. */
    public native void Close();
};

native Handle CloneHandle(Handle hndl, Handle plugin = null);
"""
    )
    (root / "sdktools.inc").write_text(
        """/**
 * Teleports an entity.
 *
 * @param entity    Client index.
 * @error           Invalid entity.
 */
native void TeleportEntity(int entity, const float origin[3] = NULL_VECTOR);
"""
    )
    return root


@pytest.fixture
def sample_workspace(tmp_path: Path) -> Path:
    """Create a representative plugin workspace.

    Creates:
    - scripting/plugin.sp including a local helper and a built-in
    - scripting/include/stats.inc with an enum struct and a methodmap
    - scripting/compiled/ holding a file that must be ignored

    Returns:
        Path to the scripting folder
    """
    root = tmp_path / "scripting"
    (root / "include").mkdir(parents=True)
    (root / "compiled").mkdir()

    (root / "plugin.sp").write_text(
        """#include <sdktools>
#include "include/stats"

PlayerStats g_stats[MAXPLAYERS_STATS];

public void OnPluginStart()
{
    StatsMap map = new StatsMap();
    map.Reset();
    PrintToServer("loaded %d", SOURCEMOD_V_MAJOR);
}

public Action Command_Stats(int client, int args)
{
    g_stats[client].kills = 0;
    TeleportEntity(client);
    return Plugin_Handled;
}
"""
    )
    (root / "include" / "stats.inc").write_text(
        """#define MAXPLAYERS_STATS 65

enum struct PlayerStats
{
    int kills;
    int deaths;

    float Ratio()
    {
        return float(this.kills) / float(this.deaths);
    }
}

methodmap StatsMap < Handle
{
    public StatsMap()
    {
        return view_as<StatsMap>(CreateTrie());
    }

    public void Reset()
    {
    }
}
"""
    )
    (root / "compiled" / "stale.sp").write_text("void Stale() {}\n")
    return root


@pytest.fixture
def workspace_config(tmp_path: Path, builtin_root: Path) -> Config:
    """Configuration pointing at the built-in tree, no file on disk."""
    return Config(tmp_path / "absent.yml").with_overrides(builtin_include_root=str(builtin_root))
