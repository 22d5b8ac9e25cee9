"""
Workspace Tools
===============

Project-level views of a directory tree.

Walks skip hidden entries and dependency/build directories (``node_modules``,
``target``); descending into those only produces noise.
"""

import asyncio
import fnmatch
import os
from pathlib import Path

from aether_agents.tools import FunctionTool

SKIPPED_NAMES = {"node_modules", "target"}


def _skipped(name: str) -> bool:
    return name.startswith(".") or name in SKIPPED_NAMES


def walk_workspace(root: Path, max_depth: int | None = None) -> list[tuple[Path, int]]:
    """
    All visible entries below ``root`` with their depth (children of root are depth 1).

    Skipped directories are not descended into.
    """
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts) + 1

        dirnames[:] = sorted(d for d in dirnames if not _skipped(d))
        if max_depth is not None and depth >= max_depth:
            for name in dirnames:
                found.append((current / name, depth))
            dirnames[:] = []
        else:
            found.extend((current / name, depth) for name in dirnames)

        found.extend(
            (current / name, depth)
            for name in sorted(filenames)
            if not _skipped(name)
        )
    return found


# ==============================================================================
# Tool: Workspace Structure
# ==============================================================================

async def _workspace_structure(params: dict) -> dict:
    root = Path(params["path"]).expanduser()
    max_depth = int(params.get("max_depth", 3))
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    entries = await asyncio.to_thread(walk_workspace, root, max_depth)
    return {
        "workspace_path": str(root),
        "structure": [
            {
                "path": str(path),
                "is_dir": path.is_dir(),
                "is_file": path.is_file(),
                "depth": depth,
            }
            for path, depth in entries
        ],
    }


workspace_structure_tool = FunctionTool(
    name="workspace_structure",
    description="Get the structure of the workspace/project directory",
    parameters={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the workspace root"
            },
            "max_depth": {
                "type": "integer",
                "description": "Maximum depth to traverse",
                "default": 3
            }
        },
        "required": ["path"]
    },
    func=_workspace_structure,
    cacheable=True,
    cache_ttl=300.0,
    timeout=15.0,
)


# ==============================================================================
# Tool: Search Files
# ==============================================================================

async def _search_files(params: dict) -> dict:
    root = Path(params["path"]).expanduser()
    pattern = params["pattern"]
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    entries = await asyncio.to_thread(walk_workspace, root)
    matches = [
        {"path": str(path), "name": path.name}
        for path, _ in entries
        if fnmatch.fnmatch(path.name, pattern)
    ]
    return {
        "search_path": str(root),
        "pattern": pattern,
        "matches": matches,
        "count": len(matches),
    }


search_files_tool = FunctionTool(
    name="search_files",
    description="Search for files whose name matches a glob pattern (e.g. '*.py')",
    parameters={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to search in"
            },
            "pattern": {
                "type": "string",
                "description": "File name pattern to match (glob)"
            }
        },
        "required": ["path", "pattern"]
    },
    func=_search_files,
    cacheable=True,
    cache_ttl=60.0,
    timeout=20.0,
)


WORKSPACE_TOOLS = [workspace_structure_tool, search_files_tool]
