"""
Filesystem Tools
================

Read, write and list files on the local machine.

These tools allow the agent to:
- Read source files before answering questions about them
- Write new files or overwrite existing ones
- List a directory's entries

Reads and listings are cacheable for a short window: the agent often asks
for the same file several times within one turn. Writes never are.

Blocking filesystem calls run in a worker thread so a large file never
stalls the event loop.
"""

import asyncio
from pathlib import Path

from aether_agents.tools import FunctionTool
from aether_agents.utils.logger import Logger

logger = Logger("FilesystemTools")


# ==============================================================================
# Tool: Read File
# ==============================================================================

def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


async def _read_file(params: dict) -> dict:
    """Read a whole text file."""
    path = Path(params["path"]).expanduser()
    content = await asyncio.to_thread(_read, path)
    return {
        "path": str(path),
        "content": content,
        "size": len(content),
    }


read_file_tool = FunctionTool(
    name="read_file",
    description="Read the contents of a file from the filesystem",
    parameters={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to read"
            }
        },
        "required": ["path"]
    },
    func=_read_file,
    cacheable=True,
    cache_ttl=30.0,
    timeout=10.0,
)


# ==============================================================================
# Tool: Write File
# ==============================================================================

def _write(path: Path, content: str) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.write_text(content, encoding="utf-8")


async def _write_file(params: dict) -> dict:
    """Create or overwrite a file."""
    path = Path(params["path"]).expanduser()
    content = params["content"]
    if not isinstance(content, str):
        raise TypeError("content must be a string")

    written = await asyncio.to_thread(_write, path, content)
    logger.info(f"Wrote {written} characters to {path}")
    return {
        "path": str(path),
        "bytes_written": len(content.encode("utf-8")),
        "success": True,
    }


write_file_tool = FunctionTool(
    name="write_file",
    description="Write content to a file, creating or overwriting it",
    parameters={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file to write"
            },
            "content": {
                "type": "string",
                "description": "Content to write to the file"
            }
        },
        "required": ["path", "content"]
    },
    func=_write_file,
    timeout=10.0,
)


# ==============================================================================
# Tool: List Directory
# ==============================================================================

def _list(path: Path) -> list[dict]:
    entries = []
    for entry in sorted(path.iterdir(), key=lambda p: p.name):
        stat = entry.stat()
        entries.append({
            "name": entry.name,
            "is_dir": entry.is_dir(),
            "is_file": entry.is_file(),
            "size": stat.st_size,
        })
    return entries


async def _list_directory(params: dict) -> dict:
    path = Path(params["path"]).expanduser()
    entries = await asyncio.to_thread(_list, path)
    return {
        "path": str(path),
        "entries": entries,
    }


list_directory_tool = FunctionTool(
    name="list_directory",
    description="List contents of a directory",
    parameters={
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the directory to list"
            }
        },
        "required": ["path"]
    },
    func=_list_directory,
    cacheable=True,
    cache_ttl=10.0,
    timeout=5.0,
)


FILESYSTEM_TOOLS = [read_file_tool, write_file_tool, list_directory_tool]
