"""
Git Tools
=========

Read-only repository inspection through the ``git`` command line.

These tools allow the agent to:
- See which files are modified, staged or untracked
- Read recent commit history
"""

from aether_agents.tools import FunctionTool
from aether_agents.tools.terminal_tools import run_process
from aether_agents.utils.logger import Logger

logger = Logger("GitTools")

# Field separator for git log output; never appears in commit metadata
_SEP = "\x1f"


async def _git(repo_path: str, *args: str) -> str:
    result = await run_process("git", "-C", repo_path, *args)
    if not result["success"]:
        raise RuntimeError(result["stderr"].strip() or f"git {args[0]} failed")
    return result["stdout"]


# ==============================================================================
# Tool: Git Status
# ==============================================================================

def parse_porcelain(output: str) -> dict[str, list[str]]:
    """Split ``git status --porcelain`` output into modified/untracked/staged."""
    modified, untracked, staged = [], [], []

    for line in output.splitlines():
        if len(line) < 4:
            continue
        index, worktree, path = line[0], line[1], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]

        if index == "?" and worktree == "?":
            untracked.append(path)
            continue
        if index in "MARC":
            staged.append(path)
        if worktree == "M":
            modified.append(path)

    return {"modified": modified, "untracked": untracked, "staged": staged}


async def _git_status(params: dict) -> dict:
    repo_path = params["repo_path"]
    output = await _git(repo_path, "status", "--porcelain")
    return {"repo_path": repo_path, **parse_porcelain(output)}


git_status_tool = FunctionTool(
    name="git_status",
    description="Get the git status of a repository",
    parameters={
        "type": "object",
        "properties": {
            "repo_path": {
                "type": "string",
                "description": "Path to the git repository"
            }
        },
        "required": ["repo_path"]
    },
    func=_git_status,
    timeout=5.0,
)


# ==============================================================================
# Tool: Git Log
# ==============================================================================

def parse_log(output: str) -> list[dict]:
    commits = []
    for record in output.split("\x1e"):
        record = record.strip("\n")
        if not record:
            continue
        sha, author, timestamp, message = record.split(_SEP, 3)
        commits.append({
            "id": sha,
            "author": author,
            "timestamp": int(timestamp),
            "message": message.strip(),
        })
    return commits


async def _git_log(params: dict) -> dict:
    repo_path = params["repo_path"]
    max_commits = int(params.get("max_commits", 10))

    output = await _git(
        repo_path,
        "log",
        f"-n{max_commits}",
        f"--format=%H{_SEP}%an{_SEP}%at{_SEP}%B\x1e",
    )
    return {"repo_path": repo_path, "commits": parse_log(output)}


git_log_tool = FunctionTool(
    name="git_log",
    description="Get commit history from a git repository",
    parameters={
        "type": "object",
        "properties": {
            "repo_path": {
                "type": "string",
                "description": "Path to the git repository"
            },
            "max_commits": {
                "type": "integer",
                "description": "Maximum number of commits to retrieve",
                "default": 10
            }
        },
        "required": ["repo_path"]
    },
    func=_git_log,
    cacheable=True,
    cache_ttl=60.0,
    timeout=10.0,
)


GIT_TOOLS = [git_status_tool, git_log_tool]
