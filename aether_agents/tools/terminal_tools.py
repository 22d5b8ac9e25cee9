"""
Terminal Tools
==============

Run a shell command and capture its output.

Commands may have side effects, so results are never cached. The executor's
timeout abandons a command that runs too long: when its task is cancelled the
whole process group is killed (the shell and anything it started) and reaped.
"""

import asyncio
import os
import signal
import sys

from aether_agents.tools import FunctionTool
from aether_agents.utils.logger import Logger

logger = Logger("TerminalTools")

# Children get their own session so a kill reaches the whole group
_POSIX = sys.platform != "win32"


async def run_process(*args: str, cwd: str | None = None, shell: bool = False) -> dict:
    """
    Run a process to completion and decode its output.

    Args:
        args: Program and arguments, or a single command line when shell=True
        cwd: Working directory
        shell: Run through the platform shell

    Returns:
        stdout, stderr, exit_code and success
    """
    if shell:
        process = await asyncio.create_subprocess_shell(
            args[0],
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=_POSIX,
        )
    else:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=_POSIX,
        )

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        _kill(process)
        await process.wait()
        raise

    return {
        "stdout": stdout.decode("utf-8", errors="replace"),
        "stderr": stderr.decode("utf-8", errors="replace"),
        "exit_code": process.returncode if process.returncode is not None else -1,
        "success": process.returncode == 0,
    }


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        pass


async def _execute_command(params: dict) -> dict:
    command = params["command"]
    logger.info(f"Running command: {command[:80]}")
    result = await run_process(command, cwd=params.get("cwd"), shell=True)
    if not result["success"]:
        logger.debug(f"Command exited with {result['exit_code']}")
    return result


execute_command_tool = FunctionTool(
    name="execute_command",
    description=(
        "Execute a shell command and return its output"
        + (" (cmd.exe)" if sys.platform == "win32" else " (sh)")
    ),
    parameters={
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "Command to execute"
            },
            "cwd": {
                "type": "string",
                "description": "Working directory (optional)"
            }
        },
        "required": ["command"]
    },
    func=_execute_command,
    timeout=30.0,
)


TERMINAL_TOOLS = [execute_command_tool]
