"""Default tool set registered on every AgentManager unless opted out."""

from aether_agents.tools import Tool, ToolRegistry
from aether_agents.tools.filesystem_tools import FILESYSTEM_TOOLS
from aether_agents.tools.git_tools import GIT_TOOLS
from aether_agents.tools.terminal_tools import TERMINAL_TOOLS
from aether_agents.tools.workspace_tools import WORKSPACE_TOOLS
from aether_agents.utils.logger import Logger

logger = Logger("Tools")


def builtin_tools() -> list[Tool]:
    return [*FILESYSTEM_TOOLS, *TERMINAL_TOOLS, *GIT_TOOLS, *WORKSPACE_TOOLS]


def register_builtin_tools(registry: ToolRegistry) -> None:
    for tool in builtin_tools():
        registry.register(tool)
    logger.info(f"Registered {len(builtin_tools())} built-in tools")
