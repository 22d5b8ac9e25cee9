"""
Context Assembly
================

Builds the working prompt for one turn:
- the session's retained history (system prompt first, if any)
- the tool catalog, snapshotted as definitions when tools are enabled

The assembled message list belongs to the turn. The agent loop appends
assistant replies and tool results to it; those intermediate messages are
never written back to memory. Only the final assistant text is.

Token Budget:
    History is already bounded by the MemoryManager (token budget plus
    message cap), so the assembler sends the full retained history as-is.
"""

from dataclasses import dataclass, field

from aether_agents.agent.tools_executor import ToolExecutor
from aether_agents.inference.types import InferenceMessage
from aether_agents.memory import MemoryManager, Message
from aether_agents.tools import ToolDefinition
from aether_agents.utils.logger import Logger

logger = Logger("Context")


@dataclass
class AssembledContext:
    """
    The prompt for one turn.

    Attributes:
        messages: Prompt messages, oldest first
        tools: Tool definitions offered to the model (empty when disabled)
    """
    messages: list[InferenceMessage]
    tools: list[ToolDefinition] = field(default_factory=list)

    def append_assistant(self, content: str, tool_calls=None) -> None:
        self.messages.append(InferenceMessage("assistant", content, tool_calls=list(tool_calls or [])))

    def append_tool_result(self, call_id: str, tool_name: str, content: str) -> None:
        self.messages.append(InferenceMessage("tool", content, tool_call_id=call_id, name=tool_name))


class ContextAssembler:
    """
    Assembles prompts from memory and the tool catalog.

    Example:
        assembler = ContextAssembler(memory, executor)
        context = assembler.assemble("session-1", tools_enabled=True)

        response = await inference.generate(
            "groq", model, context.messages, tools=context.tools
        )
    """

    def __init__(self, memory: MemoryManager, executor: ToolExecutor):
        self.memory = memory
        self.executor = executor

    def assemble(self, session_id: str, tools_enabled: bool = True) -> AssembledContext:
        history: list[Message] = self.memory.get_history(session_id)
        tools = self.executor.list_tools() if tools_enabled else []

        logger.debug(
            f"Assembled context for {session_id}",
            {"messages": len(history), "tools": len(tools)}
        )
        return AssembledContext(
            messages=[InferenceMessage.from_memory(m) for m in history],
            tools=tools,
        )
