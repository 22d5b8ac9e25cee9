"""
Aether Agents - Terminal Entry Point
====================================

An interactive REPL over a single agent session. It:
1. Loads configuration
2. Creates the AgentManager (bundled providers + built-in tools)
3. Opens one session using AETHER_PROVIDER / AETHER_MODEL
4. Sends every line you type and prints the reply

Commands:
    /history   show the session's conversation
    /metrics   show agent, tool and provider metrics
    /tools     list registered tools
    /reset     start a fresh session
    /quit      exit

Run with:
    python -m aether_agents.main

Or after installing:
    aether-agents
"""

import asyncio
import json
import signal
import sys

from aether_agents.agent import AgentConfig, AgentManager
from aether_agents.errors import AgentError
from aether_agents.utils.config import get_config
from aether_agents.utils.logger import Colors, Logger

main_logger = Logger("Main")

AGENT_TYPE = "assistant"

SYSTEM_PROMPT = """You are Aether, a coding assistant running on the user's machine.

You can read and write files, run shell commands, inspect git repositories and
explore the workspace with your tools. Use them to ground your answers.

Guidelines:
- Be concise and precise
- Prefer reading files over guessing their contents
- Explain what a command will do before running anything destructive"""


def _print_history(manager: AgentManager, session_id: str) -> None:
    for message in manager.get_history(session_id):
        print(f"{Colors.DIM}[{message.role.value}]{Colors.RESET} {message.content}")


def _print_metrics(manager: AgentManager) -> None:
    print(json.dumps(manager.get_all_metrics().to_dict(), indent=2, default=str))


def _print_tools(manager: AgentManager) -> None:
    for tool in manager.list_tools():
        cached = f" (cached {tool.cache_ttl_secs:g}s)" if tool.is_cacheable else ""
        print(f"{Colors.DEBUG}{tool.name}{Colors.RESET}{cached}: {tool.description}")


def _new_session(manager: AgentManager) -> str:
    config = AgentConfig.from_defaults(system_prompt=SYSTEM_PROMPT)
    session_id = manager.create_session(AGENT_TYPE, config)
    main_logger.info(f"Session {session_id} using {config.provider}/{config.model}")
    return session_id


async def _read_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def main():
    """
    Main async entry point.

    Creates the manager and runs the REPL until /quit or EOF.
    """
    main_logger.info("Starting Aether Agents...")

    try:
        main_logger.info("Loading configuration...")
        get_config()

        manager = AgentManager()
        session_id = _new_session(manager)
    except AgentError as e:
        main_logger.error("Failed to start", e)
        sys.exit(1)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops don't support signal handlers
            pass

    print("Type a message, or /help for commands.")

    while not stop.is_set():
        try:
            line = (await _read_line(f"{Colors.INFO}you>{Colors.RESET} ")).strip()
        except EOFError:
            break

        if not line:
            continue

        if line.startswith("/"):
            command = line.lower()
            if command in ("/quit", "/exit"):
                break
            elif command == "/history":
                _print_history(manager, session_id)
            elif command == "/metrics":
                _print_metrics(manager)
            elif command == "/tools":
                _print_tools(manager)
            elif command == "/reset":
                manager.destroy_session(session_id)
                session_id = _new_session(manager)
            else:
                print("Commands: /history /metrics /tools /reset /quit")
            continue

        result = await manager.send_message(session_id, line)

        if result.metadata.tools_executed:
            print(f"{Colors.DIM}tools: {', '.join(result.metadata.tools_executed)}{Colors.RESET}")
        if result.success:
            print(f"{Colors.DEBUG}aether>{Colors.RESET} {result.content}")
        else:
            print(f"{Colors.ERROR}error:{Colors.RESET} {result.error}")

    main_logger.info("Shutdown complete")


def run():
    """
    Synchronous entry point.

    This is called when running the `aether-agents` command.
    """
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
