"""
CLI Listener - Command-line interface input with styled output.

Simple REPL that reads from stdin and sends to the agent.
Subscribes to agent events for verbose output display.
"""

import asyncio
import logging
import sys

from channels import ChannelType, InboundMessage
from channels.console import CONSOLE_CHANNEL, CONSOLE_USER
from utils.console import VerboseLevel, console

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("quit", "exit", "q")


def setup_event_handlers(agent):
    """Subscribe to agent events for CLI display."""

    @agent.on("tool_start")
    def on_tool_start(event):
        console.tool_start(event["name"], event.get("input"))

    @agent.on("tool_end")
    def on_tool_end(event):
        console.tool_end(
            event["name"],
            event.get("result"),
            event.get("duration_ms")
        )

    @agent.on("task_start")
    def on_task_start(event):
        console.task_start(event["task_id"])

    @agent.on("task_end")
    def on_task_end(event):
        console.task_end(
            event["task_id"],
            event["status"],
            event.get("duration_ms")
        )

    @agent.on("heartbeat")
    def on_heartbeat(event):
        console.heartbeat(event["timestamp"])


async def run_cli_listener(agent, config: dict = None):
    """Run the CLI listener until the user types exit/quit or sends EOF.

    Args:
        agent: The Agent instance (already started)
        config: Optional console channel configuration
    """
    config = config or {}
    setup_event_handlers(agent)

    level = console.get_verbose()
    if level >= VerboseLevel.LIGHT:
        console.system(f"Verbose mode: {level.name.lower()} (/verbose off to hide)")
    console.system(f"\n{agent.name} is ready. Type 'quit' to exit.\n")

    while True:
        try:
            print(console.user_prompt(), end="", file=sys.stderr, flush=True)
            try:
                user_input = await asyncio.to_thread(input)
            except KeyboardInterrupt:
                print("", file=sys.stderr)
                continue
            user_input = user_input.strip()

            if user_input.lower().startswith("/verbose"):
                _handle_verbose_command(user_input)
                continue

            if user_input.lower() in EXIT_COMMANDS:
                console.system("Goodbye!")
                break

            if not user_input:
                continue

            message = InboundMessage(
                channel_id=config.get("channel_id", CONSOLE_CHANNEL),
                user_id=config.get("user_id", CONSOLE_USER),
                content=user_input,
                source=ChannelType.console(),
            )
            outbound = await agent.process(message)
            console.agent(outbound.content, prefix=agent.name)

        except EOFError:
            # Handle Ctrl+D
            console.system("\nGoodbye!")
            break


def _handle_verbose_command(command: str):
    """Handle /verbose commands for runtime toggle."""
    parts = command.lower().split()

    if len(parts) == 1:
        level = console.get_verbose()
        console.system(f"Verbose level: {level.name.lower()} ({level.value})")
        console.system("Usage: /verbose [off|light|deep]")
        return

    level_str = parts[1]
    if level_str in ("off", "0"):
        console.set_verbose("off")
        console.system("Verbose output: off")
    elif level_str in ("light", "1", "on"):
        console.set_verbose("light")
        console.system("Verbose output: light (key operations)")
    elif level_str in ("deep", "2", "full", "all"):
        console.set_verbose("deep")
        console.system("Verbose output: deep (everything)")
    else:
        console.error(f"Unknown verbose level: {level_str}")
        console.system("Usage: /verbose [off|light|deep]")
