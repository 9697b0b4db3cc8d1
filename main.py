"""
Pincer - Multi-Channel Autonomous Assistant

Entry point for the agent.

Usage:
    python main.py              # Run with CLI (default)
    python main.py cli          # Same as above
    python main.py serve        # Run API server only
    python main.py serve 8080   # Run on custom port
    python main.py all          # CLI + API server sharing one agent
    python main.py all 8080     # Same, custom port

Channels:
    - Console: interactive REPL (always available)
    - Slack: Events API at /slack/events, replies via chat.postMessage
    - WhatsApp: Cloud API webhook at /whatsapp/webhook

Configuration:
    Set options in config.yaml (or the file named by PINCER_CONFIG).

Verbose Output:
    Control with PINCER_VERBOSE environment variable or config.yaml:
    - 0/off: No verbose output
    - 1/light: Tool names, scheduled tasks, heartbeats
    - 2/deep: Everything (inputs, outputs, full details)

    Runtime toggle: /verbose [off|light|deep]
"""

import asyncio
import logging
import os
import sys

from utils.console import console

# Configure logging with immediate stderr output
handler = logging.StreamHandler(sys.stderr)
handler.setLevel(logging.INFO)
handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

# Suppress noisy library loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.root.addHandler(handler)
logging.root.setLevel(logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_PORT = 8000


def main():
    """Main entry point."""
    command = sys.argv[1] if len(sys.argv) > 1 else "cli"
    port = int(sys.argv[2]) if len(sys.argv) > 2 else DEFAULT_PORT

    if command == "cli":
        asyncio.run(run_cli_only())
    elif command == "serve":
        asyncio.run(run_server(port))
    elif command == "all":
        asyncio.run(run_all_with_server(port))
    else:
        console.error(f"Unknown command: {command}")
        console.system("Usage: python main.py [cli|serve|all] [port]")
        sys.exit(1)


def build_agent():
    """Load config and build an agent with every enabled channel registered."""
    from agent import Agent
    from config import load_config

    config = load_config()

    # Env var takes precedence over config
    if not os.environ.get("PINCER_VERBOSE"):
        console.set_verbose(config.get("verbose", "light"))

    agent = Agent(config=config)
    _register_adapters(agent, config)
    return agent


async def run_cli_only():
    """Run the console REPL."""
    from listeners.cli import run_cli_listener
    from config import get_channel_config

    console.banner("Pincer")
    agent = build_agent()
    await agent.start()
    try:
        await run_cli_listener(agent, get_channel_config(agent.config, "console"))
    except KeyboardInterrupt:
        console.system("\nGoodbye!")
    finally:
        await agent.stop()


async def run_server(port: int = DEFAULT_PORT):
    """Run the API server only. The app's lifespan starts and stops the agent."""
    import uvicorn
    from server import create_app

    agent = build_agent()
    server = uvicorn.Server(uvicorn.Config(create_app(agent), host="0.0.0.0", port=port, log_level="info"))
    await server.serve()


async def run_all_with_server(port: int = DEFAULT_PORT):
    """Run the API server and the console REPL on one shared agent."""
    import uvicorn
    from listeners.cli import run_cli_listener
    from server import create_app
    from config import get_channel_config

    console.banner("Pincer - Full Mode (Server + Console)")
    agent = build_agent()
    server = uvicorn.Server(uvicorn.Config(create_app(agent), host="0.0.0.0", port=port, log_level="info"))

    console.system(f"API server: http://0.0.0.0:{port}")
    console.system("Press Ctrl+C to stop\n")

    serve_task = asyncio.create_task(server.serve())
    try:
        await agent.start()
        await run_cli_listener(agent, get_channel_config(agent.config, "console"))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        server.should_exit = True
        await serve_task


def _register_adapters(agent, config):
    """Register adapters for enabled channels."""
    from config import is_channel_enabled, get_channel_config

    if is_channel_enabled(config, "console"):
        from channels.console import ConsoleAdapter
        agent.register_adapter(ConsoleAdapter(prefix=agent.name))

    if is_channel_enabled(config, "slack"):
        slack_config = get_channel_config(config, "slack")
        if slack_config.get("bot_token") or os.environ.get("SLACK_BOT_TOKEN"):
            from channels.slack import SlackAdapter
            agent.register_adapter(SlackAdapter(slack_config))
        else:
            logger.warning("Slack enabled but SLACK_BOT_TOKEN not set")

    if is_channel_enabled(config, "whatsapp"):
        whatsapp_config = get_channel_config(config, "whatsapp")
        if whatsapp_config.get("access_token") or os.environ.get("WHATSAPP_ACCESS_TOKEN"):
            from channels.whatsapp import WhatsAppAdapter
            agent.register_adapter(WhatsAppAdapter(whatsapp_config))
        else:
            logger.warning("WhatsApp enabled but WHATSAPP_ACCESS_TOKEN not set")


if __name__ == "__main__":
    main()
