"""
Listeners - Input channels that pull messages themselves.

Push-style platforms (Slack, WhatsApp) arrive through server.py webhooks;
listeners here read their own input and call agent.process() directly.

Usage:
    from listeners.cli import run_cli_listener
    await run_cli_listener(agent)
"""

from listeners.cli import run_cli_listener

__all__ = ["run_cli_listener"]
