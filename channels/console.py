"""
Console Adapter - replies rendered in the terminal.

Used by the CLI listener for interactive replies and by the reminder engine
when a reminder was created from the console.
"""

from channels import ChannelType, OutboundMessage
from utils.console import console

CONSOLE_CHANNEL = "CONSOLE_CHANNEL"
CONSOLE_USER = "CONSOLE_USER"


class ConsoleAdapter:
    """Adapter that prints outbound messages with console styling."""

    channel_type = ChannelType.console()

    def __init__(self, prefix: str = "Pincer"):
        self.prefix = prefix

    async def send_message(self, outbound: OutboundMessage) -> dict:
        console.agent(outbound.content, prefix=self.prefix)
        return {"sent": True, "channel": "console"}
