"""
Channels - normalized message types and the adapter protocol.

Every platform (console, Slack, WhatsApp, ...) converts its native events into
an InboundMessage and renders OutboundMessages back. The agent only ever sees
these two types, so the reasoning pipeline is identical on every channel.

Adapters implement a small protocol:
- channel_type: ChannelType - which platform this adapter serves
- send_message(outbound) - deliver a message to the platform

Usage:
    from channels.slack import SlackAdapter
    agent.register_adapter(SlackAdapter(config))
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ChannelType:
    """Platform tag carried by every message.

    kind: "console", "slack", "whatsapp" or "discord"
    ref: platform-scoped identifier (workspace id, phone number id, guild id)
    """
    kind: str
    ref: str = ""

    def matches(self, other: "ChannelType") -> bool:
        """Two tags address the same platform when their kinds agree."""
        return other is not None and self.kind == other.kind

    @classmethod
    def console(cls) -> "ChannelType":
        return cls("console")

    @classmethod
    def slack(cls, workspace_id: str = "") -> "ChannelType":
        return cls("slack", workspace_id)

    @classmethod
    def whatsapp(cls, phone_number_id: str = "") -> "ChannelType":
        return cls("whatsapp", phone_number_id)

    @classmethod
    def discord(cls, guild_id: str = "") -> "ChannelType":
        return cls("discord", guild_id)


@dataclass(frozen=True)
class InboundMessage:
    """A message received from any channel, normalized."""
    channel_id: str
    user_id: str
    content: str
    source: ChannelType
    thread_id: str | None = None
    timestamp: datetime = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.channel_id or not self.channel_id.strip():
            raise ValueError("channel_id must not be blank")
        if not self.user_id or not self.user_id.strip():
            raise ValueError("user_id must not be blank")
        if self.content is None:
            raise ValueError("content must not be None")
        if self.source is None:
            raise ValueError("source must not be None")
        if self.timestamp is None:
            object.__setattr__(self, "timestamp", datetime.now(timezone.utc))
        if self.metadata is None:
            object.__setattr__(self, "metadata", {})

    @property
    def context_id(self) -> str:
        """Short-term memory partition: the thread if there is one, else the channel."""
        return self.thread_id or self.channel_id


@dataclass(frozen=True)
class OutboundMessage:
    """A message the agent sends to a channel."""
    channel_id: str
    content: str
    destination: ChannelType
    thread_id: str | None = None
    attachments: tuple = ()

    def __post_init__(self):
        if not self.channel_id or not self.channel_id.strip():
            raise ValueError("channel_id must not be blank")
        if not self.content or not self.content.strip():
            raise ValueError("content must not be blank")
        if self.destination is None:
            raise ValueError("destination must not be None")
        object.__setattr__(self, "attachments", tuple(self.attachments or ()))

    @classmethod
    def text_reply(
        cls,
        channel_id: str,
        thread_id: str | None,
        content: str,
        destination: ChannelType,
    ) -> "OutboundMessage":
        return cls(channel_id=channel_id, content=content, destination=destination, thread_id=thread_id)


@runtime_checkable
class ChannelAdapter(Protocol):
    """Protocol for channel adapters.

    Implement this to add a new platform.
    """

    channel_type: ChannelType

    async def send_message(self, outbound: OutboundMessage) -> dict:
        """Deliver a message.

        Returns:
            {"sent": True, ...} on success
            {"error": "..."} on failure
        """
        ...


__all__ = ["ChannelAdapter", "ChannelType", "InboundMessage", "OutboundMessage"]
