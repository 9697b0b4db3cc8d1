"""
Slack Adapter - post messages through the Slack Web API.

Outbound: chat.postMessage, replying in-thread when the message has a thread.
Inbound: Events API `app_mention` and direct-message payloads are normalized by
normalize_slack_event(); the HTTP route lives in server.py.

Requires a bot token (SLACK_BOT_TOKEN) with chat:write scope.
"""

import logging
import os
from datetime import datetime, timezone

import httpx

from channels import ChannelType, InboundMessage, OutboundMessage

logger = logging.getLogger(__name__)

SLACK_API_BASE = "https://slack.com/api"


class SlackAdapter:
    """Adapter that sends messages to Slack channels and threads."""

    def __init__(self, config: dict = None, client: httpx.AsyncClient = None):
        self.config = config or {}
        self.channel_type = ChannelType.slack(self.config.get("workspace_id", ""))
        self._client = client

    def _get_token(self) -> str | None:
        return self.config.get("bot_token") or os.environ.get("SLACK_BOT_TOKEN")

    async def send_message(self, outbound: OutboundMessage) -> dict:
        token = self._get_token()
        if not token:
            return {"error": "Slack not configured. Set SLACK_BOT_TOKEN."}

        payload = {"channel": outbound.channel_id, "text": outbound.content}
        if outbound.thread_id:
            payload["thread_ts"] = outbound.thread_id

        try:
            response = await self._post(
                f"{SLACK_API_BASE}/chat.postMessage",
                headers={"Authorization": f"Bearer {token}"},
                json=payload,
            )
            data = response.json()
        except httpx.TimeoutException:
            logger.error("Slack API timeout for channel=%s", outbound.channel_id)
            return {"error": "Slack API timeout"}
        except httpx.HTTPError as e:
            logger.error("Failed to send message to Slack channel=%s: %s", outbound.channel_id, e)
            return {"error": str(e)}

        if not data.get("ok"):
            logger.error("Slack API error: %s", data.get("error"))
            return {"error": f"Slack API error: {data.get('error')}"}

        logger.debug(
            "Message sent to Slack channel=%s, thread=%s",
            outbound.channel_id, outbound.thread_id or "none",
        )
        return {"sent": True, "channel": "slack", "ts": data.get("ts")}

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, timeout=30.0, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.post(url, timeout=30.0, **kwargs)


def normalize_slack_event(event: dict, workspace_id: str = "") -> InboundMessage | None:
    """Convert a Slack Events API `event` object into an InboundMessage.

    Channel mentions arrive as `app_mention`; Slack also delivers the same
    post as a plain `message`, which is ignored here so one mention gets one
    reply. Plain `message` events are answered only in direct messages.
    Bot messages, edits and other subtypes return None, which also keeps the
    agent from answering its own replies.
    """
    if event.get("bot_id") or event.get("subtype"):
        return None
    event_type = event.get("type")
    if event_type == "message":
        if event.get("channel_type") != "im":
            return None
    elif event_type != "app_mention":
        return None

    channel_id = event.get("channel")
    user_id = event.get("user")
    if not channel_id or not user_id:
        return None

    ts = event.get("ts")

    timestamp = None
    if ts:
        try:
            timestamp = datetime.fromtimestamp(float(ts), tz=timezone.utc)
        except ValueError:
            timestamp = None

    # Top-level posts have no thread; their history is the channel's
    return InboundMessage(
        channel_id=channel_id,
        user_id=user_id,
        content=event.get("text", ""),
        source=ChannelType.slack(workspace_id),
        thread_id=event.get("thread_ts"),
        timestamp=timestamp,
        metadata={"slack_ts": ts} if ts else {},
    )


def slack_event_key(message: InboundMessage, event_id: str | None) -> str | None:
    """De-duplication key for a Slack post: channel + ts, else the event id.

    Slack retries keep the ts, and a post delivered under several event
    types shares it too.
    """
    ts = message.metadata.get("slack_ts")
    if ts:
        return f"{message.channel_id}:{ts}"
    return event_id
