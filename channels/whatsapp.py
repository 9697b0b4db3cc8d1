"""
WhatsApp Adapter - send messages through the WhatsApp Cloud API.

Outbound: POST /{phone_number_id}/messages on the Graph API.
Inbound: webhook payloads (entry -> changes -> value -> messages) are
normalized by normalize_whatsapp_payload(); the HTTP routes live in server.py.

WhatsApp has no threads, so the sender's phone number is both the channel id
and the user id.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Iterator

import httpx

from channels import ChannelType, InboundMessage, OutboundMessage

logger = logging.getLogger(__name__)

GRAPH_API_BASE = "https://graph.facebook.com"


class WhatsAppAdapter:
    """Adapter that sends text messages via the WhatsApp Cloud API."""

    def __init__(self, config: dict = None, client: httpx.AsyncClient = None):
        self.config = config or {}
        self.channel_type = ChannelType.whatsapp(self._phone_number_id() or "")
        self._client = client

    def _access_token(self) -> str | None:
        return self.config.get("access_token") or os.environ.get("WHATSAPP_ACCESS_TOKEN")

    def _phone_number_id(self) -> str | None:
        return self.config.get("phone_number_id") or os.environ.get("WHATSAPP_PHONE_NUMBER_ID")

    async def send_message(self, outbound: OutboundMessage) -> dict:
        token = self._access_token()
        phone_number_id = self._phone_number_id()
        if not token or not phone_number_id:
            return {"error": "WhatsApp not configured. Set WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_NUMBER_ID."}

        api_version = self.config.get("api_version", "v21.0")
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": outbound.channel_id,
            "type": "text",
            "text": {"preview_url": False, "body": outbound.content},
        }

        try:
            response = await self._post(
                f"{GRAPH_API_BASE}/{api_version}/{phone_number_id}/messages",
                headers={"Authorization": f"Bearer {token}"},
                json=payload,
            )
        except httpx.TimeoutException:
            logger.error("WhatsApp API timeout for to=%s", outbound.channel_id)
            return {"error": "WhatsApp API timeout"}
        except httpx.HTTPError as e:
            logger.error("WhatsApp send error to=%s: %s", outbound.channel_id, e)
            return {"error": str(e)}

        if response.status_code != 200:
            logger.error("WhatsApp send failed: %s - %s", response.status_code, response.text)
            return {"error": f"WhatsApp API error: {response.status_code}"}

        messages = response.json().get("messages") or [{}]
        return {"sent": True, "channel": "whatsapp", "message_id": messages[0].get("id")}

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, timeout=30.0, **kwargs)
        async with httpx.AsyncClient() as client:
            return await client.post(url, timeout=30.0, **kwargs)


def normalize_whatsapp_payload(
    payload: dict,
    default_phone_number_id: str = "",
) -> Iterator[tuple[str, InboundMessage]]:
    """Yield (message_id, InboundMessage) for every text message in a webhook payload.

    Non-text messages (images, reactions, status updates) are skipped.
    """
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            messages = value.get("messages") or []
            if not messages:
                continue

            metadata = value.get("metadata") or {}
            phone_number_id = str(metadata.get("phone_number_id") or default_phone_number_id)

            for msg in messages:
                if msg.get("type") != "text":
                    logger.info("Ignoring non-text WhatsApp message type=%s", msg.get("type"))
                    continue

                message_id = str(msg.get("id"))
                sender = str(msg.get("from"))
                body = (msg.get("text") or {}).get("body", "")

                yield message_id, InboundMessage(
                    channel_id=sender,
                    user_id=sender,
                    content=body,
                    source=ChannelType.whatsapp(phone_number_id),
                    timestamp=_parse_timestamp(msg.get("timestamp")),
                    metadata={"wa_message_id": message_id},
                )


def _parse_timestamp(value) -> datetime:
    """WhatsApp sends Unix epoch seconds as a string."""
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)
