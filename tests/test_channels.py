"""
Unit tests for channels/

Tests cover:
- ChannelType matching and factories
- InboundMessage / OutboundMessage validation
- ConsoleAdapter, SlackAdapter, WhatsAppAdapter delivery (httpx mock transport)
- Slack event and WhatsApp payload normalization
"""

import json

import httpx
import pytest

from channels import ChannelAdapter, ChannelType, InboundMessage, OutboundMessage
from channels.console import ConsoleAdapter
from channels.slack import SlackAdapter, normalize_slack_event, slack_event_key
from channels.whatsapp import WhatsAppAdapter, normalize_whatsapp_payload


# =============================================================================
# Message types
# =============================================================================


class TestChannelType:

    def test_matches_on_kind(self):
        assert ChannelType.slack("T1").matches(ChannelType.slack("T2"))
        assert not ChannelType.slack().matches(ChannelType.whatsapp())
        assert not ChannelType.console().matches(None)

    def test_factories(self):
        assert ChannelType.console().kind == "console"
        assert ChannelType.whatsapp("P1") == ChannelType("whatsapp", "P1")
        assert ChannelType.discord("G1").ref == "G1"


class TestInboundMessage:

    def test_defaults(self):
        msg = InboundMessage(channel_id="C1", user_id="U1", content="hi", source=ChannelType.console())
        assert msg.thread_id is None
        assert msg.timestamp.tzinfo is not None
        assert msg.metadata == {}

    @pytest.mark.parametrize("field,value", [("channel_id", ""), ("user_id", "  ")])
    def test_blank_ids_rejected(self, field, value):
        kwargs = {"channel_id": "C1", "user_id": "U1", "content": "hi", "source": ChannelType.console()}
        kwargs[field] = value
        with pytest.raises(ValueError):
            InboundMessage(**kwargs)

    def test_empty_content_allowed(self):
        msg = InboundMessage(channel_id="C1", user_id="U1", content="", source=ChannelType.console())
        assert msg.content == ""

    def test_context_id_prefers_thread(self):
        threaded = InboundMessage("C1", "U1", "hi", ChannelType.slack(), thread_id="T1")
        flat = InboundMessage("C1", "U1", "hi", ChannelType.slack())
        assert threaded.context_id == "T1"
        assert flat.context_id == "C1"


class TestOutboundMessage:

    def test_text_reply(self):
        out = OutboundMessage.text_reply("C1", "T1", "hello", ChannelType.slack())
        assert (out.channel_id, out.thread_id, out.content) == ("C1", "T1", "hello")
        assert out.attachments == ()

    def test_blank_content_rejected(self):
        with pytest.raises(ValueError):
            OutboundMessage.text_reply("C1", None, "   ", ChannelType.slack())


# =============================================================================
# Adapters
# =============================================================================


class TestConsoleAdapter:

    @pytest.mark.asyncio
    async def test_send_prints(self, capsys):
        adapter = ConsoleAdapter(prefix="Pincer")
        assert isinstance(adapter, ChannelAdapter)
        result = await adapter.send_message(
            OutboundMessage.text_reply("CONSOLE_CHANNEL", None, "hello there", ChannelType.console())
        )
        assert result["sent"] is True
        captured = capsys.readouterr()
        assert "hello there" in captured.out + captured.err


class TestSlackAdapter:

    @pytest.mark.asyncio
    async def test_posts_in_thread(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "ts": "1700000000.000200"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            adapter = SlackAdapter({"bot_token": "xoxb-test", "workspace_id": "T1"}, client=client)
            result = await adapter.send_message(
                OutboundMessage.text_reply("C1", "1700000000.000100", "hi", ChannelType.slack("T1"))
            )

        assert result == {"sent": True, "channel": "slack", "ts": "1700000000.000200"}
        sent = requests[0]
        assert sent.url.path == "/api/chat.postMessage"
        assert sent.headers["Authorization"] == "Bearer xoxb-test"
        assert json.loads(sent.content) == {"channel": "C1", "text": "hi", "thread_ts": "1700000000.000100"}

    @pytest.mark.asyncio
    async def test_api_error_reported(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"ok": False, "error": "channel_not_found"}))
        async with httpx.AsyncClient(transport=transport) as client:
            adapter = SlackAdapter({"bot_token": "xoxb-test"}, client=client)
            result = await adapter.send_message(OutboundMessage.text_reply("C1", None, "hi", ChannelType.slack()))
        assert result == {"error": "Slack API error: channel_not_found"}

    @pytest.mark.asyncio
    async def test_missing_token(self, clean_env):
        adapter = SlackAdapter({})
        result = await adapter.send_message(OutboundMessage.text_reply("C1", None, "hi", ChannelType.slack()))
        assert "error" in result


class TestWhatsAppAdapter:

    @pytest.mark.asyncio
    async def test_posts_to_graph_api(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"messages": [{"id": "wamid.OUT"}]})

        config = {"access_token": "EAAG", "phone_number_id": "PHONE_ID"}
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            adapter = WhatsAppAdapter(config, client=client)
            result = await adapter.send_message(
                OutboundMessage.text_reply("15551234567", None, "hola", ChannelType.whatsapp("PHONE_ID"))
            )

        assert result == {"sent": True, "channel": "whatsapp", "message_id": "wamid.OUT"}
        assert requests[0].url.path == "/v21.0/PHONE_ID/messages"
        body = json.loads(requests[0].content)
        assert body["to"] == "15551234567"
        assert body["text"]["body"] == "hola"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(401, json={"error": {}}))
        config = {"access_token": "EAAG", "phone_number_id": "PHONE_ID"}
        async with httpx.AsyncClient(transport=transport) as client:
            adapter = WhatsAppAdapter(config, client=client)
            result = await adapter.send_message(
                OutboundMessage.text_reply("1555", None, "hola", ChannelType.whatsapp())
            )
        assert result == {"error": "WhatsApp API error: 401"}


# =============================================================================
# Normalization
# =============================================================================


class TestNormalizeSlackEvent:

    def test_top_level_mention_has_no_thread(self):
        msg = normalize_slack_event(
            {"type": "app_mention", "channel": "C1", "user": "U1", "text": "hi", "ts": "1700000000.000100"},
            workspace_id="T1",
        )
        assert msg.thread_id is None
        assert msg.context_id == "C1"
        assert msg.source == ChannelType.slack("T1")
        assert msg.content == "hi"
        assert msg.metadata == {"slack_ts": "1700000000.000100"}

    def test_direct_message_accepted(self):
        msg = normalize_slack_event({
            "type": "message", "channel_type": "im", "channel": "D1", "user": "U1",
            "text": "hi", "ts": "1700000000.000200",
        })
        assert msg.channel_id == "D1"
        assert msg.thread_id is None

    def test_thread_reply_keeps_thread_ts(self):
        msg = normalize_slack_event({
            "type": "app_mention", "channel": "C1", "user": "U1", "text": "hey",
            "ts": "1700000000.000300", "thread_ts": "1700000000.000100",
        })
        assert msg.thread_id == "1700000000.000100"

    @pytest.mark.parametrize("event", [
        {"type": "message", "channel_type": "channel", "channel": "C1", "user": "U1", "text": "<@B> hi", "ts": "1"},
        {"type": "message", "channel": "C1", "user": "U1", "text": "hi", "ts": "1"},
        {"type": "message", "channel": "C1", "bot_id": "B1", "text": "bot", "ts": "1"},
        {"type": "message", "subtype": "message_changed", "channel": "C1", "ts": "1"},
        {"type": "reaction_added", "user": "U1"},
        {"type": "message", "text": "no channel", "user": "U1"},
    ])
    def test_ignored_events(self, event):
        assert normalize_slack_event(event) is None


class TestSlackEventKey:

    def test_key_is_channel_and_ts(self):
        mention = normalize_slack_event(
            {"type": "app_mention", "channel": "C1", "user": "U1", "text": "hi", "ts": "1700.1"}
        )
        assert slack_event_key(mention, "Ev1") == "C1:1700.1"
        assert slack_event_key(mention, "Ev2") == "C1:1700.1"

    def test_falls_back_to_event_id(self):
        msg = InboundMessage(channel_id="C1", user_id="U1", content="hi", source=ChannelType.slack())
        assert slack_event_key(msg, "Ev1") == "Ev1"
        assert slack_event_key(msg, None) is None


class TestNormalizeWhatsAppPayload:

    def _payload(self, messages):
        return {
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"value": {
                "metadata": {"phone_number_id": "PHONE_ID"},
                "messages": messages,
            }}]}],
        }

    def test_text_messages(self):
        payload = self._payload([
            {"id": "wamid.1", "from": "15551234567", "type": "text",
             "timestamp": "1700000000", "text": {"body": "hello"}},
        ])
        [(message_id, msg)] = list(normalize_whatsapp_payload(payload))
        assert message_id == "wamid.1"
        assert msg.channel_id == msg.user_id == "15551234567"
        assert msg.source == ChannelType.whatsapp("PHONE_ID")
        assert msg.content == "hello"
        assert msg.thread_id is None

    def test_non_text_skipped(self):
        payload = self._payload([
            {"id": "wamid.2", "from": "1555", "type": "image", "image": {}},
        ])
        assert list(normalize_whatsapp_payload(payload)) == []

    def test_status_updates_yield_nothing(self):
        payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1"}]}}]}]}
        assert list(normalize_whatsapp_payload(payload)) == []
