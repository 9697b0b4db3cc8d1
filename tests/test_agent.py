"""
Unit tests for agent.py

Tests cover:
- process(): reply, short-term memory update, daily log, reply event
- Fallback reply when the planner fails or returns nothing
- Request context visible to tools during the cycle, cleared afterwards
- submit(): de-duplication by event id, delivery through the adapter
- deliver(): missing adapter, failing adapter
- start()/stop(): note store seeding, heartbeat registration
- End-to-end reminder: tool call -> scheduler -> adapter
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

import request_context
from agent import Agent
from channels import ChannelType, OutboundMessage
from heartbeat import HEARTBEAT_TASK_ID
from planner import FALLBACK_REPLY
from reminders import REMINDER_PREFIX
from tools import Tool, ToolRegistry, get_local_tools, parameters_schema

from conftest import FakeModelClient, RecordingAdapter, text_response, tool_response


async def wait_for(predicate, timeout: float = 3.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def client():
    return FakeModelClient()


@pytest_asyncio.fixture
async def agent(sample_config, client):
    a = Agent(config=sample_config, client=client)
    yield a
    await a.stop()


# =============================================================================
# process()
# =============================================================================


class TestProcess:

    @pytest.mark.asyncio
    async def test_reply_and_memory(self, agent, client, console_message):
        client.responses.append(text_response("Hello back!"))
        message = console_message("Hello", channel_id="C1", thread_id="T1")

        outbound = await agent.process(message)

        assert isinstance(outbound, OutboundMessage)
        assert outbound.content == "Hello back!"
        assert outbound.channel_id == "C1"
        assert outbound.thread_id == "T1"
        assert outbound.destination == message.source
        assert agent.short_term.get_history("T1") == [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hello back!"},
        ]

    @pytest.mark.asyncio
    async def test_history_fed_to_next_turn(self, agent, client, console_message):
        client.responses.extend([text_response("first"), text_response("second")])
        await agent.process(console_message("one", channel_id="C1"))
        await agent.process(console_message("two", channel_id="C1"))
        assert client.calls[1]["messages"] == [
            {"role": "user", "content": "one"},
            {"role": "assistant", "content": "first"},
            {"role": "user", "content": "two"},
        ]

    @pytest.mark.asyncio
    async def test_interaction_logged(self, agent, client, console_message):
        client.responses.append(text_response("Sure."))
        await agent.process(console_message("Please help", user_id="U7"))
        [day_file] = list(agent.notes.daily_dir.iterdir())
        assert "Interaction with U7: Input='Please help' | Response='Sure.'" in day_file.read_text()

    @pytest.mark.asyncio
    async def test_reply_event(self, agent, client, console_message):
        events = []
        agent.on("reply", events.append)
        client.responses.append(text_response("ok"))
        await agent.process(console_message(channel_id="C5"))
        assert events[0]["channel_id"] == "C5"
        assert events[0]["fallback"] is False

    @pytest.mark.asyncio
    async def test_planner_failure_falls_back(self, sample_config, console_message):
        sample_config["planner"]["max_attempts"] = 2
        failing = FakeModelClient([ConnectionError("down"), ConnectionError("still down")])
        agent = Agent(config=sample_config, client=failing)
        try:
            outbound = await agent.process(console_message("Hello", channel_id="C1"))
        finally:
            await agent.stop()

        assert outbound.content == FALLBACK_REPLY
        assert len(failing.calls) == 2
        assert agent.short_term.get_history("C1")[-1] == {"role": "assistant", "content": FALLBACK_REPLY}

    @pytest.mark.asyncio
    async def test_blank_reply_falls_back(self, agent, client, console_message):
        client.responses.append(text_response(""))
        assert (await agent.process(console_message())).content == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_log_failure_does_not_break_reply(self, agent, client, console_message, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        agent.notes.daily_dir = blocker / "daily"
        client.responses.append(text_response("still here"))
        assert (await agent.process(console_message())).content == "still here"


class TestRequestContextDuringCycle:

    @pytest.mark.asyncio
    async def test_tools_see_current_message(self, sample_config, console_message):
        seen = []
        recorder = Tool("recorder", "Record context", parameters_schema(), lambda p, a: seen.append(request_context.get()) or "ok")
        client = FakeModelClient([tool_response("recorder"), text_response("done")])
        agent = Agent(config=sample_config, client=client, registry=ToolRegistry([recorder]))
        try:
            await agent.process(console_message(channel_id="C3", user_id="U3", thread_id="T3"))
        finally:
            await agent.stop()

        [ctx] = seen
        assert (ctx.channel_id, ctx.user_id, ctx.thread_id) == ("C3", "U3", "T3")
        assert request_context.get() is None


# =============================================================================
# Channels, submit and deliver
# =============================================================================


class TestChannels:

    def test_register_rejects_non_adapter(self, sample_config, client):
        agent = Agent(config=sample_config, client=client)
        with pytest.raises(TypeError):
            agent.register_adapter(object())

    def test_adapter_lookup_by_kind(self, sample_config, client):
        agent = Agent(config=sample_config, client=client)
        slack = RecordingAdapter(ChannelType.slack("T1"))
        agent.register_adapter(slack)
        assert agent.adapter_for(ChannelType.slack("T2")) is slack
        assert agent.adapter_for(ChannelType.whatsapp()) is None

    @pytest.mark.asyncio
    async def test_deliver_without_adapter(self, agent):
        result = await agent.deliver(OutboundMessage.text_reply("C1", None, "hi", ChannelType.whatsapp()))
        assert "error" in result

    @pytest.mark.asyncio
    async def test_deliver_adapter_exception(self, agent):
        agent.register_adapter(RecordingAdapter(ChannelType.slack(), error=RuntimeError("boom")))
        result = await agent.deliver(OutboundMessage.text_reply("C1", None, "hi", ChannelType.slack()))
        assert result == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_submit_processes_and_delivers(self, agent, client, console_message):
        slack = RecordingAdapter(ChannelType.slack("T1"))
        agent.register_adapter(slack)
        client.responses.append(text_response("threaded reply"))

        message = console_message("hi", channel_id="C1", thread_id="1700.1", source=ChannelType.slack("T1"))
        assert agent.submit(message, event_id="Ev1") is True
        await wait_for(lambda: slack.sent)

        [outbound] = slack.sent
        assert outbound.content == "threaded reply"
        assert outbound.thread_id == "1700.1"

    @pytest.mark.asyncio
    async def test_submit_deduplicates(self, agent, client, console_message):
        slack = RecordingAdapter(ChannelType.slack())
        agent.register_adapter(slack)
        client.responses.append(text_response("only once"))

        message = console_message("hi", source=ChannelType.slack())
        assert agent.submit(message, event_id="Ev1") is True
        assert agent.submit(message, event_id="Ev1") is False
        await wait_for(lambda: slack.sent)
        await asyncio.sleep(0.05)

        assert len(slack.sent) == 1
        assert len(client.calls) == 1

    @pytest.mark.asyncio
    async def test_same_event_id_on_different_platforms(self, agent, client, console_message):
        client.responses.extend([text_response("a"), text_response("b")])
        agent.register_adapter(RecordingAdapter(ChannelType.slack()))
        agent.register_adapter(RecordingAdapter(ChannelType.whatsapp()))
        assert agent.submit(console_message(source=ChannelType.slack()), event_id="42") is True
        assert agent.submit(console_message(source=ChannelType.whatsapp()), event_id="42") is True
        await wait_for(lambda: len(client.calls) == 2)


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_seeds_notes(self, agent):
        await agent.start()
        assert agent.notes.soul_file.exists()
        assert not agent.scheduler.is_scheduled(HEARTBEAT_TASK_ID)

    @pytest.mark.asyncio
    async def test_start_with_heartbeat(self, sample_config, client):
        sample_config["heartbeat"]["enabled"] = True
        agent = Agent(config=sample_config, client=client)
        try:
            await agent.start()
            assert agent.scheduler.is_scheduled(HEARTBEAT_TASK_ID)
            state = agent.heartbeat.store.load()
            names = [c["name"] for c in state["heartbeat"]["checks"]]
            assert names == ["pending_reminders", "short_term_memory"]
        finally:
            await agent.stop()
        assert agent.scheduler.list_ids() == []

    def test_local_tools_loaded_by_default(self, sample_config, client):
        agent = Agent(config=sample_config, client=client)
        assert "set_reminder" in agent.registry
        assert len(agent.registry) == len(get_local_tools())


class TestReminderEndToEnd:

    @pytest.mark.asyncio
    async def test_reminder_fires_in_original_thread(self, agent, client, console_message):
        slack = RecordingAdapter(ChannelType.slack("T1"))
        agent.register_adapter(slack)
        remind_at = (datetime.now(timezone.utc) + timedelta(seconds=1)).isoformat(timespec="seconds")
        client.responses.extend([
            tool_response("set_reminder", {"content": "stretch", "remind_at": remind_at}),
            text_response("I'll remind you."),
        ])

        message = console_message("remind me", channel_id="C1", user_id="U1",
                                  thread_id="1700.1", source=ChannelType.slack("T1"))
        outbound = await agent.process(message)
        assert outbound.content == "I'll remind you."
        assert agent.reminders.pending_count() == 1

        await wait_for(lambda: slack.sent, timeout=4)
        [reminder] = slack.sent
        assert reminder.content == REMINDER_PREFIX + "stretch"
        assert (reminder.channel_id, reminder.thread_id) == ("C1", "1700.1")
