"""
Pincer Agent - one inbound message in, one reply out.

    inbound ──► assemble context ──► plan (tools, inside request scope) ──► reply
                  │                                                         │
          history, notes, docs, tools                     short-term memory + daily log

Multi-Channel Architecture:
- Adapters (console, Slack, WhatsApp) normalize platform events into
  InboundMessage and deliver OutboundMessage replies
- submit() acknowledges immediately and processes on a bounded worker pool,
  so a slow reasoning cycle never holds up the platform's delivery retries
- The scheduler has its own pool; fired reminders never compete with
  conversations for worker slots

process() is the outermost boundary of a request: whatever fails inside,
it returns either a real reply or the fixed fallback text.
"""

import asyncio
import logging
from pathlib import Path

from assembler import ContextAssembler
from channels import ChannelAdapter, ChannelType, InboundMessage, OutboundMessage
from config import load_config
from heartbeat import STATE_FILENAME, HeartbeatMonitor, HeartbeatStore
from llm import create_client
from memory import NoteStore, NoteStoreError, ShortTermMemory, build_retrieval_client
from planner import FALLBACK_REPLY, Planner
from reminders import ReminderEngine
from request_context import RequestContext, request_scope
from scheduler import TaskScheduler
from tools import ToolRegistry, get_local_tools
from utils.cache import DedupCache
from utils.events import EventEmitter

logger = logging.getLogger(__name__)

LOG_SNIPPET = 50


def _truncate(text: str, limit: int) -> str:
    text = text or ""
    return text if len(text) <= limit else text[:limit] + "..."


class Agent(EventEmitter):
    """
    The orchestrator: owns every component and runs reasoning cycles.

    Usage:
        agent = Agent(config=load_config())
        agent.register_adapter(ConsoleAdapter())
        await agent.start()
        reply = await agent.process(message)
    """

    def __init__(
        self,
        config: dict = None,
        client=None,
        registry: ToolRegistry = None,
        notes: NoteStore = None,
        retrieval=None,
        load_tools: bool = True,
    ):
        self.__init_events__()
        self.config = config or load_config()

        agent_config = self.config.get("agent", {})
        planner_config = self.config.get("planner", {})
        memory_config = self.config.get("memory", {})
        rag_config = self.config.get("rag", {})
        heartbeat_config = self.config.get("heartbeat", {})
        dedup_config = self.config.get("dedup", {})

        self.name = agent_config.get("name", "Pincer")
        self.model = agent_config.get("model", "claude-sonnet-4-20250514")
        self.client = client or create_client(self.config)

        # Memory
        memory_path = Path(memory_config.get("path", ".memory"))
        self.short_term = ShortTermMemory(limit=memory_config.get("short_term_limit", 50))
        self.notes = notes or NoteStore(memory_path)
        self.retrieval = retrieval or build_retrieval_client(self.config)

        # Tools (static snapshot; remote tools are added once in start())
        if registry is None:
            registry = ToolRegistry(get_local_tools() if load_tools else [])
        self.registry = registry

        # Scheduling
        self.scheduler = TaskScheduler(emitter=self)
        self.reminders = ReminderEngine(self.scheduler, self.adapters_for)
        self.heartbeat = HeartbeatMonitor(
            HeartbeatStore(memory_path / STATE_FILENAME),
            self.scheduler,
            emitter=self,
            interval_minutes=heartbeat_config.get("interval_minutes", 15),
        )
        self.heartbeat.register_check(
            "pending_reminders", lambda: f"OK ({self.reminders.pending_count()} pending)"
        )
        self.heartbeat.register_check(
            "short_term_memory", lambda: f"OK ({len(self.short_term.contexts())} contexts)"
        )

        # Reasoning
        self.assembler = ContextAssembler(
            self.short_term,
            self.notes,
            self.registry,
            retrieval=self.retrieval,
            rag_enabled=rag_config.get("enabled", False),
            top_k=rag_config.get("top_k", 4),
        )
        self.planner = Planner(
            self.client,
            self.model,
            agent=self,
            emitter=self,
            max_tokens=agent_config.get("max_tokens", 4096),
            max_iterations=planner_config.get("max_iterations", 8),
            max_attempts=planner_config.get("max_attempts", 3),
            retry_delay=planner_config.get("retry_delay", 2.0),
        )

        # Channels and inbound processing
        self.adapters: list[ChannelAdapter] = []
        self._seen_events = DedupCache(
            ttl_seconds=dedup_config.get("ttl_seconds", 3600),
            max_size=dedup_config.get("max_size", 10_000),
        )
        self._workers = asyncio.Semaphore(agent_config.get("workers", 10))
        self._inflight: set[asyncio.Task] = set()
        self._started = False

    # -------------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------------

    def register_adapter(self, adapter: ChannelAdapter):
        """Register a channel adapter for outbound delivery and reminders."""
        if not isinstance(adapter, ChannelAdapter):
            raise TypeError(f"{type(adapter).__name__} does not implement ChannelAdapter")
        self.adapters.append(adapter)
        logger.info("Registered %s adapter", adapter.channel_type.kind)

    def adapters_for(self, source: ChannelType) -> list[ChannelAdapter]:
        return [a for a in self.adapters if a.channel_type.matches(source)]

    def adapter_for(self, source: ChannelType) -> ChannelAdapter | None:
        matches = self.adapters_for(source)
        return matches[0] if matches else None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self):
        """Seed the note store, discover remote tools and start the heartbeat."""
        if self._started:
            return
        self._started = True

        try:
            await asyncio.to_thread(self.notes.ensure_defaults)
        except NoteStoreError as e:
            logger.warning("Note store unavailable, continuing with defaults: %s", e)

        servers = self.config.get("mcp", {}).get("servers") or []
        if servers:
            from tools.remote import discover_remote_tools

            added = self.registry.register_remote(await discover_remote_tools(servers))
            logger.info("Registered %d remote tools", len(added))

        if self.config.get("heartbeat", {}).get("enabled", True):
            await self.heartbeat.start()

    async def stop(self):
        """Stop background work. In-flight requests are cancelled."""
        self.heartbeat.stop()
        for task in list(self._inflight):
            task.cancel()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        self.scheduler.shutdown()
        self._started = False

    # -------------------------------------------------------------------------
    # Request processing
    # -------------------------------------------------------------------------

    async def process(self, message: InboundMessage) -> OutboundMessage:
        """Run one reasoning cycle and build the reply. Never raises."""
        logger.info(
            "Processing message from user=%s in channel=%s: %s",
            message.user_id, message.channel_id, _truncate(message.content, 100),
        )

        reply = ""
        try:
            context = await self.assembler.assemble(message)
            with request_scope(RequestContext.from_message(message)):
                reply = await self.planner.plan(context)
        except Exception:
            logger.exception("Reasoning failed for channel=%s", message.channel_id)

        fallback = not reply or not reply.strip()
        if fallback:
            logger.warning("Agent produced no response. Using fallback message.")
            reply = FALLBACK_REPLY

        context_id = message.context_id
        self.short_term.add_message(context_id, "user", message.content)
        self.short_term.add_message(context_id, "assistant", reply)

        entry = (
            f"Interaction with {message.user_id}: "
            f"Input='{_truncate(message.content, LOG_SNIPPET)}' | "
            f"Response='{_truncate(reply, LOG_SNIPPET)}'"
        )
        try:
            await asyncio.to_thread(self.notes.log_event, entry)
        except NoteStoreError as e:
            logger.warning("Failed to write daily log: %s", e)

        logger.info("Agent response for channel=%s: %s", message.channel_id, _truncate(reply, 100))
        self.emit("reply", {"channel_id": message.channel_id, "fallback": fallback})

        return OutboundMessage.text_reply(
            channel_id=message.channel_id,
            thread_id=message.thread_id,
            content=reply,
            destination=message.source,
        )

    def submit(self, message: InboundMessage, event_id: str = None) -> bool:
        """Queue a message for background processing and delivery.

        Returns False (and does nothing) when event_id was already seen, so
        platform redeliveries are answered once. Must be called on the event loop.
        """
        if event_id is not None:
            key = f"{message.source.kind}:{event_id}"
            if not self._seen_events.add(key):
                logger.info("Skipping duplicate event %s", key)
                return False

        task = asyncio.get_running_loop().create_task(self._handle(message))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return True

    async def _handle(self, message: InboundMessage):
        async with self._workers:
            outbound = await self.process(message)
            await self.deliver(outbound)

    async def deliver(self, outbound: OutboundMessage) -> dict:
        """Send a reply through the adapter for its destination."""
        adapter = self.adapter_for(outbound.destination)
        if adapter is None:
            logger.error("No channel adapter registered for %s", outbound.destination.kind)
            return {"error": f"No adapter for {outbound.destination.kind}"}
        try:
            result = await adapter.send_message(outbound)
        except Exception as e:
            logger.exception("Failed to deliver reply via %s", type(adapter).__name__)
            return {"error": str(e)}
        if isinstance(result, dict) and result.get("error"):
            logger.error("Failed to deliver reply via %s: %s", type(adapter).__name__, result["error"])
        return result
