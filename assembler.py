"""
Context Assembler - everything one reasoning cycle needs, in one immutable bundle.

For an inbound message it gathers:
- recent history for the conversation (thread, else channel)
- the agent profile from the note store
- curated long-term memory lines
- retrieved documents, when retrieval is enabled
- the tool list from the registry snapshot

Each step degrades on its own. A failing store contributes an empty or
default value and a WARNING log line; assembly itself never fails and never
writes to any store.
"""

import asyncio
import logging
from dataclasses import dataclass

from channels import InboundMessage
from memory import DEFAULT_PROFILE, AgentProfile, MemorySnapshot, NoteStore, ShortTermMemory
from memory.retrieval import NullRetrievalClient, RetrievalClient
from tools import Tool, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AgentContext:
    """Input to one reasoning cycle. Built fresh per request."""
    message: InboundMessage
    history: tuple[dict, ...]
    memory: MemorySnapshot
    documents: tuple[str, ...]
    profile: AgentProfile
    tools: tuple[Tool, ...]


class ContextAssembler:

    def __init__(
        self,
        short_term: ShortTermMemory,
        notes: NoteStore,
        registry: ToolRegistry,
        retrieval: RetrievalClient = None,
        rag_enabled: bool = False,
        top_k: int = 4,
    ):
        self.short_term = short_term
        self.notes = notes
        self.registry = registry
        self.retrieval = retrieval or NullRetrievalClient()
        self.rag_enabled = rag_enabled
        self.top_k = top_k

    async def assemble(self, message: InboundMessage) -> AgentContext:
        history = self._history(message)
        profile, memories, environment = await asyncio.to_thread(self._read_notes)
        documents = await self._documents(message)

        snapshot = MemorySnapshot(
            relevant_memories=tuple(memories),
            user_preferences=dict(profile.preferences),
            personality_directive=profile.personality or None,
            tools_context=environment,
        )
        return AgentContext(
            message=message,
            history=tuple(history),
            memory=snapshot,
            documents=tuple(documents),
            profile=profile,
            tools=tuple(self.registry.all()),
        )

    def _history(self, message: InboundMessage) -> list[dict]:
        try:
            return self.short_term.get_history(message.context_id)
        except Exception as e:
            logger.warning("Failed to load history for %s: %s", message.context_id, e)
            return []

    def _read_notes(self) -> tuple[AgentProfile, list[str], str | None]:
        try:
            profile = self.notes.get_profile()
        except Exception as e:
            logger.warning("Failed to load profile, using default: %s", e)
            profile = DEFAULT_PROFILE

        try:
            memories = self.notes.relevant_memories()
        except Exception as e:
            logger.warning("Failed to load long-term memory: %s", e)
            memories = []

        try:
            environment = self.notes.environment_notes()
        except Exception as e:
            logger.warning("Failed to load environment notes: %s", e)
            environment = None

        return profile, memories, environment

    async def _documents(self, message: InboundMessage) -> list[str]:
        if not self.rag_enabled or not message.content.strip():
            return []
        try:
            return await self.retrieval.find_relevant(message.content, self.top_k)
        except Exception as e:
            logger.warning("Retrieval failed, continuing without documents: %s", e)
            return []
