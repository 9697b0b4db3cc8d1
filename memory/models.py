"""
Data models shared by the memory layer and the context assembler.

Design principles:
- Everything here is a read snapshot, built fresh per request
- Profiles are slowly-changing state loaded from the NoteStore
- Defaults are explicit so degraded requests are predictable
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AgentProfile:
    """
    Who the agent is talking to and how it should behave.

    Built from the profile documents (USER.md, SOUL.md, TOOLS.md) on every
    request, so edits made by the memory tools take effect on the next turn.
    """

    user_name: str
    personality: str
    system_prompt: str
    preferences: dict[str, str] = field(default_factory=dict)


DEFAULT_PROFILE = AgentProfile(
    user_name="User",
    personality="Helpful Assistant",
    system_prompt="You are Pincer, a helpful autonomous assistant.",
    preferences={},
)


@dataclass(frozen=True)
class MemorySnapshot:
    """Long-term memory relevant to one request."""

    relevant_memories: tuple[str, ...] = ()
    user_preferences: dict[str, str] = field(default_factory=dict)
    personality_directive: str | None = None
    tools_context: str | None = None
