"""
Memory System for Pincer

Two layers:
1. Short-term memory - bounded per-conversation history, in process only
2. Note store - curated facts, daily logs and profile documents on disk

Plus a client for the external document index used for retrieval.

Usage:
    from memory import NoteStore, ShortTermMemory

    notes = NoteStore(".memory")
    notes.ensure_defaults()
    notes.remember("Prefers morning stand-ups")

    short_term = ShortTermMemory(limit=50)
    short_term.add_message("C123", "user", "hello")
"""

from .models import AgentProfile, MemorySnapshot, DEFAULT_PROFILE
from .notes import NoteStore, NoteStoreError
from .retrieval import (
    HttpRetrievalClient,
    NullRetrievalClient,
    RetrievalClient,
    build_retrieval_client,
)
from .short_term import ShortTermMemory

__all__ = [
    "AgentProfile",
    "DEFAULT_PROFILE",
    "HttpRetrievalClient",
    "MemorySnapshot",
    "NoteStore",
    "NoteStoreError",
    "NullRetrievalClient",
    "RetrievalClient",
    "ShortTermMemory",
    "build_retrieval_client",
]
