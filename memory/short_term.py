"""
Short-Term Memory - bounded per-conversation message buffer.

Working memory for the conversation currently in flight. Each context
(thread id, or channel id for unthreaded channels) keeps at most `limit`
recent turns; older turns are evicted first. Nothing is persisted: a restart
forgets short-term history, long-term facts live in the NoteStore.

Additions to different contexts never contend; additions to the same context
are serialized by a per-context lock.
"""

import threading
from collections import deque

DEFAULT_LIMIT = 50


class ShortTermMemory:

    def __init__(self, limit: int = DEFAULT_LIMIT):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._buffers: dict[str, deque] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _slot(self, context_id: str) -> tuple[threading.Lock, deque]:
        # Only the lookup is global; the returned lock is per context
        with self._registry_lock:
            lock = self._locks.get(context_id)
            if lock is None:
                lock = self._locks[context_id] = threading.Lock()
                self._buffers[context_id] = deque(maxlen=self.limit)
            return lock, self._buffers[context_id]

    def add_message(self, context_id: str, role: str, text: str):
        """Append a turn ("user" or "assistant"), evicting the oldest past the limit."""
        lock, buffer = self._slot(context_id)
        with lock:
            buffer.append({"role": role, "content": text})

    def get_history(self, context_id: str) -> list[dict]:
        """Return a copy of the context's turns, oldest first."""
        with self._registry_lock:
            lock = self._locks.get(context_id)
            buffer = self._buffers.get(context_id)
        if lock is None:
            return []
        with lock:
            return [dict(entry) for entry in buffer]

    def clear(self, context_id: str):
        with self._registry_lock:
            self._locks.pop(context_id, None)
            self._buffers.pop(context_id, None)

    def contexts(self) -> list[str]:
        """Ids of contexts that currently hold history."""
        with self._registry_lock:
            return list(self._buffers)
