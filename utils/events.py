"""
Event System for Pincer

Small in-process emitter that lets the orchestrator, scheduler and heartbeat
announce what they are doing without knowing who is listening (CLI output,
tests, future housekeeping jobs).

Events:
    Reasoning loop:
        - tool_start: {"name": str, "input": dict}
        - tool_end: {"name": str, "result": any, "duration_ms": int}
        - reply: {"channel_id": str, "fallback": bool}

    Scheduler:
        - task_start: {"task_id": str, "kind": str}
        - task_end: {"task_id": str, "kind": str, "status": str, "error": str | None, "duration_ms": int}

    Heartbeat:
        - heartbeat: {"timestamp": str, "heartbeat": dict}

Usage:
    class Agent(EventEmitter):
        ...

    agent.on("heartbeat", lambda e: print(e["timestamp"]))
"""

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventEmitter:
    """
    Mixin class that provides event emission and subscription.

    Handlers run synchronously in emit order. A failing handler is logged
    and skipped so one bad subscriber cannot break the emitter.
    """

    def __init_events__(self):
        """Initialize event storage. Call this in your __init__ if using as mixin."""
        if not hasattr(self, "_event_handlers"):
            self._event_handlers: dict[str, list[Callable]] = {}

    def on(self, event: str, handler: Callable[[dict[str, Any]], None] = None) -> Callable:
        """
        Subscribe to an event.

        Args:
            event: Event name (e.g., "heartbeat") or "*" for all events
            handler: Callback receiving the event data dict. Omit to use as a decorator.

        Returns:
            The handler, or a decorator if handler is None
        """
        self.__init_events__()
        handlers = self._event_handlers.setdefault(event, [])

        if handler is None:
            def decorator(fn: Callable[[dict[str, Any]], None]) -> Callable:
                handlers.append(fn)
                return fn
            return decorator

        handlers.append(handler)
        return handler

    def off(self, event: str, handler: Callable = None):
        """Unsubscribe one handler, or all handlers when handler is None."""
        self.__init_events__()
        if event not in self._event_handlers:
            return
        if handler is None:
            self._event_handlers[event] = []
        else:
            self._event_handlers[event] = [h for h in self._event_handlers[event] if h != handler]

    def emit(self, event: str, data: dict[str, Any] = None):
        """Deliver an event to its subscribers, then to wildcard subscribers."""
        self.__init_events__()
        data = dict(data or {})
        data["_event"] = event

        handlers = list(self._event_handlers.get(event, []))
        handlers += self._event_handlers.get("*", [])
        for handler in handlers:
            try:
                handler(data)
            except Exception:
                logger.exception("Event handler for '%s' failed", event)

    def once(self, event: str, handler: Callable[[dict[str, Any]], None]) -> Callable:
        """Subscribe to a single emission of an event."""
        def wrapper(data):
            self.off(event, wrapper)
            handler(data)

        return self.on(event, wrapper)
