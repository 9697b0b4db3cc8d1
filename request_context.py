"""
Request Context - who and where the current reasoning cycle is serving.

Tools such as set_reminder need the channel, thread and user of the request
that invoked them, but the model cannot be trusted to pass that metadata as
arguments. The orchestrator publishes it here for the duration of one cycle.

Backed by a ContextVar, so the value follows the asyncio task that runs the
cycle and is copied into asyncio.to_thread() workers that execute sync
tools. Concurrent cycles on the same event loop never see each other's
context.

Usage:
    with request_scope(RequestContext(...)):
        await planner.plan(context)   # tools may call request_context.get()
"""

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass

from channels import ChannelType


@dataclass(frozen=True)
class RequestContext:
    channel_id: str
    user_id: str
    source: ChannelType
    thread_id: str | None = None

    @classmethod
    def from_message(cls, message) -> "RequestContext":
        return cls(
            channel_id=message.channel_id,
            user_id=message.user_id,
            source=message.source,
            thread_id=message.thread_id,
        )


_current: contextvars.ContextVar[RequestContext | None] = contextvars.ContextVar(
    "pincer_request_context", default=None
)


def set(ctx: RequestContext) -> contextvars.Token:
    """Publish the context for the current task. Returns a token for clear()."""
    return _current.set(ctx)


def get() -> RequestContext | None:
    """The context of the cycle running in this task, or None."""
    return _current.get()


def clear(token: contextvars.Token = None):
    """Drop the current context (restoring the previous one when given a token)."""
    if token is not None:
        _current.reset(token)
    else:
        _current.set(None)


@contextmanager
def request_scope(ctx: RequestContext):
    """Set the context for the duration of the block; always cleared on exit."""
    token = set(ctx)
    try:
        yield ctx
    finally:
        clear(token)
