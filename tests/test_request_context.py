"""
Unit tests for request_context.py

Tests cover:
- set/get/clear semantics
- request_scope always clears, including on error
- Isolation between concurrent asyncio tasks
- Propagation into asyncio.to_thread workers
"""

import asyncio

import pytest

import request_context
from channels import ChannelType
from request_context import RequestContext, request_scope


def make_ctx(channel_id="C1", user_id="U1", thread_id=None):
    return RequestContext(channel_id=channel_id, user_id=user_id, source=ChannelType.slack("T1"), thread_id=thread_id)


class TestSetGetClear:

    def test_default_is_none(self):
        assert request_context.get() is None

    def test_set_then_get(self):
        ctx = make_ctx()
        token = request_context.set(ctx)
        try:
            assert request_context.get() is ctx
        finally:
            request_context.clear(token)
        assert request_context.get() is None

    def test_clear_without_token(self):
        request_context.set(make_ctx())
        request_context.clear()
        assert request_context.get() is None

    def test_from_message(self, console_message):
        message = console_message(channel_id="C9", user_id="U9", thread_id="T9")
        ctx = RequestContext.from_message(message)
        assert (ctx.channel_id, ctx.user_id, ctx.thread_id) == ("C9", "U9", "T9")
        assert ctx.source == message.source


class TestRequestScope:

    def test_scope_sets_and_clears(self):
        ctx = make_ctx()
        with request_scope(ctx) as active:
            assert active is ctx
            assert request_context.get() is ctx
        assert request_context.get() is None

    def test_scope_clears_on_error(self):
        with pytest.raises(RuntimeError):
            with request_scope(make_ctx()):
                raise RuntimeError("boom")
        assert request_context.get() is None

    def test_nested_scope_restores_outer(self):
        outer, inner = make_ctx("outer"), make_ctx("inner")
        with request_scope(outer):
            with request_scope(inner):
                assert request_context.get() is inner
            assert request_context.get() is outer


class TestConcurrency:

    @pytest.mark.asyncio
    async def test_concurrent_tasks_see_their_own_context(self):
        seen = {}

        async def cycle(channel_id):
            with request_scope(make_ctx(channel_id)):
                await asyncio.sleep(0.01)
                seen[channel_id] = request_context.get().channel_id

        await asyncio.gather(*(cycle(f"C{i}") for i in range(10)))
        assert seen == {f"C{i}": f"C{i}" for i in range(10)}

    @pytest.mark.asyncio
    async def test_context_reaches_worker_threads(self):
        ctx = make_ctx("threaded")
        with request_scope(ctx):
            result = await asyncio.to_thread(request_context.get)
        assert result is ctx
