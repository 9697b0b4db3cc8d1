"""
Shared fixtures for the Pincer test suite.

Provides temp note stores, a test config, and a scripted model client that
returns Anthropic-shaped responses without network access.
"""

import copy
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

# Ensure the project root is on sys.path so tests can import project modules
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from channels import ChannelType, InboundMessage  # noqa: E402
from config import _default_config  # noqa: E402
from memory import NoteStore  # noqa: E402


# =============================================================================
# Scripted model client
# =============================================================================

def text_block(text: str):
    return SimpleNamespace(type="text", text=text)


def tool_use_block(name: str, input: dict = None, id: str = "toolu_1"):
    return SimpleNamespace(type="tool_use", id=id, name=name, input=input or {})


def model_response(*blocks, stop_reason: str = None):
    if stop_reason is None:
        has_tools = any(b.type == "tool_use" for b in blocks)
        stop_reason = "tool_use" if has_tools else "end_turn"
    return SimpleNamespace(content=list(blocks), stop_reason=stop_reason)


def text_response(text: str):
    return model_response(text_block(text))


def tool_response(name: str, input: dict = None, id: str = "toolu_1"):
    return model_response(tool_use_block(name, input, id))


class FakeModelClient:
    """Replays scripted responses; an Exception in the script is raised instead.

    Every call's kwargs are deep-copied into `calls` so later mutation of the
    message list does not rewrite history.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls: list[dict] = []
        self.messages = self

    async def create(self, **kwargs):
        self.calls.append(copy.deepcopy(kwargs))
        if not self.responses:
            raise AssertionError("FakeModelClient ran out of scripted responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingAdapter:
    """Channel adapter that keeps every outbound message."""

    def __init__(self, channel_type: ChannelType = None, result: dict = None, error: Exception = None):
        self.channel_type = channel_type or ChannelType.console()
        self.sent = []
        self._result = result or {"sent": True}
        self._error = error

    async def send_message(self, outbound):
        self.sent.append(outbound)
        if self._error is not None:
            raise self._error
        return self._result


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def tmp_dir(tmp_path):
    """Provide a temporary directory that is cleaned up after the test."""
    return tmp_path


@pytest.fixture
def config_dir(tmp_path):
    """Provide a temporary directory for config files."""
    d = tmp_path / "config"
    d.mkdir()
    return d


@pytest.fixture
def clean_env():
    """Temporarily clear Pincer and provider env vars to avoid side effects."""
    keys = [
        "ANTHROPIC_API_KEY", "OPENAI_API_KEY",
        "PINCER_CONFIG", "PINCER_MODEL", "PINCER_MEMORY_PATH", "PINCER_RAG_ENDPOINT",
        "AGENT_NAME",
        "SLACK_BOT_TOKEN", "SLACK_WORKSPACE_ID",
        "WHATSAPP_ACCESS_TOKEN", "WHATSAPP_PHONE_NUMBER_ID", "WHATSAPP_VERIFY_TOKEN",
    ]
    saved = {}
    for key in keys:
        if key in os.environ:
            saved[key] = os.environ.pop(key)
    yield
    # Restore
    for key, val in saved.items():
        os.environ[key] = val
    for key in keys:
        if key not in saved and key in os.environ:
            del os.environ[key]


@pytest.fixture
def mock_anthropic_key():
    """Set a fake ANTHROPIC_API_KEY so the real client can be constructed."""
    with patch.dict(os.environ, {"ANTHROPIC_API_KEY": "sk-ant-test-key-123"}):
        yield


@pytest.fixture
def memory_dir(tmp_path):
    return tmp_path / ".memory"


@pytest.fixture
def notes(memory_dir):
    """A seeded NoteStore in a temp directory."""
    store = NoteStore(memory_dir)
    store.ensure_defaults()
    return store


@pytest.fixture
def sample_config(memory_dir):
    """Default config pointed at a temp memory dir, with no retry delay."""
    config = _default_config()
    config["memory"]["path"] = str(memory_dir)
    config["planner"]["retry_delay"] = 0
    config["heartbeat"]["enabled"] = False
    config["channels"]["whatsapp"]["verify_token"] = "verify-me"
    config["channels"]["whatsapp"]["phone_number_id"] = "PHONE_ID"
    return config


@pytest.fixture
def fake_client():
    return FakeModelClient()


@pytest.fixture
def console_message():
    def make(content="Hello", channel_id="C1", user_id="U1", thread_id=None, source=None):
        return InboundMessage(
            channel_id=channel_id,
            user_id=user_id,
            content=content,
            source=source or ChannelType.console(),
            thread_id=thread_id,
        )
    return make
