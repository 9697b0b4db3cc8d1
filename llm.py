"""
Model clients with an Anthropic-style messages.create() interface.

The reasoning loop talks to one shape of API:

    response = await client.messages.create(
        model=..., max_tokens=..., system=..., tools=[...], messages=[...]
    )
    response.content      # blocks with .type "text" (.text) or "tool_use" (.id, .name, .input)
    response.stop_reason  # "end_turn", "tool_use", "max_tokens", ...

Two providers:
- anthropic.AsyncAnthropic for Claude models (default)
- AsyncLiteLLMAdapter for any LiteLLM-supported model (OpenAI, Gemini, ...),
  translating tools, messages and responses to and from the OpenAI format
"""

import json
import logging

import anthropic

logger = logging.getLogger(__name__)


def create_client(config: dict):
    """Build the model client named by the `agent` config section."""
    agent_config = config.get("agent", {})
    if agent_config.get("use_litellm"):
        logger.info("Using LiteLLM for model %s", agent_config.get("model"))
        return AsyncLiteLLMAdapter()
    return anthropic.AsyncAnthropic()


# =============================================================================
# LiteLLM adapter
# =============================================================================

class TextBlock:
    """Mimics Anthropic TextBlock."""

    def __init__(self, text: str):
        self.type = "text"
        self.text = text


class ToolUseBlock:
    """Mimics Anthropic ToolUseBlock."""

    def __init__(self, id: str, name: str, input: dict):
        self.type = "tool_use"
        self.id = id
        self.name = name
        self.input = input


class AnthropicStyleResponse:
    """Adapts a LiteLLM (OpenAI-format) response to the Anthropic shape."""

    STOP_REASONS = {
        "stop": "end_turn",
        "length": "max_tokens",
        "tool_calls": "tool_use",
        "content_filter": "end_turn",
    }

    def __init__(self, litellm_response):
        self._response = litellm_response
        self.content = self._convert_content()

    def _choice(self):
        choices = getattr(self._response, "choices", None) or []
        return choices[0] if choices else None

    def _convert_content(self) -> list:
        choice = self._choice()
        if choice is None:
            return []

        message = choice.message
        content = []
        if message.content:
            content.append(TextBlock(message.content))
        for tool_call in getattr(message, "tool_calls", None) or []:
            content.append(ToolUseBlock(
                id=tool_call.id,
                name=tool_call.function.name,
                input=_parse_arguments(tool_call.function.arguments),
            ))
        return content

    @property
    def stop_reason(self) -> str:
        choice = self._choice()
        if choice is None:
            return "unknown"
        reason = choice.finish_reason
        return self.STOP_REASONS.get(reason, reason or "unknown")


def _parse_arguments(raw: str) -> dict:
    """Tool-call arguments arrive as a JSON string; malformed JSON becomes {}."""
    try:
        parsed = json.loads(raw) if raw else {}
    except (json.JSONDecodeError, TypeError):
        logger.warning("Discarding malformed tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def convert_tools(tools: list[dict] | None) -> list[dict] | None:
    """Anthropic tool schemas -> OpenAI function tools."""
    if not tools:
        return None
    return [
        {
            "type": "function",
            "function": {
                "name": t.get("name", ""),
                "description": t.get("description", ""),
                "parameters": t.get("input_schema", {}),
            },
        }
        for t in tools
    ]


def convert_messages(messages: list[dict], system: str = None) -> list[dict]:
    """Anthropic messages (string or block content) -> OpenAI chat messages."""
    result = []
    if system:
        result.append({"role": "system", "content": system})

    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content")

        if isinstance(content, str):
            result.append({"role": role, "content": content})
            continue

        if not isinstance(content, list):
            result.append({"role": role, "content": str(content) if content else ""})
            continue

        tool_results = []
        text_parts = []
        tool_calls = []
        for block in content:
            block_type = block.get("type") if isinstance(block, dict) else getattr(block, "type", None)
            if block_type == "tool_result":
                tool_results.append({
                    "role": "tool",
                    "tool_call_id": block.get("tool_use_id", ""),
                    "content": str(block.get("content", "")),
                })
            elif block_type == "text":
                text_parts.append(block["text"] if isinstance(block, dict) else block.text)
            elif block_type == "tool_use":
                block_id, name, args = (
                    (block["id"], block["name"], block.get("input", {}))
                    if isinstance(block, dict) else (block.id, block.name, block.input)
                )
                tool_calls.append({
                    "id": block_id,
                    "type": "function",
                    "function": {"name": name, "arguments": json.dumps(args)},
                })

        if role == "assistant" and (tool_calls or text_parts):
            entry = {"role": "assistant", "content": "\n".join(text_parts)}
            if tool_calls:
                entry["tool_calls"] = tool_calls
            result.append(entry)
        elif tool_results:
            result.extend(tool_results)
            if text_parts:
                result.append({"role": role, "content": "\n".join(text_parts)})
        elif text_parts:
            result.append({"role": role, "content": "\n".join(text_parts)})

    return result


class _AsyncMessages:

    def __init__(self, litellm_module):
        self._litellm = litellm_module

    async def create(self, **kwargs) -> AnthropicStyleResponse:
        call_kwargs = {
            "model": kwargs.get("model"),
            "messages": convert_messages(kwargs.get("messages", []), kwargs.get("system")),
            "max_tokens": kwargs.get("max_tokens", 4096),
        }
        tools = convert_tools(kwargs.get("tools"))
        if tools:
            call_kwargs["tools"] = tools
            tool_choice = (kwargs.get("tool_choice") or {}).get("type")
            if tool_choice in ("none", "auto"):
                call_kwargs["tool_choice"] = tool_choice

        response = await self._litellm.acompletion(**call_kwargs)
        return AnthropicStyleResponse(response)


class AsyncLiteLLMAdapter:
    """
    Anthropic-compatible async client on top of LiteLLM.

    Usage:
        client = AsyncLiteLLMAdapter()
        response = await client.messages.create(model="gpt-4o", messages=[...], tools=[...])
    """

    def __init__(self):
        # Imported lazily, litellm is slow to import
        import litellm

        litellm.suppress_debug_info = True
        self.messages = _AsyncMessages(litellm)
