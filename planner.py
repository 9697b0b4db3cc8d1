"""
Planner - the Think -> Act -> Observe loop.

    compose system prompt
          │
          ▼
    ┌──► invoke model ──► text only? ──► done
    │         │
    │         ▼ tool_use blocks
    │    run each tool, one observation per call
    │         │
    └─────────┘  (at most max_iterations rounds)

When the round limit is hit the model gets one last call with tool use
disabled and is asked to answer from what it has. If even that yields no
text, the reply is a short summary of the last observations.

Tool failures never abort the cycle: an unknown tool or a raising tool
becomes an error observation the model can react to. Anything else that
raises (model/provider errors) fails the cycle, which plan() retries with a
fixed delay before giving up.
"""

import asyncio
import json
import logging
import time
from datetime import datetime

from assembler import AgentContext

logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "I've processed your request, but I don't have a specific response to provide "
    "at the moment. Is there anything else I can help with?"
)

DEFAULT_IDENTITY = "You are Pincer, a powerful and autonomous AI agent."

AGENT_RULES = """
### MANDATORY AGENT RULES:
1. ANALYZE the user request carefully.
2. BREAK DOWN complex requests into logical steps.
3. EXECUTE tools sequentially, using each observation to inform the next step.
4. SUMMARIZE: After calling tools, you MUST synthesize the results into a final, helpful answer for the user. Never return empty text or raw tool output.

If a task requires multiple tool calls, do not hesitate to invoke them.
"""

SYNTHESIZE_INSTRUCTION = (
    "You have used all available tool steps. Do not call any more tools. "
    "Using the observations above, give the user your best final answer now."
)

OBSERVATION_SUMMARY_LIMIT = 500


def compose_system_prompt(context: AgentContext, now: datetime = None) -> str:
    """Build the full system instruction for one cycle."""
    now = now or datetime.now().astimezone()
    if now.tzinfo is None:
        now = now.astimezone()

    identity = context.profile.system_prompt
    if not identity or not identity.strip():
        identity = DEFAULT_IDENTITY

    parts = [identity, AGENT_RULES]

    memories = context.memory.relevant_memories
    if memories:
        lines = "\n".join(m if m.startswith("- ") else f"- {m}" for m in memories)
        parts.append(f"### Long-Term Memory (Relevant Facts):\n{lines}\n")

    if context.memory.personality_directive:
        parts.append(f"### Personality Directive:\n{context.memory.personality_directive}\n")

    if context.documents:
        lines = "\n".join(f"- {doc}" for doc in context.documents)
        parts.append(f"### Relevant Knowledge (from history/docs):\n{lines}\n")

    message = context.message
    current = [
        "### Current Context:",
        f"- User ID: {message.user_id}",
        f"- Channel ID: {message.channel_id}",
    ]
    if message.thread_id:
        current.append(f"- Thread ID: {message.thread_id}")
    current.append(f"- Current Time: {now.isoformat(timespec='seconds')}")
    parts.append("\n".join(current) + "\n")

    return "\n".join(parts)


def extract_text(response) -> str:
    return "".join(
        getattr(block, "text", "") or ""
        for block in response.content
        if getattr(block, "type", None) == "text"
    )


def to_observation(result) -> str:
    """Tool return value -> the string fed back to the model."""
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, default=str, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        return json.dumps({
            "error": f"Result serialization failed: {e}",
            "original_type": type(result).__name__,
        })


class Planner:
    """
    Drives one reasoning cycle per call to plan().

    Args:
        client: Model client with an Anthropic-style messages.create()
        model: Model name passed to the client
        agent: Passed to tool functions as their second argument
        emitter: Receives tool_start/tool_end events
    """

    def __init__(
        self,
        client,
        model: str,
        agent=None,
        emitter=None,
        max_tokens: int = 4096,
        max_iterations: int = 8,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.model = model
        self.agent = agent
        self.emitter = emitter
        self.max_tokens = max_tokens
        self.max_iterations = max_iterations
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def plan(self, context: AgentContext) -> str:
        """Final reply text for the context.

        Blank model output becomes FALLBACK_REPLY. Raises the last error if
        every attempt failed.
        """
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await self._run_cycle(context)
                break
            except Exception as e:
                last_error = e
                logger.warning(
                    "Reasoning cycle failed (attempt %d/%d): %s", attempt, self.max_attempts, e
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)
        else:
            raise last_error

        if not text or not text.strip():
            logger.warning("Model returned blank text, using fallback reply")
            return FALLBACK_REPLY
        return text

    async def _run_cycle(self, context: AgentContext) -> str:
        system = compose_system_prompt(context)
        messages = [dict(turn) for turn in context.history]
        messages.append({"role": "user", "content": context.message.content})

        tools_by_name = {t.name: t for t in context.tools}
        schemas = [t.schema for t in context.tools]
        observations: list[tuple[str, str]] = []

        for iteration in range(1, self.max_iterations + 1):
            response = await self._invoke(system, messages, schemas)
            tool_uses = [b for b in response.content if getattr(b, "type", None) == "tool_use"]
            if not tool_uses:
                logger.debug("Cycle finished after %d model call(s)", iteration)
                return extract_text(response)

            messages.append({"role": "assistant", "content": response.content})

            # Every tool_use block needs a tool_result, even when the tool fails
            results = []
            for block in tool_uses:
                observation = await self._execute_tool(block, tools_by_name)
                observations.append((block.name, observation))
                results.append({
                    "type": "tool_result",
                    "tool_use_id": block.id,
                    "content": observation,
                })
            messages.append({"role": "user", "content": results})

        logger.warning("Reached %d tool iterations, asking for a final answer", self.max_iterations)
        return await self._synthesize(system, messages, schemas, observations)

    async def _invoke(self, system: str, messages: list, schemas: list, **extra):
        kwargs = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": messages,
        }
        if schemas:
            kwargs["tools"] = schemas
        kwargs.update(extra)
        return await self.client.messages.create(**kwargs)

    async def _synthesize(self, system: str, messages: list, schemas: list, observations: list) -> str:
        messages[-1]["content"].append({"type": "text", "text": SYNTHESIZE_INSTRUCTION})
        try:
            response = await self._invoke(system, messages, schemas, tool_choice={"type": "none"})
            text = extract_text(response)
        except Exception as e:
            logger.warning("Final synthesis call failed: %s", e)
            text = ""

        if text.strip():
            return text
        return summarize_observations(observations)

    async def _execute_tool(self, block, tools_by_name: dict) -> str:
        name = block.name
        params = block.input if isinstance(block.input, dict) else {}
        self._emit("tool_start", {"name": name, "input": params})
        start_time = time.time()

        t = tools_by_name.get(name)
        if t is None:
            logger.warning("Model requested unknown tool %s", name)
            result = {"error": f"Unknown tool: {name}"}
        else:
            try:
                result = await t.invoke(params, self.agent)
            except Exception as e:
                logger.warning("Tool %s failed: %s", name, e)
                result = {"error": f"Tool execution failed: {e}"}

        duration_ms = int((time.time() - start_time) * 1000)
        self._emit("tool_end", {"name": name, "result": result, "duration_ms": duration_ms})
        return to_observation(result)

    def _emit(self, event: str, data: dict):
        if self.emitter is not None:
            self.emitter.emit(event, data)


def summarize_observations(observations: list[tuple[str, str]], last: int = 3) -> str:
    if not observations:
        return ""
    lines = ["I ran out of steps before finishing. Here is what I found so far:"]
    for name, observation in observations[-last:]:
        if len(observation) > OBSERVATION_SUMMARY_LIMIT:
            observation = observation[:OBSERVATION_SUMMARY_LIMIT] + "..."
        lines.append(f"- {name}: {observation}")
    return "\n".join(lines)
