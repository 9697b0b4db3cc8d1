"""
Tools Framework

Tools are the capabilities the model may ask the agent to run. Each one has a
name, a description, a JSON schema for its arguments and a function
`fn(params, agent)` that may be sync or async.

Usage:
    from tools import tool

    @tool
    def get_current_datetime(timezone: str = "") -> dict:
        '''Get the current date and time.

        Args:
            timezone: Optional IANA zone name, e.g. "America/Chicago"
        '''
        ...

The @tool decorator:
- Generates JSON schema from type hints
- Extracts descriptions from docstrings
- Collects the tool so get_local_tools() can hand it to the registry

The ToolRegistry is the name-keyed table the reasoning loop dispatches on. It
is filled once at startup (local tools, then remote MCP tools) and treated as
a static snapshot afterwards.
"""

import asyncio
import inspect
import logging
import re
from typing import Callable, get_type_hints

logger = logging.getLogger(__name__)


class ToolValidationError(Exception):
    """Raised when a tool is malformed or its name is already taken."""


class Tool:
    """A capability the agent can use."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict,
        fn: Callable,
        remote: bool = False,
    ):
        self.name = name
        self.description = description
        self.parameters = parameters
        self.fn = fn
        self.remote = remote

    @property
    def schema(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }

    async def invoke(self, params: dict, agent):
        """Run the tool. Sync functions run in a worker thread so they never block the loop."""
        if inspect.iscoroutinefunction(self.fn):
            return await self.fn(params, agent)
        result = await asyncio.to_thread(self.fn, params, agent)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self):
        return f"Tool({self.name!r})"


# =============================================================================
# Parameter descriptors
# =============================================================================

def param(name: str, type: str = "string", description: str = "", required: bool = True) -> dict:
    """Describe one tool parameter (name, type, description, required flag)."""
    return {"name": name, "type": type, "description": description, "required": required}


def parameters_schema(*params: dict) -> dict:
    """Build the JSON schema for a list of param() descriptors."""
    properties = {}
    required = []
    for p in params:
        prop = {"type": p["type"]}
        if p.get("description"):
            prop["description"] = p["description"]
        properties[p["name"]] = prop
        if p.get("required", True):
            required.append(p["name"])

    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


# =============================================================================
# @tool decorator
# =============================================================================

_registered_tools: list[dict] = []


def _python_type_to_json(py_type) -> str:
    type_map = {
        str: "string",
        int: "integer",
        float: "number",
        bool: "boolean",
        list: "array",
        dict: "object",
    }
    return type_map.get(py_type, "string")


def _parse_docstring(docstring: str) -> tuple[str, dict[str, str]]:
    """
    Parse a docstring to extract description and argument descriptions.

    Returns:
        (main_description, {arg_name: arg_description})
    """
    if not docstring:
        return "", {}

    description_lines = []
    arg_descriptions = {}
    in_args = False
    current_arg = None

    for line in docstring.strip().split("\n"):
        stripped = line.strip()

        if stripped.lower() in ("args:", "arguments:", "parameters:"):
            in_args = True
            continue
        if stripped.lower() in ("returns:", "raises:", "examples:", "example:"):
            in_args = False
            continue

        if in_args:
            # "arg_name: description" or "arg_name (type): description"
            match = re.match(r"(\w+)(?:\s*\([^)]*\))?\s*:\s*(.+)", stripped)
            if match:
                current_arg = match.group(1)
                arg_descriptions[current_arg] = match.group(2).strip()
            elif current_arg and stripped:
                arg_descriptions[current_arg] += " " + stripped
        elif stripped:
            description_lines.append(stripped)

    return " ".join(description_lines), arg_descriptions


def tool(fn: Callable = None, *, name: str = None, description: str = None):
    """
    Decorator to convert a function into a Tool.

    Can be used as:
        @tool
        def my_func(...): ...

    Or with options:
        @tool(name="custom_name", description="Custom description")
        def my_func(...): ...

    A parameter named `agent` is injected rather than exposed to the model.
    """
    def decorator(func: Callable):
        tool_name = name or func.__name__
        doc_desc, arg_descs = _parse_docstring(func.__doc__ or "")
        tool_description = description or doc_desc or f"Tool: {tool_name}"

        hints = get_type_hints(func)
        hints.pop("return", None)
        sig = inspect.signature(func)

        params = []
        for param_name, parameter in sig.parameters.items():
            if param_name in ("agent", "self"):
                continue
            params.append(param(
                param_name,
                _python_type_to_json(hints.get(param_name, str)),
                arg_descs.get(param_name, ""),
                required=parameter.default is inspect.Parameter.empty,
            ))

        accepted = set(sig.parameters) - {"agent"}
        wants_agent = "agent" in sig.parameters

        def _kwargs(params: dict, agent) -> dict:
            kwargs = {k: v for k, v in (params or {}).items() if k in accepted}
            if wants_agent:
                kwargs["agent"] = agent
            return kwargs

        if inspect.iscoroutinefunction(func):
            async def wrapper(params: dict, agent):
                return await func(**_kwargs(params, agent))
        else:
            def wrapper(params: dict, agent):
                return func(**_kwargs(params, agent))

        tool_info = {
            "name": tool_name,
            "description": tool_description,
            "parameters": parameters_schema(*params),
            "fn": wrapper,
        }
        _registered_tools.append(tool_info)

        # The original function stays directly callable
        func._tool_info = tool_info
        return func

    if fn is not None:
        return decorator(fn)
    return decorator


def tool_error(error: str, fix: str = None, **extras) -> dict:
    """Standard error payload returned by tools; becomes the observation the model sees."""
    payload = {"error": error}
    if fix:
        payload["fix"] = fix
    payload.update(extras)
    return payload


def get_local_tools() -> list[Tool]:
    """All @tool functions shipped with the agent, as Tool instances."""
    # Importing the modules runs their @tool decorators
    from tools import clock, knowledge, memory, reminder  # noqa: F401

    return [
        Tool(
            name=info["name"],
            description=info["description"],
            parameters=info["parameters"],
            fn=info["fn"],
        )
        for info in _registered_tools
    ]


# =============================================================================
# Registry
# =============================================================================

class ToolRegistry:
    """Name-keyed table of local and remote tools."""

    def __init__(self, tools: list[Tool] = None):
        self._tools: dict[str, Tool] = {}
        for t in tools or []:
            self.register(t)

    def register(self, t: Tool) -> Tool:
        """Add a tool.

        Raises:
            ToolValidationError: if the tool is malformed or its name is taken.
        """
        self._validate(t)
        if t.name in self._tools:
            raise ToolValidationError(f"Tool '{t.name}' is already registered")
        self._tools[t.name] = t
        return t

    def register_remote(self, tools: list[Tool]) -> list[str]:
        """Add remotely discovered tools. Name clashes are skipped, local tools win."""
        added = []
        for t in tools:
            if t.name in self._tools:
                logger.warning("Skipping remote tool %s: name already registered", t.name)
                continue
            t.remote = True
            self.register(t)
            added.append(t.name)
        return added

    def _validate(self, t):
        if not isinstance(t, Tool):
            raise ToolValidationError(
                f"Invalid tool object (type: {type(t).__name__}). Use the Tool class."
            )
        if not t.name or not isinstance(t.name, str):
            raise ToolValidationError("Tool must have a non-empty name")
        if not callable(t.fn):
            raise ToolValidationError(f"Tool '{t.name}' fn is not callable")
        if not isinstance(t.parameters, dict):
            raise ToolValidationError(
                f"Tool '{t.name}' has invalid schema: expected dict, got {type(t.parameters).__name__}"
            )

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def local_tools(self) -> list[Tool]:
        return [t for t in self._tools.values() if not t.remote]

    def remote_tools(self) -> list[Tool]:
        return [t for t in self._tools.values() if t.remote]

    def all(self) -> list[Tool]:
        return list(self._tools.values())


__all__ = [
    "Tool",
    "ToolRegistry",
    "ToolValidationError",
    "get_local_tools",
    "param",
    "parameters_schema",
    "tool",
    "tool_error",
]
