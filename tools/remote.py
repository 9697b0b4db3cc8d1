"""
Remote tools discovered from MCP servers.

Each configured server is asked for its tool list once at startup. Every
remote tool becomes a regular Tool whose async fn opens a short-lived
streamable-HTTP session and forwards the call, so the reasoning loop
dispatches local and remote tools the same way.

Config (config.yaml):
    mcp:
      servers:
        - name: github
          url: http://localhost:8931/mcp
          headers: {Authorization: "Bearer ${GITHUB_MCP_TOKEN}"}
"""

import logging

from mcp import ClientSession
from mcp.client.streamable_http import streamablehttp_client

from tools import Tool

logger = logging.getLogger(__name__)


async def discover_remote_tools(servers: list[dict]) -> list[Tool]:
    """List the tools of every reachable server. Unreachable servers are logged and skipped."""
    discovered = []
    for server in servers or []:
        url = server.get("url")
        name = server.get("name") or url
        if not url:
            logger.warning("Skipping MCP server %s: no url configured", name)
            continue
        try:
            tools = await _list_tools(url, server.get("headers"))
        except Exception as e:
            logger.warning("MCP server %s unreachable, skipping: %s", name, e)
            continue

        for remote in tools:
            discovered.append(_wrap(remote, url, server.get("headers")))
        logger.info("Discovered %d tools from MCP server %s", len(tools), name)
    return discovered


async def _list_tools(url: str, headers: dict = None) -> list:
    async with streamablehttp_client(url, headers=headers) as (read, write, _):
        async with ClientSession(read, write) as session:
            await session.initialize()
            result = await session.list_tools()
            return list(result.tools)


def _wrap(remote, url: str, headers: dict = None) -> Tool:
    tool_name = remote.name

    async def call(params: dict, agent) -> dict:
        async with streamablehttp_client(url, headers=headers) as (read, write, _):
            async with ClientSession(read, write) as session:
                await session.initialize()
                result = await session.call_tool(tool_name, params or {})

        text = "\n".join(
            block.text for block in result.content if getattr(block, "type", None) == "text"
        )
        if result.isError:
            return {"error": text or f"Remote tool {tool_name} failed"}
        return {"result": text}

    return Tool(
        name=tool_name,
        description=remote.description or f"Remote tool: {tool_name}",
        parameters=remote.inputSchema or {"type": "object", "properties": {}},
        fn=call,
        remote=True,
    )
