"""Knowledge base search over the retrieval backend."""

import logging

from tools import tool, tool_error

logger = logging.getLogger(__name__)


@tool
async def search_knowledge(query: str, limit: int = 4, agent=None):
    """Search the knowledge base for information from past channel discussions and documentation.

    Args:
        query: What to look for
        limit: Maximum number of passages to return (default 4)
    """
    logger.info("Agent searching knowledge base for: %s", query)
    try:
        passages = await agent.retrieval.find_relevant(query, limit)
    except Exception as e:
        logger.warning("Knowledge search failed: %s", e)
        return tool_error(f"Knowledge search failed: {e}")

    if not passages:
        return f"No relevant information found in the knowledge base for: {query}"
    return "\n---\n".join(passages)
