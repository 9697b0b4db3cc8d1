"""
Retrieval client for the external document index.

The index itself (chunking, embeddings, similarity) is a separate service;
the agent only needs "find passages relevant to this text". Two
implementations:

- HttpRetrievalClient: POST {"query", "top_k"} to a search endpoint and read
  documents[*].text from the JSON reply.
- NullRetrievalClient: retrieval disabled, always returns nothing.
"""

import logging
from typing import Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


@runtime_checkable
class RetrievalClient(Protocol):
    async def find_relevant(self, query: str, limit: int = 4) -> list[str]:
        ...


class NullRetrievalClient:

    async def find_relevant(self, query: str, limit: int = 4) -> list[str]:
        return []


class HttpRetrievalClient:
    """Search client for a RAG endpoint.

    Errors are raised, not swallowed; callers decide how to degrade.
    """

    def __init__(self, endpoint: str, timeout: float = 10.0, client: httpx.AsyncClient = None):
        if not endpoint:
            raise ValueError("Retrieval endpoint must not be empty")
        self.endpoint = endpoint
        self.timeout = timeout
        self._client = client

    async def find_relevant(self, query: str, limit: int = 4) -> list[str]:
        payload = {"query": query, "top_k": limit}
        if self._client is not None:
            response = await self._client.post(self.endpoint, json=payload, timeout=self.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.endpoint, json=payload, timeout=self.timeout)

        response.raise_for_status()
        documents = response.json().get("documents") or []
        texts = [doc.get("text", "") for doc in documents if isinstance(doc, dict)]
        return [text for text in texts if text][:limit]


def build_retrieval_client(config: dict) -> RetrievalClient:
    """Pick the client for the `rag` config section."""
    rag = config.get("rag", {})
    if rag.get("enabled") and rag.get("endpoint"):
        return HttpRetrievalClient(rag["endpoint"])
    if rag.get("enabled"):
        logger.warning("rag.enabled is set but rag.endpoint is empty; retrieval disabled")
    return NullRetrievalClient()
