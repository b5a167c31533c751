"""
Embedder module for generating OpenAI embeddings.

Uses text-embedding-3-small (configurable) to embed knowledge chunks in a
single batched request, and to embed individual queries at retrieval time.
Any API failure is raised as ProviderError; nothing is retried here.
"""

import logging
from typing import List, Optional, Protocol, runtime_checkable

from openai import AsyncOpenAI, OpenAIError

from kartbot import config
from kartbot.errors import ProviderError

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Anything that can produce embedding vectors from text."""

    async def embed_texts(self, texts: List[str]) -> List[List[float]]: ...

    async def embed_query(self, query: str) -> List[float]: ...


def _get_openai_client() -> AsyncOpenAI:
    """Get an AsyncOpenAI client using the configured API key.

    Raises:
        ValueError: If OPENAI_API_KEY is not set.
    """
    if not config.OPENAI_API_KEY:
        raise ValueError("OPENAI_API_KEY not found in environment or kartbot.config")
    return AsyncOpenAI(api_key=config.OPENAI_API_KEY)


class OpenAIEmbedder:
    """EmbeddingProvider backed by the OpenAI embeddings endpoint."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = config.EMBEDDING_MODEL):
        self.client = client or _get_openai_client()
        self.model = model

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a list of texts in one request.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors, in input order.
        """
        try:
            response = await self.client.embeddings.create(model=self.model, input=texts)
        except OpenAIError as e:
            raise ProviderError(f"Embedding request failed: {e}") from e

        embeddings = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        logger.info(
            f"[EMBEDDER] Generated {len(embeddings)} embeddings ({self.model}), "
            f"usage: {response.usage.total_tokens} tokens"
        )
        return embeddings

    async def embed_query(self, query: str) -> List[float]:
        """Generate an embedding for a single query string."""
        try:
            response = await self.client.embeddings.create(model=self.model, input=query)
        except OpenAIError as e:
            raise ProviderError(f"Query embedding failed: {e}") from e
        return response.data[0].embedding
