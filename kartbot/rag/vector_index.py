"""
In-memory vector index over knowledge chunks.

Holds one embedding per chunk and answers "k nearest chunks to a query" by
cosine similarity. The index is rebuilt from scratch whenever the snapshot
changes; the new entries are published with a single assignment so a
reader either sees the old generation or the new one, never a mix.
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np

from kartbot.errors import ProviderError
from kartbot.models.knowledge import Chunk, ScoredEntry, VectorEntry
from kartbot.rag.embedder import EmbeddingProvider

logger = logging.getLogger(__name__)


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class VectorIndex:
    """Cosine k-NN index with whole-value replacement on rebuild."""

    def __init__(self, embedder: EmbeddingProvider):
        self.embedder = embedder
        self._entries: Tuple[VectorEntry, ...] = ()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[VectorEntry, ...]:
        return self._entries

    async def build(self, chunks: List[Chunk]) -> Tuple[VectorEntry, ...]:
        """Embed chunks into a new set of entries without publishing it.

        Raises:
            ProviderError: If embedding fails or returns the wrong number of vectors.
        """
        if not chunks:
            return ()
        vectors = await self.embedder.embed_texts([c.text for c in chunks])
        if len(vectors) != len(chunks):
            raise ProviderError(
                f"Embedding provider returned {len(vectors)} vectors for {len(chunks)} chunks"
            )
        return tuple(
            VectorEntry(chunk_id=c.id, embedding=np.asarray(v, dtype=np.float64), chunk=c)
            for c, v in zip(chunks, vectors)
        )

    def publish(self, entries: Tuple[VectorEntry, ...]) -> None:
        self._entries = entries
        logger.info(f"[VECTOR_INDEX] Published {len(entries)} entries")

    async def rebuild(self, chunks: List[Chunk]) -> int:
        """Embed all chunks in one batch and swap them in atomically.

        Args:
            chunks: The complete chunk set of the new snapshot.

        Returns:
            Number of entries now in the index.
        """
        entries = await self.build(chunks)
        self.publish(entries)
        return len(entries)

    async def retrieve(self, query: str, k: int = 5) -> List[ScoredEntry]:
        """Return the k entries most similar to the query.

        Args:
            query: Free text to embed and compare.
            k: Maximum number of entries to return.

        Returns:
            Up to k scored entries by descending score, ties in chunk order.
            Empty (and no embedding call) when the index is empty.
        """
        entries = self._entries
        if not entries or k <= 0:
            return []

        query_vector = np.asarray(await self.embedder.embed_query(query), dtype=np.float64)
        scored = [ScoredEntry(entry=e, score=cosine(query_vector, e.embedding)) for e in entries]
        # sorted() is stable, so equal scores keep chunk order
        ranked = sorted(scored, key=lambda s: s.score, reverse=True)[:k]

        logger.info(
            f"[VECTOR_INDEX] Retrieved {len(ranked)}/{len(entries)} entries "
            f"for query: {query[:80]!r}"
        )
        return ranked
