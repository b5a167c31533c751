#!/usr/bin/env python3
"""
Tests for the in-memory cosine vector index
"""
import asyncio

import pytest

from conftest import KeywordEmbedder
from kartbot.errors import ProviderError
from kartbot.models.knowledge import Chunk
from kartbot.rag.vector_index import VectorIndex, cosine


def _chunks():
    return [
        Chunk("opening", "Open 7 days. Hours: 10:00-22:00", "https://x/"),
        Chunk("sessions", "Up to 12 laps per session, 3 sessions per ticket", "https://x/book"),
        Chunk("equipment", "Included: helmet and equipment", "https://x/safety"),
        Chunk("f1", "F1 simulator at Gillingham", "https://x/"),
    ]


def test_cosine_symmetry_and_self_maximum():
    a = [1.0, 2.0, 0.5]
    b = [0.3, -1.0, 4.0]
    assert cosine(a, b) == pytest.approx(cosine(b, a))
    assert cosine(a, a) == pytest.approx(1.0)
    assert cosine(a, a) >= cosine(a, b)


def test_cosine_zero_norm_is_guarded():
    assert cosine([0.0, 0.0], [1.0, 2.0]) == 0.0
    assert cosine([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_cosine_is_not_clamped():
    assert cosine([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_rebuild_uses_one_batched_call():
    embedder = KeywordEmbedder()
    index = VectorIndex(embedder)
    count = asyncio.run(index.rebuild(_chunks()))

    assert count == 4
    assert len(index) == 4
    assert len(embedder.batch_calls) == 1
    assert embedder.batch_calls[0] == [c.text for c in _chunks()]


def test_retrieve_sorted_and_bounded():
    index = VectorIndex(KeywordEmbedder())
    asyncio.run(index.rebuild(_chunks()))

    hits = asyncio.run(index.retrieve("how many laps per session", k=2))
    assert len(hits) <= 2
    assert hits[0].entry.chunk_id == "sessions"
    scores = [h.score for h in hits]
    assert scores == sorted(scores, reverse=True)

    all_hits = asyncio.run(index.retrieve("helmet", k=10))
    assert len(all_hits) == 4


def test_ties_keep_chunk_order():
    index = VectorIndex(KeywordEmbedder())
    asyncio.run(index.rebuild(_chunks()))
    # no vocabulary word: every score is 0.0
    hits = asyncio.run(index.retrieve("zzz", k=4))
    assert [h.entry.chunk_id for h in hits] == ["opening", "sessions", "equipment", "f1"]


def test_empty_index_returns_nothing_without_embedding():
    embedder = KeywordEmbedder()
    index = VectorIndex(embedder)
    assert asyncio.run(index.retrieve("anything", k=5)) == []
    assert embedder.query_calls == []

    asyncio.run(index.rebuild([]))
    assert len(index) == 0
    assert embedder.batch_calls == []


def test_vector_count_mismatch_is_provider_error():
    class ShortEmbedder(KeywordEmbedder):
        async def embed_texts(self, texts):
            return [[1.0]]

    index = VectorIndex(ShortEmbedder())
    with pytest.raises(ProviderError):
        asyncio.run(index.rebuild(_chunks()))
    assert len(index) == 0


def test_failed_rebuild_keeps_previous_entries():
    embedder = KeywordEmbedder()
    index = VectorIndex(embedder)
    asyncio.run(index.rebuild(_chunks()))

    embedder.fail = True
    with pytest.raises(ProviderError):
        asyncio.run(index.rebuild(_chunks()[:1]))
    assert len(index) == 4


def test_reader_during_rebuild_sees_one_generation():
    class SlowEmbedder(KeywordEmbedder):
        async def embed_texts(self, texts):
            await asyncio.sleep(0.01)
            return await super().embed_texts(texts)

    async def scenario():
        index = VectorIndex(SlowEmbedder())
        await index.rebuild(_chunks())

        new_chunks = [Chunk("only", "helmet", "https://x/")]
        rebuild = asyncio.create_task(index.rebuild(new_chunks))
        await asyncio.sleep(0)
        during = await index.retrieve("helmet", k=10)
        await rebuild
        after = await index.retrieve("helmet", k=10)
        return during, after

    during, after = asyncio.run(scenario())
    assert {h.entry.chunk_id for h in during} == {"opening", "sessions", "equipment", "f1"}
    assert [h.entry.chunk_id for h in after] == ["only"]
