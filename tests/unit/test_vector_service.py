from typing import List

import pytest

from nlq_engine.application.services.vector_service import VectorRetriever
from nlq_engine.domain.exceptions import EmbeddingProviderUnavailable, RetrievalBackendUnavailable
from nlq_engine.domain.interfaces import IEmbeddingService

from conftest import FakeEmbedder, FakeVectorStore, make_hit


class BrokenEmbedder(IEmbeddingService):
    async def embed_text(self, text: str) -> List[float]:
        raise ConnectionError("model server refused connection")

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        raise ConnectionError("model server refused connection")


class ShortEmbedder(FakeEmbedder):
    async def embed_text(self, text: str) -> List[float]:
        return [0.5, 0.5]


@pytest.mark.asyncio
async def test_matches_above_threshold_sorted_and_truncated() -> None:
    store = FakeVectorStore(hits=[
        make_hit("low", 0.65),
        make_hit("mid", 0.8, "b.pdf"),
        make_hit("edge", 0.7),
        make_hit("top", 0.95, "c.pdf"),
        make_hit("high", 0.9),
    ])
    retriever = VectorRetriever(store, FakeEmbedder())

    matches = await retriever.retrieve("python experience", "user-1", limit=2)

    assert [m.chunk_id for m in matches] == ["top", "high"]
    assert matches[0].source_document == "c.pdf"
    assert store.calls == [{"threshold": 0.7, "limit": 2, "caller_id": "user-1"}]


@pytest.mark.asyncio
async def test_nothing_above_threshold_is_empty_not_error() -> None:
    retriever = VectorRetriever(FakeVectorStore(hits=[make_hit("c1", 0.3)]), FakeEmbedder())

    assert await retriever.retrieve("python", "user-1") == []


@pytest.mark.asyncio
async def test_provider_failure_is_distinct_from_no_results() -> None:
    retriever = VectorRetriever(FakeVectorStore(), BrokenEmbedder())

    with pytest.raises(EmbeddingProviderUnavailable):
        await retriever.retrieve("python", "user-1")


@pytest.mark.asyncio
async def test_wrong_dimension_counts_as_provider_failure() -> None:
    retriever = VectorRetriever(FakeVectorStore(), ShortEmbedder())

    with pytest.raises(EmbeddingProviderUnavailable):
        await retriever.retrieve("python", "user-1")


@pytest.mark.asyncio
async def test_store_failure_propagates_as_backend_unavailable() -> None:
    retriever = VectorRetriever(FakeVectorStore(fail=True), FakeEmbedder())

    with pytest.raises(RetrievalBackendUnavailable):
        await retriever.retrieve("python", "user-1")
