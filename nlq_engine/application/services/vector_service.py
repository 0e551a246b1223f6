from typing import List, Optional
import logging

from nlq_engine.domain.interfaces import IVectorStore, IEmbeddingService
from nlq_engine.domain.entities import DocumentMatch, EMBEDDING_DIMENSION
from nlq_engine.domain.exceptions import (
    QueryEngineError,
    EmbeddingProviderUnavailable,
    RetrievalBackendUnavailable
)

logger = logging.getLogger(__name__)


class VectorRetriever:
    """
    Application service for owner-scoped semantic search over document chunks
    """

    def __init__(
        self,
        vector_store: IVectorStore,
        embedding_service: IEmbeddingService,
        threshold: float = 0.7,
        limit: int = 10,
        dimension: int = EMBEDDING_DIMENSION
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.threshold = threshold
        self.limit = limit
        self.dimension = dimension

    async def retrieve(
        self,
        text: str,
        caller_id: str,
        threshold: Optional[float] = None,
        limit: Optional[int] = None
    ) -> List[DocumentMatch]:
        """
        Return chunks owned by the caller whose similarity to the query
        exceeds the threshold, best first. An empty list means nothing
        cleared the threshold; a broken pipeline raises instead.
        """
        threshold = self.threshold if threshold is None else threshold
        limit = self.limit if limit is None else limit

        query_embedding = await self._embed(text)

        try:
            hits = await self.vector_store.search(
                query_embedding,
                threshold,
                limit,
                caller_id
            )
        except QueryEngineError:
            raise
        except Exception as e:
            logger.error(f"Vector search failed: {e}")
            raise RetrievalBackendUnavailable(f"Vector store unavailable: {e}") from e

        relevant = sorted(
            (h for h in hits if h.similarity > threshold),
            key=lambda h: h.similarity,
            reverse=True
        )[:limit]

        if not relevant:
            logger.info(f"No chunks above {threshold} for caller {caller_id}")

        return [
            DocumentMatch(
                chunk_id=h.chunk_id,
                text=h.text,
                similarity=h.similarity,
                source_document=h.source_filename,
                metadata=h.metadata or {}
            )
            for h in relevant
        ]

    async def _embed(self, text: str) -> List[float]:
        try:
            embedding = await self.embedding_service.embed_text(text)
        except QueryEngineError:
            raise
        except Exception as e:
            logger.error(f"Embedding provider failed: {e}")
            raise EmbeddingProviderUnavailable(f"Embedding provider unavailable: {e}") from e

        if len(embedding) != self.dimension:
            raise EmbeddingProviderUnavailable(
                f"Expected {self.dimension}-dimensional embedding, got {len(embedding)}"
            )

        return list(embedding)
