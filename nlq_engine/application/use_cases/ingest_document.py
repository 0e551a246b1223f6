import hashlib
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from nlq_engine.application.services.chunking_service import DocumentChunker, TextChunk, file_type_of
from nlq_engine.domain.entities import DocumentChunk, EMBEDDING_DIMENSION
from nlq_engine.domain.exceptions import (
    QueryEngineError,
    Unauthorized,
    EmbeddingProviderUnavailable,
    RetrievalBackendUnavailable
)
from nlq_engine.domain.interfaces import IVectorStore, IEmbeddingService

logger = logging.getLogger(__name__)


class IngestDocumentUseCase:
    """
    Use case for turning a document's extracted text into owner-scoped,
    embedded chunks in the vector store
    """

    def __init__(
        self,
        vector_store: IVectorStore,
        embedding_service: IEmbeddingService,
        chunker: Optional[DocumentChunker] = None,
        batch_size: int = 64
    ):
        self.vector_store = vector_store
        self.embedding_service = embedding_service
        self.chunker = chunker or DocumentChunker()
        self.batch_size = batch_size

    async def ingest(
        self,
        caller_id: str,
        filename: str,
        content: str,
        document_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Chunk, embed and store one document. Passing an existing document_id
        replaces that document's chunks.
        """
        if not caller_id or not caller_id.strip():
            raise Unauthorized("A caller identity is required")

        start_time = datetime.now()
        document_id = document_id or str(uuid.uuid4())
        file_type = file_type_of(filename)

        logger.info(f"Starting ingestion of '{filename}' ({file_type}) for caller {caller_id}")

        pieces = self.chunker.chunk(content, file_type)
        if not pieces:
            logger.warning(f"No text to ingest in '{filename}'")
            return {
                "status": "completed",
                "document_id": document_id,
                "filename": filename,
                "chunks": 0,
                "duration": 0
            }

        embeddings = await self._embed(pieces)
        chunks = [
            DocumentChunk(
                id=hashlib.md5(f"{document_id}:{piece.index}".encode()).hexdigest(),
                document_id=document_id,
                text=piece.text,
                index=piece.index,
                embedding=embedding,
                metadata={**piece.metadata, "file_type": file_type}
            )
            for piece, embedding in zip(pieces, embeddings)
        ]

        try:
            await self.vector_store.upsert_chunks(chunks, caller_id, filename)
        except (QueryEngineError, ValueError):
            raise
        except Exception as e:
            logger.error(f"Error storing chunks for '{filename}': {e}")
            raise RetrievalBackendUnavailable(f"Vector store unavailable: {e}") from e

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(f"Ingested '{filename}': {len(chunks)} chunks in {duration:.2f}s")

        return {
            "status": "completed",
            "document_id": document_id,
            "filename": filename,
            "chunks": len(chunks),
            "duration": duration
        }

    async def _embed(self, pieces: List[TextChunk]) -> List[List[float]]:
        """Embed chunk texts in batches"""
        texts = [p.text for p in pieces]
        embeddings: List[List[float]] = []

        try:
            for i in range(0, len(texts), self.batch_size):
                embeddings.extend(await self.embedding_service.embed_batch(texts[i:i + self.batch_size]))
        except QueryEngineError:
            raise
        except Exception as e:
            logger.error(f"Embedding provider failed during ingestion: {e}")
            raise EmbeddingProviderUnavailable(f"Embedding provider unavailable: {e}") from e

        if len(embeddings) != len(texts) or any(len(e) != EMBEDDING_DIMENSION for e in embeddings):
            raise EmbeddingProviderUnavailable(
                f"Expected {len(texts)} embeddings of {EMBEDDING_DIMENSION} dimensions"
            )

        return embeddings
