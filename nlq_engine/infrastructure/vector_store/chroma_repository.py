import asyncio
import chromadb
from chromadb.config import Settings as ChromaSettings
from typing import List, Optional
import logging

from nlq_engine.domain.interfaces import IVectorStore
from nlq_engine.domain.entities import DocumentChunk, VectorHit

logger = logging.getLogger(__name__)

DEFAULT_COLLECTION = "document_chunks"


class ChromaRepository(IVectorStore):
    """
    Repository for document chunk embeddings in ChromaDB.
    Every chunk carries its owner so searches can be scoped per caller.
    """

    def __init__(
        self,
        persist_path: Optional[str] = None,
        collection_name: str = DEFAULT_COLLECTION,
        client=None
    ):
        if client is None:
            client = chromadb.PersistentClient(
                path=persist_path,
                settings=ChromaSettings(anonymized_telemetry=False)
            )
        self.client = client
        self.collection_name = collection_name
        self.collection = self.client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"}
        )
        logger.info(f"Initialized ChromaDB collection '{collection_name}'")

    async def upsert_chunks(
        self,
        chunks: List[DocumentChunk],
        owner_id: str,
        filename: str
    ) -> None:
        """
        Store every chunk of one or more documents owned by owner_id.
        Each document must arrive whole in a single call: its indices run
        0..n-1, and chunks stored for it earlier are replaced.
        """
        if not chunks:
            return

        self._check_contiguous(chunks)

        for document_id in sorted({c.document_id for c in chunks}):
            await asyncio.to_thread(
                self.collection.delete,
                where={"$and": [{"owner_id": owner_id}, {"document_id": document_id}]}
            )

        ids = []
        contents = []
        metadatas = []
        embeddings = []

        for chunk in chunks:
            ids.append(chunk.id)
            contents.append(chunk.text)

            # Chroma rejects None metadata values
            clean_metadata = {k: v for k, v in (chunk.metadata or {}).items() if v is not None}
            clean_metadata.update({
                "owner_id": owner_id,
                "document_id": chunk.document_id,
                "chunk_index": chunk.index,
                "filename": filename
            })
            metadatas.append(clean_metadata)
            embeddings.append(chunk.embedding)

        await asyncio.to_thread(
            self.collection.upsert,
            ids=ids,
            documents=contents,
            metadatas=metadatas,
            embeddings=embeddings
        )

        logger.info(f"Upserted {len(chunks)} chunks for '{filename}'")

    async def search(
        self,
        embedding: List[float],
        threshold: float,
        limit: int,
        caller_id: str
    ) -> List[VectorHit]:
        """Search chunks owned by caller_id whose similarity exceeds threshold"""
        try:
            return await asyncio.to_thread(self._search_sync, embedding, threshold, limit, caller_id)
        except Exception as e:
            logger.error(f"Error searching collection '{self.collection_name}': {e}")
            raise

    def _search_sync(
        self,
        embedding: List[float],
        threshold: float,
        limit: int,
        caller_id: str
    ) -> List[VectorHit]:
        total = self.collection.count()
        if total == 0:
            logger.warning(f"Collection '{self.collection_name}' is empty")
            return []

        results = self.collection.query(
            query_embeddings=[embedding],
            n_results=min(limit, total),
            where={"owner_id": caller_id},
            include=['metadatas', 'documents', 'distances']
        )

        hits = []
        if results['ids'] and results['ids'][0]:
            for i in range(len(results['ids'][0])):
                metadata = dict(results['metadatas'][0][i] or {})

                # Convert distance to similarity score (1 - distance for cosine)
                similarity = 1.0 - results['distances'][0][i]
                if similarity <= threshold:
                    continue

                hits.append(VectorHit(
                    chunk_id=results['ids'][0][i],
                    document_id=str(metadata.pop("document_id", "")),
                    text=results['documents'][0][i],
                    similarity=similarity,
                    metadata={k: v for k, v in metadata.items() if k != "owner_id"},
                    source_filename=str(metadata.get("filename", ""))
                ))

        return sorted(hits, key=lambda h: h.similarity, reverse=True)

    @staticmethod
    def _check_contiguous(chunks: List[DocumentChunk]) -> None:
        by_document = {}
        for chunk in chunks:
            by_document.setdefault(chunk.document_id, []).append(chunk.index)

        for document_id, indices in by_document.items():
            if sorted(indices) != list(range(len(indices))):
                raise ValueError(
                    f"Chunk indices for document {document_id} must be contiguous from 0"
                )
