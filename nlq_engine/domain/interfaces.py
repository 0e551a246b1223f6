from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from datetime import datetime

from .entities import SchemaDescriptor, TableDescriptor, VectorHit, DocumentChunk, CacheEntry, QueryRecord


class IEmbeddingService(ABC):
    """Interface for embedding generation"""

    @abstractmethod
    async def embed_text(self, text: str) -> List[float]:
        pass

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        pass


class IVectorStore(ABC):
    """Interface for vector store operations"""

    @abstractmethod
    async def upsert_chunks(self, chunks: List[DocumentChunk], owner_id: str, filename: str) -> None:
        pass

    @abstractmethod
    async def search(
        self,
        embedding: List[float],
        threshold: float,
        limit: int,
        caller_id: str
    ) -> List[VectorHit]:
        pass


class ISchemaCatalog(ABC):
    """Interface for reading previously discovered schemas"""

    @abstractmethod
    async def get_schema(self, dataset_id: str, caller_id: str) -> SchemaDescriptor:
        pass

    @abstractmethod
    async def save_schema(
        self,
        caller_id: str,
        connection_name: str,
        tables: List[TableDescriptor],
        dataset_id: Optional[str] = None
    ) -> SchemaDescriptor:
        pass


class ISchemaDiscovery(ABC):
    """Interface for introspecting a live database"""

    @abstractmethod
    async def discover_tables(self, schema_name: str) -> List[TableDescriptor]:
        pass


class IRelationalExecutor(ABC):
    """Interface for running synthesized statements against the datastore"""

    @abstractmethod
    async def execute(self, sql: str) -> List[Dict[str, Any]]:
        pass


class ICacheStore(ABC):
    """Interface for the query cache backing store"""

    @abstractmethod
    async def get(self, key: str, now: datetime) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    async def upsert(self, entry: CacheEntry) -> None:
        pass

    @abstractmethod
    async def increment_hit(self, key: str, accessed_at: datetime) -> None:
        pass

    @abstractmethod
    async def purge_expired(self, now: datetime) -> int:
        pass


class IHistoryStore(ABC):
    """Interface for the query history log"""

    @abstractmethod
    async def insert(self, record: QueryRecord) -> None:
        pass
