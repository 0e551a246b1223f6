import asyncio
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from nlq_engine.domain.entities import (
    CacheEntry,
    QueryRecord,
    SchemaDescriptor,
    TableDescriptor
)
from nlq_engine.domain.exceptions import DatasetNotFound
from nlq_engine.domain.interfaces import ICacheStore, IHistoryStore, ISchemaCatalog

logger = logging.getLogger(__name__)


class InMemoryCacheStore(ICacheStore):
    """Process-local cache store for development and tests"""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str, now: datetime) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(now):
            return None
        return replace(entry)

    async def upsert(self, entry: CacheEntry) -> None:
        async with self._lock:
            self._entries[entry.key] = replace(entry, hit_count=0)

    async def increment_hit(self, key: str, accessed_at: datetime) -> None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return
            entry.hit_count += 1
            entry.last_accessed_at = accessed_at

    async def purge_expired(self, now: datetime) -> int:
        async with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def raw(self, key: str) -> Optional[CacheEntry]:
        """Physical entry regardless of expiry"""
        return self._entries.get(key)


class InMemoryHistoryStore(IHistoryStore):
    """Process-local query log"""

    def __init__(self):
        self._records: List[QueryRecord] = []

    async def insert(self, record: QueryRecord) -> None:
        self._records.append(record)

    def list_recent(self, limit: int = 20) -> List[QueryRecord]:
        return self._records[-limit:]


class InMemorySchemaCatalog(ISchemaCatalog):
    """Schema catalog keyed by (dataset_id, owner)"""

    def __init__(self):
        self._schemas: Dict[Tuple[str, str], SchemaDescriptor] = {}

    def add(self, caller_id: str, schema: SchemaDescriptor) -> None:
        self._schemas[(schema.database_id, caller_id)] = schema

    async def get_schema(self, dataset_id: str, caller_id: str) -> SchemaDescriptor:
        schema = self._schemas.get((dataset_id, caller_id))
        if schema is None:
            raise DatasetNotFound(dataset_id)
        return schema

    async def save_schema(
        self,
        caller_id: str,
        connection_name: str,
        tables: List[TableDescriptor],
        dataset_id: Optional[str] = None
    ) -> SchemaDescriptor:
        if dataset_id is not None and (dataset_id, caller_id) not in self._schemas:
            raise DatasetNotFound(dataset_id)

        schema = SchemaDescriptor(database_id=dataset_id or str(uuid.uuid4()), tables=list(tables))
        self._schemas[(schema.database_id, caller_id)] = schema
        logger.info(f"Stored schema '{connection_name}' as dataset {schema.database_id}")
        return schema
