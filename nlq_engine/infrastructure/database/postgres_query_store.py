import asyncio
import logging
import uuid
from datetime import datetime
from typing import List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor, Json

from nlq_engine.domain.entities import (
    SchemaDescriptor,
    TableDescriptor,
    CacheEntry,
    QueryResult,
    QueryRecord
)
from nlq_engine.domain.exceptions import DatasetNotFound, RetrievalBackendUnavailable
from nlq_engine.domain.interfaces import ISchemaCatalog, ICacheStore, IHistoryStore
from nlq_engine.infrastructure.database.postgres_repository import PostgresRepository

logger = logging.getLogger(__name__)


class PostgresSchemaCatalog(ISchemaCatalog):
    """
    Schema catalog over the discovered_databases table.
    Rows are owned by the caller that ran discovery.
    """

    def __init__(self, db: PostgresRepository):
        self.db = db

    async def get_schema(self, dataset_id: str, caller_id: str) -> SchemaDescriptor:
        try:
            row = await asyncio.to_thread(self._get_sync, dataset_id, caller_id)
        except psycopg2.Error as e:
            raise RetrievalBackendUnavailable(f"Schema catalog unavailable: {e}") from e

        if row is None:
            raise DatasetNotFound(dataset_id)

        data = dict(row["schema_data"] or {})
        data["database_id"] = str(row["id"])
        return SchemaDescriptor.from_dict(data)

    def _get_sync(self, dataset_id: str, caller_id: str):
        query = """
            SELECT id, schema_data
            FROM discovered_databases
            WHERE id::text = %s AND user_id = %s AND status = 'active';
        """
        with self.db.get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, (dataset_id, caller_id))
                return cur.fetchone()

    async def save_schema(
        self,
        caller_id: str,
        connection_name: str,
        tables: List[TableDescriptor],
        dataset_id: Optional[str] = None
    ) -> SchemaDescriptor:
        schema = SchemaDescriptor(database_id=dataset_id or str(uuid.uuid4()), tables=tables)
        try:
            saved = await asyncio.to_thread(self._save_sync, caller_id, connection_name, schema, dataset_id is not None)
        except psycopg2.Error as e:
            raise RetrievalBackendUnavailable(f"Schema catalog unavailable: {e}") from e

        if not saved:
            raise DatasetNotFound(schema.database_id)
        return schema

    def _save_sync(self, caller_id: str, connection_name: str, schema: SchemaDescriptor, replace: bool) -> bool:
        with self.db.get_connection() as conn:
            with conn.cursor() as cur:
                if replace:
                    cur.execute(
                        """
                        UPDATE discovered_databases
                        SET schema_data = %s, connection_name = %s,
                            last_analyzed = NOW(), updated_at = NOW()
                        WHERE id::text = %s AND user_id = %s;
                        """,
                        (Json(schema.to_dict()), connection_name, schema.database_id, caller_id)
                    )
                else:
                    cur.execute(
                        """
                        INSERT INTO discovered_databases (id, user_id, connection_name, schema_data)
                        VALUES (%s, %s, %s, %s);
                        """,
                        (schema.database_id, caller_id, connection_name, Json(schema.to_dict()))
                    )
                saved = cur.rowcount > 0
            conn.commit()
        return saved


class PostgresCacheStore(ICacheStore):
    """
    Query cache over the query_cache table. Expiry is a read filter;
    hit counting relies on a single UPDATE for atomicity.
    """

    def __init__(self, db: PostgresRepository):
        self.db = db

    async def get(self, key: str, now: datetime) -> Optional[CacheEntry]:
        row = await asyncio.to_thread(self._get_sync, key, now)
        if row is None:
            return None

        return CacheEntry(
            key=row["cache_key"],
            query_text=row["query_text"],
            dataset_id=row["dataset_id"],
            caller_id=row["caller_id"],
            result=QueryResult.from_dict(row["results"]),
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            hit_count=row["hit_count"],
            last_accessed_at=row["last_accessed"]
        )

    def _get_sync(self, key: str, now: datetime):
        query = """
            SELECT cache_key, query_text, dataset_id, caller_id, results,
                   created_at, expires_at, hit_count, last_accessed
            FROM query_cache
            WHERE cache_key = %s AND expires_at > %s;
        """
        with self.db.get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, (key, now))
                return cur.fetchone()

    async def upsert(self, entry: CacheEntry) -> None:
        await asyncio.to_thread(self._upsert_sync, entry)

    def _upsert_sync(self, entry: CacheEntry) -> None:
        query = """
            INSERT INTO query_cache (
                cache_key, query_text, dataset_id, caller_id, results,
                created_at, expires_at, hit_count, last_accessed
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, 0, %s)
            ON CONFLICT (cache_key) DO UPDATE SET
                query_text = EXCLUDED.query_text,
                dataset_id = EXCLUDED.dataset_id,
                caller_id = EXCLUDED.caller_id,
                results = EXCLUDED.results,
                created_at = EXCLUDED.created_at,
                expires_at = EXCLUDED.expires_at,
                hit_count = 0,
                last_accessed = EXCLUDED.last_accessed;
        """
        with self.db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (
                    entry.key,
                    entry.query_text,
                    entry.dataset_id,
                    entry.caller_id,
                    Json(entry.result.to_dict()),
                    entry.created_at,
                    entry.expires_at,
                    entry.last_accessed_at or entry.created_at
                ))
            conn.commit()

    async def increment_hit(self, key: str, accessed_at: datetime) -> None:
        await asyncio.to_thread(self._increment_sync, key, accessed_at)

    def _increment_sync(self, key: str, accessed_at: datetime) -> None:
        with self.db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE query_cache
                    SET hit_count = hit_count + 1, last_accessed = %s
                    WHERE cache_key = %s;
                    """,
                    (accessed_at, key)
                )
            conn.commit()

    async def purge_expired(self, now: datetime) -> int:
        return await asyncio.to_thread(self._purge_sync, now)

    def _purge_sync(self, now: datetime) -> int:
        with self.db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM query_cache WHERE expires_at < %s;", (now,))
                removed = cur.rowcount
            conn.commit()
        return removed


class PostgresHistoryStore(IHistoryStore):
    """Append-only query log over the query_history table"""

    def __init__(self, db: PostgresRepository):
        self.db = db

    async def insert(self, record: QueryRecord) -> None:
        await asyncio.to_thread(self._insert_sync, record)

    def _insert_sync(self, record: QueryRecord) -> None:
        query = """
            INSERT INTO query_history (
                user_id, dataset_id, query_text, query_type, generated_sql,
                result_count, response_time_ms, cache_hit, sources,
                status, error_message, created_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s);
        """
        with self.db.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (
                    record.caller_id,
                    record.dataset_id,
                    record.query_text,
                    record.intent.value if record.intent else None,
                    record.generated_sql,
                    record.result_count,
                    record.response_time_ms,
                    record.cache_hit,
                    sorted(record.sources),
                    record.status,
                    record.error_message,
                    record.timestamp
                ))
            conn.commit()
