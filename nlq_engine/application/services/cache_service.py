import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from nlq_engine.domain.entities import CacheEntry, QueryResult
from nlq_engine.domain.interfaces import ICacheStore

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def derive_cache_key(query_text: str, dataset_id: str, caller_id: str) -> str:
    """
    Deterministic 64-character key for a (query, dataset, caller) tuple.
    Fields are length-prefixed so ("a-b", "c") and ("a", "b-c") never collide.
    """
    parts = [query_text or "", dataset_id or "", caller_id or ""]
    payload = "".join(f"{len(p)}:{p}" for p in parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CacheLayer:
    """
    Application service for time-bounded result caching with hit accounting
    """

    def __init__(
        self,
        store: ICacheStore,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    async def lookup(self, key: str, caller_id: str) -> Optional[QueryResult]:
        """
        Return the cached result if it is unexpired and owned by the caller
        """
        now = self.clock()
        entry = await self.store.get(key, now)

        if entry is None or entry.is_expired(now):
            return None

        if entry.caller_id != caller_id:
            logger.warning(f"Cache entry {key[:12]} belongs to another caller, ignoring")
            return None

        return entry.result

    async def store_result(
        self,
        key: str,
        query_text: str,
        dataset_id: str,
        caller_id: str,
        result: QueryResult,
        ttl: Optional[timedelta] = None
    ) -> CacheEntry:
        """Upsert a freshly computed result; replaces any older entry for the key"""
        now = self.clock()
        entry = CacheEntry(
            key=key,
            query_text=query_text,
            dataset_id=dataset_id,
            caller_id=caller_id,
            result=result,
            created_at=now,
            expires_at=now + (ttl or self.ttl),
            hit_count=0,
            last_accessed_at=now
        )
        await self.store.upsert(entry)
        return entry

    async def record_hit(self, key: str) -> None:
        await self.store.increment_hit(key, self.clock())

    async def purge_expired(self) -> int:
        """Delete expired rows; lookups already ignore them"""
        removed = await self.store.purge_expired(self.clock())
        logger.info(f"Purged {removed} expired cache entries")
        return removed
