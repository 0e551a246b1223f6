import asyncio
import random
import string
from datetime import timedelta

import pytest

from nlq_engine.application.services.cache_service import CacheLayer, derive_cache_key
from nlq_engine.domain.entities import Intent, QueryResult
from nlq_engine.infrastructure.memory.memory_store import InMemoryCacheStore

from conftest import FakeClock


def _result(count: int = 150) -> QueryResult:
    return QueryResult(
        intent=Intent.SQL,
        sql_rows=[{"employee_count": count}],
        generated_sql="SELECT COUNT(*) AS employee_count FROM employees;",
        sources=["database"],
    )


def test_cache_key_is_deterministic_and_fixed_length() -> None:
    first = derive_cache_key("How many employees?", "db-1", "user-1")

    assert first == derive_cache_key("How many employees?", "db-1", "user-1")
    assert len(first) == 64


def test_cache_key_changes_with_each_field() -> None:
    base = derive_cache_key("q", "d", "c")

    assert derive_cache_key("q2", "d", "c") != base
    assert derive_cache_key("q", "d2", "c") != base
    assert derive_cache_key("q", "d", "c2") != base
    assert derive_cache_key("a-b", "c", "x") != derive_cache_key("a", "b-c", "x")


def test_cache_keys_do_not_collide_on_random_sample() -> None:
    rng = random.Random(7)
    alphabet = string.ascii_letters + string.digits + " -"
    tuples = {
        tuple("".join(rng.choices(alphabet, k=rng.randint(0, 12))) for _ in range(3))
        for _ in range(5000)
    }

    keys = {derive_cache_key(*t) for t in tuples}

    assert len(keys) == len(tuples)


@pytest.mark.asyncio
async def test_lookup_returns_stored_result_within_ttl() -> None:
    clock = FakeClock()
    cache = CacheLayer(InMemoryCacheStore(), clock=clock)
    key = derive_cache_key("q", "d", "user-1")

    entry = await cache.store_result(key, "q", "d", "user-1", _result())
    clock.advance(minutes=4, seconds=59)

    assert entry.expires_at == entry.created_at + timedelta(minutes=5)
    assert await cache.lookup(key, "user-1") == _result()


@pytest.mark.asyncio
async def test_expired_entry_is_absent_but_still_stored() -> None:
    clock = FakeClock()
    store = InMemoryCacheStore()
    cache = CacheLayer(store, clock=clock)
    key = derive_cache_key("q", "d", "user-1")

    await cache.store_result(key, "q", "d", "user-1", _result())
    clock.advance(minutes=5, seconds=1)

    assert await cache.lookup(key, "user-1") is None
    assert store.raw(key) is not None

    assert await cache.purge_expired() == 1
    assert store.raw(key) is None


@pytest.mark.asyncio
async def test_lookup_rejects_other_callers() -> None:
    cache = CacheLayer(InMemoryCacheStore(), clock=FakeClock())
    key = derive_cache_key("q", "d", "user-1")

    await cache.store_result(key, "q", "d", "user-1", _result())

    assert await cache.lookup(key, "user-2") is None


@pytest.mark.asyncio
async def test_store_replaces_previous_result_and_resets_hits() -> None:
    store = InMemoryCacheStore()
    cache = CacheLayer(store, clock=FakeClock())
    key = derive_cache_key("q", "d", "user-1")

    await cache.store_result(key, "q", "d", "user-1", _result(150))
    await cache.record_hit(key)
    await cache.store_result(key, "q", "d", "user-1", _result(151))

    assert (await cache.lookup(key, "user-1")).sql_rows == [{"employee_count": 151}]
    assert store.raw(key).hit_count == 0


@pytest.mark.asyncio
async def test_concurrent_hits_are_not_lost() -> None:
    clock = FakeClock()
    store = InMemoryCacheStore()
    cache = CacheLayer(store, clock=clock)
    key = derive_cache_key("q", "d", "user-1")
    await cache.store_result(key, "q", "d", "user-1", _result())

    clock.advance(seconds=30)
    await asyncio.gather(*(cache.record_hit(key) for _ in range(50)))

    entry = store.raw(key)
    assert entry.hit_count == 50
    assert entry.last_accessed_at == clock.now
