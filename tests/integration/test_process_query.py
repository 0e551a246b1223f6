import asyncio

import pytest

from nlq_engine.application.services.cache_service import derive_cache_key
from nlq_engine.application.services.sql_synthesizer import SQLSynthesizer
from nlq_engine.config import FallbackPolicy
from nlq_engine.domain.entities import Intent
from nlq_engine.domain.exceptions import (
    DatasetNotFound,
    QueryTimeout,
    SQLSynthesisError,
    TotalFailure,
    Unauthorized
)
from nlq_engine.domain.interfaces import ICacheStore, IHistoryStore

from conftest import (
    CALLER,
    DATASET,
    EngineHarness,
    FakeEmbedder,
    FakeExecutor,
    FakeVectorStore,
    employee_schema
)

HYBRID_QUERY = "Employees with Python skills earning over 100k"


class SlowExecutor(FakeExecutor):
    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def execute(self, sql):
        await asyncio.sleep(self.delay)
        return await super().execute(sql)


class BrokenCacheStore(ICacheStore):
    async def get(self, key, now):
        raise ConnectionError("cache table unreachable")

    async def upsert(self, entry):
        raise ConnectionError("cache table unreachable")

    async def increment_hit(self, key, accessed_at):
        raise ConnectionError("cache table unreachable")

    async def purge_expired(self, now):
        raise ConnectionError("cache table unreachable")


class BrokenHistoryStore(IHistoryStore):
    async def insert(self, record):
        raise ConnectionError("history table unreachable")


@pytest.mark.asyncio
async def test_headcount_runs_sql_only(harness) -> None:
    processed = await harness.engine.execute("How many employees do we have?", DATASET, CALLER)

    result = processed.result
    assert result.intent == Intent.SQL
    assert result.sql_rows == [{"employee_count": 150}]
    assert result.document_matches is None
    assert result.generated_sql == "SELECT COUNT(*) AS employee_count FROM employees;"
    assert result.sources == ["database"]
    assert processed.cache_hit is False
    assert harness.embedder.calls == []


@pytest.mark.asyncio
async def test_hybrid_runs_both_legs_with_provenance() -> None:
    harness = EngineHarness(executor=FakeExecutor(rows=[
        {"full_name": "Sarah Johnson", "annual_salary": 125000.0},
        {"full_name": "Mike Chen", "annual_salary": 110000.0},
    ]))

    processed = await harness.engine.execute(HYBRID_QUERY, DATASET, CALLER)

    result = processed.result
    assert result.intent == Intent.HYBRID
    assert len(result.sql_rows) == 2
    assert [m.chunk_id for m in result.document_matches] == ["c1", "c2"]
    assert result.sources == ["database", "resume_alice.pdf", "resume_bob.pdf"]
    assert processed.results_count == 4
    assert "WHERE annual_salary > 100000" in harness.executor.statements[0]


@pytest.mark.asyncio
async def test_document_query_skips_relational_store(harness) -> None:
    processed = await harness.engine.execute("Who has Java certification?", DATASET, CALLER)

    assert processed.result.intent == Intent.DOCUMENT
    assert processed.result.sql_rows is None
    assert harness.executor.statements == []
    assert harness.catalog.calls == 0


@pytest.mark.asyncio
async def test_repeat_within_ttl_is_served_from_cache(harness) -> None:
    first = await harness.engine.execute("How many employees do we have?", DATASET, CALLER)
    harness.clock.advance(seconds=30)

    second = await harness.engine.execute("How many employees do we have?", DATASET, CALLER)

    assert second.cache_hit is True
    assert second.results_count == first.results_count
    assert second.result == first.result
    assert harness.catalog.calls == 1
    assert len(harness.executor.statements) == 1

    key = derive_cache_key("How many employees do we have?", DATASET, CALLER)
    assert harness.cache_store.raw(key).hit_count == 1

    history = harness.history_store.list_recent()
    assert [r.cache_hit for r in history] == [False, True]


@pytest.mark.asyncio
async def test_expired_entry_is_recomputed(harness) -> None:
    await harness.engine.execute("How many employees do we have?", DATASET, CALLER)
    harness.clock.advance(minutes=5, seconds=1)

    again = await harness.engine.execute("How many employees do we have?", DATASET, CALLER)

    assert again.cache_hit is False
    assert len(harness.executor.statements) == 2


@pytest.mark.asyncio
async def test_other_caller_does_not_share_cache() -> None:
    harness = EngineHarness()
    harness.catalog.add("user-2", employee_schema())

    await harness.engine.execute("How many employees do we have?", DATASET, CALLER)
    other = await harness.engine.execute("How many employees do we have?", DATASET, "user-2")

    assert other.cache_hit is False
    assert len(harness.executor.statements) == 2


@pytest.mark.asyncio
async def test_document_leg_failure_degrades_hybrid() -> None:
    harness = EngineHarness(embedder=FakeEmbedder(fail=True))

    processed = await harness.engine.execute(HYBRID_QUERY, DATASET, CALLER)

    assert processed.result.sql_rows == [{"employee_count": 150}]
    assert processed.result.document_matches == []
    assert [w.failed_leg for w in processed.warnings] == ["document"]
    assert harness.cache_store.raw(derive_cache_key(HYBRID_QUERY, DATASET, CALLER)) is None
    assert harness.history_store.list_recent()[-1].status == "partial"


@pytest.mark.asyncio
async def test_both_legs_failing_is_total_failure() -> None:
    harness = EngineHarness(
        executor=FakeExecutor(fail=True),
        vector_store=FakeVectorStore(fail=True)
    )

    with pytest.raises(TotalFailure):
        await harness.engine.execute(HYBRID_QUERY, DATASET, CALLER)

    record = harness.history_store.list_recent()[-1]
    assert record.status == "error"
    assert record.result_count == 0


@pytest.mark.asyncio
async def test_unknown_dataset_is_reported(harness) -> None:
    with pytest.raises(DatasetNotFound):
        await harness.engine.execute("How many employees do we have?", "db-404", CALLER)


@pytest.mark.asyncio
async def test_dataset_of_another_caller_is_not_found(harness) -> None:
    with pytest.raises(DatasetNotFound):
        await harness.engine.execute("How many employees do we have?", DATASET, "user-2")


@pytest.mark.asyncio
@pytest.mark.parametrize("caller", ["", "   "])
async def test_missing_caller_touches_nothing(harness, caller) -> None:
    with pytest.raises(Unauthorized):
        await harness.engine.execute(HYBRID_QUERY, DATASET, caller)

    assert harness.catalog.calls == 0
    assert harness.executor.statements == []
    assert harness.embedder.calls == []
    assert harness.history_store.list_recent() == []


@pytest.mark.asyncio
async def test_timeout_skips_cache_and_history() -> None:
    harness = EngineHarness(executor=SlowExecutor(delay=1.0), timeout=0.05)

    with pytest.raises(QueryTimeout):
        await harness.engine.execute("How many employees do we have?", DATASET, CALLER)

    key = derive_cache_key("How many employees do we have?", DATASET, CALLER)
    assert harness.cache_store.raw(key) is None
    assert harness.history_store.list_recent() == []


@pytest.mark.asyncio
async def test_cancellation_skips_cache_and_history() -> None:
    harness = EngineHarness(executor=SlowExecutor(delay=1.0))

    task = asyncio.create_task(
        harness.engine.execute(HYBRID_QUERY, DATASET, CALLER)
    )
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert harness.cache_store.raw(derive_cache_key(HYBRID_QUERY, DATASET, CALLER)) is None
    assert harness.history_store.list_recent() == []


@pytest.mark.asyncio
async def test_cache_outage_does_not_fail_the_query(harness) -> None:
    harness.engine.cache.store = BrokenCacheStore()

    processed = await harness.engine.execute("How many employees do we have?", DATASET, CALLER)

    assert processed.cache_hit is False
    assert processed.result.sql_rows == [{"employee_count": 150}]


@pytest.mark.asyncio
async def test_history_outage_does_not_fail_the_query(harness) -> None:
    harness.engine.history.store = BrokenHistoryStore()

    processed = await harness.engine.execute("How many employees do we have?", DATASET, CALLER)

    assert processed.results_count == 1


@pytest.mark.asyncio
async def test_without_relational_database_hybrid_keeps_documents() -> None:
    harness = EngineHarness()
    harness.engine.executor = None

    processed = await harness.engine.execute(HYBRID_QUERY, DATASET, CALLER)

    assert processed.result.sql_rows == []
    assert len(processed.result.document_matches) == 2
    assert [w.failed_leg for w in processed.warnings] == ["sql"]


@pytest.mark.asyncio
async def test_without_relational_database_sql_query_fails_cleanly() -> None:
    harness = EngineHarness()
    harness.engine.executor = None

    with pytest.raises(TotalFailure):
        await harness.engine.execute("How many employees do we have?", DATASET, CALLER)


@pytest.mark.asyncio
async def test_strict_policy_surfaces_synthesis_error(harness) -> None:
    harness.engine.synthesizer = SQLSynthesizer(fallback_policy=FallbackPolicy.STRICT)

    with pytest.raises(SQLSynthesisError):
        await harness.engine.execute("tell me something", DATASET, CALLER)

    assert harness.executor.statements == []
    assert harness.history_store.list_recent()[-1].status == "error"
