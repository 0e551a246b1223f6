from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from nlq_engine.application.services.cache_service import CacheLayer
from nlq_engine.application.services.history_service import HistoryRecorder
from nlq_engine.application.services.vector_service import VectorRetriever
from nlq_engine.application.use_cases.process_query import ProcessQueryUseCase
from nlq_engine.domain.entities import (
    ColumnDescriptor,
    Relationship,
    SchemaDescriptor,
    TableDescriptor,
    VectorHit,
    EMBEDDING_DIMENSION
)
from nlq_engine.domain.exceptions import EmbeddingProviderUnavailable, RetrievalBackendUnavailable
from nlq_engine.domain.interfaces import IEmbeddingService, IRelationalExecutor, IVectorStore
from nlq_engine.infrastructure.memory.memory_store import (
    InMemoryCacheStore,
    InMemoryHistoryStore,
    InMemorySchemaCatalog
)

CALLER = "user-1"
DATASET = "db-1"


def employee_schema(database_id: str = DATASET) -> SchemaDescriptor:
    employees = TableDescriptor(
        name="employees",
        purpose="employee_data",
        columns=[
            ColumnDescriptor("emp_id", "integer", False, True, False),
            ColumnDescriptor("full_name", "varchar", False, False, False),
            ColumnDescriptor("dept_id", "integer", True, False, True, "departments", "dept_id"),
            ColumnDescriptor("position", "varchar", True, False, False),
            ColumnDescriptor("annual_salary", "decimal", True, False, False),
            ColumnDescriptor("join_date", "date", True, False, False),
        ],
        relationships=[Relationship("foreign_key", "dept_id", "departments", "dept_id")],
        sample_row_count=150,
    )
    departments = TableDescriptor(
        name="departments",
        purpose="organizational_structure",
        columns=[
            ColumnDescriptor("dept_id", "integer", False, True, False),
            ColumnDescriptor("dept_name", "varchar", False, False, False),
        ],
        sample_row_count=12,
    )
    return SchemaDescriptor(database_id=database_id, tables=[employees, departments])


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeEmbedder(IEmbeddingService):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[str] = []
        self.batches: List[int] = []

    async def embed_text(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingProviderUnavailable("embedding provider is down")
        return [1.0] + [0.0] * (EMBEDDING_DIMENSION - 1)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batches.append(len(texts))
        return [await self.embed_text(t) for t in texts]


class FakeVectorStore(IVectorStore):
    def __init__(self, hits: List[VectorHit] = None, fail: bool = False):
        self.hits = hits or []
        self.fail = fail
        self.calls: List[Dict[str, Any]] = []
        self.upserts: List[Dict[str, Any]] = []

    async def upsert_chunks(self, chunks, owner_id, filename) -> None:
        if self.fail:
            raise RetrievalBackendUnavailable("vector store unreachable")
        self.upserts.append({"chunks": list(chunks), "owner_id": owner_id, "filename": filename})

    async def search(self, embedding, threshold, limit, caller_id) -> List[VectorHit]:
        self.calls.append({"threshold": threshold, "limit": limit, "caller_id": caller_id})
        if self.fail:
            raise RetrievalBackendUnavailable("vector store unreachable")
        return [h for h in self.hits if h.metadata.get("owner") in (None, caller_id)]


class FakeExecutor(IRelationalExecutor):
    def __init__(self, rows: List[Dict[str, Any]] = None, fail: bool = False):
        self.rows = rows if rows is not None else [{"employee_count": 150}]
        self.fail = fail
        self.statements: List[str] = []

    async def execute(self, sql: str) -> List[Dict[str, Any]]:
        self.statements.append(sql)
        if self.fail:
            raise RetrievalBackendUnavailable("relational store unreachable")
        return list(self.rows)


class CountingCatalog(InMemorySchemaCatalog):
    def __init__(self):
        super().__init__()
        self.calls = 0

    async def get_schema(self, dataset_id: str, caller_id: str) -> SchemaDescriptor:
        self.calls += 1
        return await super().get_schema(dataset_id, caller_id)


def make_hit(chunk_id: str, similarity: float, filename: str = "resume_alice.pdf") -> VectorHit:
    return VectorHit(
        chunk_id=chunk_id,
        document_id=f"doc-{filename}",
        text=f"{filename}: 6 years of Python experience",
        similarity=similarity,
        metadata={},
        source_filename=filename,
    )


class EngineHarness:
    """Engine wired to deterministic fakes, with handles on each fake"""

    def __init__(self, executor=None, embedder=None, vector_store=None, timeout=None):
        self.clock = FakeClock()
        self.catalog = CountingCatalog()
        self.catalog.add(CALLER, employee_schema())
        self.executor = executor or FakeExecutor()
        self.embedder = embedder or FakeEmbedder()
        self.vector_store = vector_store or FakeVectorStore(
            hits=[make_hit("c1", 0.91), make_hit("c2", 0.82, "resume_bob.pdf")]
        )
        self.cache_store = InMemoryCacheStore()
        self.history_store = InMemoryHistoryStore()
        self.engine = ProcessQueryUseCase(
            schema_catalog=self.catalog,
            executor=self.executor,
            retriever=VectorRetriever(self.vector_store, self.embedder),
            cache=CacheLayer(self.cache_store, clock=self.clock),
            history=HistoryRecorder(self.history_store),
            timeout=timeout,
        )


@pytest.fixture
def harness() -> EngineHarness:
    return EngineHarness()


@pytest.fixture
def schema() -> SchemaDescriptor:
    return employee_schema()
