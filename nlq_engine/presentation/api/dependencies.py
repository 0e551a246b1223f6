import os
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Header

from nlq_engine.config import EngineSettings
from nlq_engine.domain.interfaces import ICacheStore, IHistoryStore, ISchemaCatalog
from nlq_engine.infrastructure.database.postgres_repository import PostgresRepository
from nlq_engine.infrastructure.database.postgres_query_store import (
    PostgresSchemaCatalog,
    PostgresCacheStore,
    PostgresHistoryStore
)
from nlq_engine.infrastructure.memory.memory_store import (
    InMemoryCacheStore,
    InMemoryHistoryStore,
    InMemorySchemaCatalog
)
from nlq_engine.infrastructure.vector_store.chroma_repository import ChromaRepository
from nlq_engine.infrastructure.embedding.sentence_transformer import SentenceTransformerEmbedder
from nlq_engine.application.services.cache_service import CacheLayer
from nlq_engine.application.services.classifier_service import QueryClassifier
from nlq_engine.application.services.history_service import HistoryRecorder
from nlq_engine.application.services.schema_service import SchemaService
from nlq_engine.application.services.sql_synthesizer import SQLSynthesizer
from nlq_engine.application.services.vector_service import VectorRetriever
from nlq_engine.application.use_cases.ingest_document import IngestDocumentUseCase
from nlq_engine.application.use_cases.process_query import ProcessQueryUseCase


def use_memory_stores() -> bool:
    return os.getenv("STORE_BACKEND", "postgres").lower() == "memory"


# Cache instances for better performance
@lru_cache()
def get_settings() -> EngineSettings:
    """Get engine settings from the environment"""
    return EngineSettings.from_env()


@lru_cache()
def get_relational_repository() -> Optional[PostgresRepository]:
    """PostgreSQL repository for the queried database, if DATABASE_URL is set"""
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        return None
    return PostgresRepository(db_url)


def get_postgres_repository() -> PostgresRepository:
    """PostgreSQL repository backing the engine's own stores"""
    repository = get_relational_repository()
    if repository is None:
        raise ValueError("DATABASE_URL is not configured")
    return repository


@lru_cache()
def get_schema_catalog() -> ISchemaCatalog:
    if use_memory_stores():
        return InMemorySchemaCatalog()
    return PostgresSchemaCatalog(get_postgres_repository())


@lru_cache()
def get_cache_store() -> ICacheStore:
    if use_memory_stores():
        return InMemoryCacheStore()
    return PostgresCacheStore(get_postgres_repository())


@lru_cache()
def get_history_store() -> IHistoryStore:
    if use_memory_stores():
        return InMemoryHistoryStore()
    return PostgresHistoryStore(get_postgres_repository())


@lru_cache()
def get_vector_store() -> ChromaRepository:
    """Get vector store instance"""
    path = os.getenv("VECTOR_DB_PATH", "./vector_db_data")
    return ChromaRepository(path)


@lru_cache()
def get_embedding_service() -> SentenceTransformerEmbedder:
    """Get embedding service instance"""
    model = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")
    return SentenceTransformerEmbedder(model)


def get_cache_layer() -> CacheLayer:
    settings = get_settings()
    return CacheLayer(
        store=get_cache_store(),
        ttl=timedelta(seconds=settings.cache_ttl_seconds)
    )


def get_process_query_use_case() -> ProcessQueryUseCase:
    """Get the hybrid query engine"""
    settings = get_settings()
    return ProcessQueryUseCase(
        schema_catalog=get_schema_catalog(),
        executor=get_relational_repository(),
        retriever=VectorRetriever(
            vector_store=get_vector_store(),
            embedding_service=get_embedding_service(),
            threshold=settings.match_threshold,
            limit=settings.match_count
        ),
        cache=get_cache_layer(),
        history=HistoryRecorder(get_history_store()),
        classifier=QueryClassifier(),
        synthesizer=SQLSynthesizer(
            fallback_policy=settings.sql_fallback_policy,
            primary_table=settings.primary_table
        ),
        timeout=settings.query_timeout_seconds
    )


def get_ingest_use_case() -> IngestDocumentUseCase:
    """Get document ingestion use case"""
    return IngestDocumentUseCase(
        vector_store=get_vector_store(),
        embedding_service=get_embedding_service()
    )


def get_schema_service() -> SchemaService:
    """Get schema service instance"""
    return SchemaService(get_schema_catalog(), get_relational_repository())


async def get_caller_id(x_caller_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """
    Caller identity as established by the upstream gateway.
    Validation happens in the use cases so a missing identity is rejected
    before any backend is touched.
    """
    return x_caller_id.strip() if x_caller_id else None
