import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from nlq_engine.application.services.cache_service import CacheLayer, derive_cache_key, utc_now
from nlq_engine.application.services.classifier_service import QueryClassifier
from nlq_engine.application.services.history_service import HistoryRecorder
from nlq_engine.application.services.result_merger import ResultMerger, SQLLegResult
from nlq_engine.application.services.sql_synthesizer import SQLSynthesizer
from nlq_engine.application.services.vector_service import VectorRetriever
from nlq_engine.domain.entities import Intent, QueryResult, QueryRecord
from nlq_engine.domain.exceptions import (
    QueryEngineError,
    Unauthorized,
    RetrievalBackendUnavailable,
    PartialHybridFailure,
    QueryTimeout
)
from nlq_engine.domain.interfaces import ISchemaCatalog, IRelationalExecutor

logger = logging.getLogger(__name__)


@dataclass
class ProcessedQuery:
    """Engine response: the result plus performance metadata"""
    result: QueryResult
    response_time_ms: float
    cache_hit: bool
    results_count: int
    warnings: List[PartialHybridFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.result.to_dict(),
            "performance_metrics": {
                "response_time_ms": self.response_time_ms,
                "cache_hit": self.cache_hit,
                "results_count": self.results_count
            },
            "warnings": [w.to_dict() for w in self.warnings]
        }


class ProcessQueryUseCase:
    """
    Hybrid query pipeline: cache lookup, classification, the relational
    and/or document legs, merge, cache store and history append
    """

    def __init__(
        self,
        schema_catalog: ISchemaCatalog,
        executor: Optional[IRelationalExecutor],
        retriever: VectorRetriever,
        cache: CacheLayer,
        history: HistoryRecorder,
        classifier: Optional[QueryClassifier] = None,
        synthesizer: Optional[SQLSynthesizer] = None,
        merger: Optional[ResultMerger] = None,
        timeout: Optional[float] = None
    ):
        self.schema_catalog = schema_catalog
        self.executor = executor
        self.retriever = retriever
        self.cache = cache
        self.history = history
        self.classifier = classifier or QueryClassifier()
        self.synthesizer = synthesizer or SQLSynthesizer()
        self.merger = merger or ResultMerger()
        self.timeout = timeout

    async def execute(
        self,
        query_text: str,
        dataset_id: str,
        caller_id: str
    ) -> ProcessedQuery:
        """
        Execute the query processing pipeline
        """
        if not caller_id or not caller_id.strip():
            raise Unauthorized("A caller identity is required")

        start_time = time.perf_counter()
        cache_key = derive_cache_key(query_text, dataset_id, caller_id)

        cached = await self._lookup_cache(cache_key, caller_id)
        if cached is not None:
            await self._record_cache_hit(cache_key)
            processed = ProcessedQuery(
                result=cached,
                response_time_ms=self._elapsed_ms(start_time),
                cache_hit=True,
                results_count=cached.results_count
            )
            logger.info(f"Cache hit for caller {caller_id} in {processed.response_time_ms:.1f}ms")
            await self._record_history(query_text, dataset_id, caller_id, processed)
            return processed

        intent = self.classifier.classify(query_text)
        logger.info(f"Processing {intent.value} query: {query_text[:100]}...")

        try:
            if self.timeout:
                result, warnings = await asyncio.wait_for(
                    self._compute(intent, query_text, dataset_id, caller_id),
                    timeout=self.timeout
                )
            else:
                result, warnings = await self._compute(intent, query_text, dataset_id, caller_id)
        except asyncio.TimeoutError as e:
            logger.warning(f"Query timed out after {self.timeout}s: {query_text[:100]}")
            raise QueryTimeout(f"Query exceeded {self.timeout}s") from e
        except QueryEngineError as e:
            logger.error(f"Error processing query: {e}")
            await self._record_failure(query_text, dataset_id, caller_id, intent, e, start_time)
            raise

        processed = ProcessedQuery(
            result=result,
            response_time_ms=self._elapsed_ms(start_time),
            cache_hit=False,
            results_count=result.results_count,
            warnings=warnings
        )

        # Degraded hybrid answers are not cached so the next ask retries the failed leg
        if not warnings:
            await self._store_cache(cache_key, query_text, dataset_id, caller_id, result)
        await self._record_history(query_text, dataset_id, caller_id, processed)

        logger.info(
            f"Query processed successfully in {processed.response_time_ms:.1f}ms "
            f"({processed.results_count} results)"
        )
        return processed

    async def _compute(self, intent: Intent, query_text: str, dataset_id: str, caller_id: str):
        if intent == Intent.SQL:
            sql_outcome = await self._capture(self._run_sql_leg(query_text, dataset_id, caller_id))
            return self.merger.merge(intent, sql_outcome=sql_outcome)

        if intent == Intent.DOCUMENT:
            doc_outcome = await self._capture(self.retriever.retrieve(query_text, caller_id))
            return self.merger.merge(intent, document_outcome=doc_outcome)

        # Legs are independent; gather cancels both if this task is cancelled
        sql_outcome, doc_outcome = await asyncio.gather(
            self._run_sql_leg(query_text, dataset_id, caller_id),
            self.retriever.retrieve(query_text, caller_id),
            return_exceptions=True
        )
        for outcome in (sql_outcome, doc_outcome):
            if isinstance(outcome, BaseException) and not isinstance(outcome, QueryEngineError):
                raise outcome
        return self.merger.merge(intent, sql_outcome=sql_outcome, document_outcome=doc_outcome)

    async def _run_sql_leg(self, query_text: str, dataset_id: str, caller_id: str) -> SQLLegResult:
        if self.executor is None:
            raise RetrievalBackendUnavailable("No relational database is configured")

        schema = await self.schema_catalog.get_schema(dataset_id, caller_id)
        generated_sql = self.synthesizer.synthesize(query_text, schema)

        try:
            rows = await self.executor.execute(generated_sql)
        except QueryEngineError:
            raise
        except Exception as e:
            logger.error(f"Relational executor failed: {e}")
            raise RetrievalBackendUnavailable(f"Relational store unavailable: {e}") from e

        return SQLLegResult(rows=list(rows), generated_sql=generated_sql)

    @staticmethod
    async def _capture(coro):
        """Await a leg, returning its QueryEngineError instead of raising it"""
        try:
            return await coro
        except QueryEngineError as e:
            return e

    async def _lookup_cache(self, key: str, caller_id: str) -> Optional[QueryResult]:
        try:
            return await self.cache.lookup(key, caller_id)
        except Exception as e:
            logger.warning(f"Cache lookup failed, treating as miss: {e}")
            return None

    async def _record_cache_hit(self, key: str) -> None:
        try:
            await self.cache.record_hit(key)
        except Exception as e:
            logger.warning(f"Failed to record cache hit: {e}")

    async def _store_cache(self, key: str, query_text: str, dataset_id: str, caller_id: str, result: QueryResult) -> None:
        try:
            await self.cache.store_result(key, query_text, dataset_id, caller_id, result)
        except Exception as e:
            logger.warning(f"Failed to cache query result: {e}")

    async def _record_history(
        self,
        query_text: str,
        dataset_id: str,
        caller_id: str,
        processed: ProcessedQuery
    ) -> None:
        result = processed.result
        await self.history.append(QueryRecord(
            query_text=query_text,
            intent=result.intent,
            generated_sql=result.generated_sql,
            result_count=processed.results_count,
            response_time_ms=processed.response_time_ms,
            cache_hit=processed.cache_hit,
            sources=frozenset(result.sources),
            caller_id=caller_id,
            dataset_id=dataset_id,
            timestamp=utc_now(),
            status="partial" if processed.warnings else "completed",
            error_message="; ".join(str(w) for w in processed.warnings) or None
        ))

    async def _record_failure(
        self,
        query_text: str,
        dataset_id: str,
        caller_id: str,
        intent: Intent,
        error: Exception,
        start_time: float
    ) -> None:
        await self.history.append(QueryRecord(
            query_text=query_text,
            intent=intent,
            result_count=0,
            response_time_ms=self._elapsed_ms(start_time),
            cache_hit=False,
            sources=frozenset(),
            caller_id=caller_id,
            dataset_id=dataset_id,
            timestamp=utc_now(),
            status="error",
            error_message=str(error)
        ))

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.perf_counter() - start_time) * 1000.0
