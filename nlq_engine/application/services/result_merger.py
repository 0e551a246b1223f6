import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from nlq_engine.domain.entities import Intent, QueryResult, DocumentMatch
from nlq_engine.domain.exceptions import DatasetNotFound, PartialHybridFailure, SQLSynthesisError, TotalFailure

logger = logging.getLogger(__name__)

DATABASE_SOURCE = "database"


@dataclass
class SQLLegResult:
    """Output of the relational leg"""
    rows: List[Dict[str, Any]]
    generated_sql: str


SQLOutcome = Union[SQLLegResult, BaseException, None]
DocumentOutcome = Union[List[DocumentMatch], BaseException, None]


class ResultMerger:
    """
    Combines the outputs of the relational and document legs into one
    QueryResult with provenance
    """

    def merge(
        self,
        intent: Intent,
        sql_outcome: SQLOutcome = None,
        document_outcome: DocumentOutcome = None
    ) -> Tuple[QueryResult, List[PartialHybridFailure]]:
        if intent == Intent.SQL:
            sql = self._require(sql_outcome, "sql")
            return QueryResult(
                intent=intent,
                sql_rows=sql.rows,
                generated_sql=sql.generated_sql,
                sources=[DATABASE_SOURCE]
            ), []

        if intent == Intent.DOCUMENT:
            matches = self._require(document_outcome, "document")
            return QueryResult(
                intent=intent,
                document_matches=matches,
                sources=self._document_sources(matches)
            ), []

        return self._merge_hybrid(sql_outcome, document_outcome)

    def _merge_hybrid(
        self,
        sql_outcome: SQLOutcome,
        document_outcome: DocumentOutcome
    ) -> Tuple[QueryResult, List[PartialHybridFailure]]:
        sql_failed = isinstance(sql_outcome, BaseException) or sql_outcome is None
        doc_failed = isinstance(document_outcome, BaseException) or document_outcome is None

        if sql_failed and doc_failed:
            causes = [o for o in (sql_outcome, document_outcome) if isinstance(o, BaseException)]
            raise TotalFailure("Both legs of the hybrid query failed", causes)

        warnings: List[PartialHybridFailure] = []
        sources: List[str] = []
        rows: List[Dict[str, Any]] = []
        matches: List[DocumentMatch] = []
        generated_sql: Optional[str] = None

        if sql_failed:
            warnings.append(PartialHybridFailure("sql", self._as_error(sql_outcome)))
        else:
            rows = sql_outcome.rows
            generated_sql = sql_outcome.generated_sql
            sources.append(DATABASE_SOURCE)

        if doc_failed:
            warnings.append(PartialHybridFailure("document", self._as_error(document_outcome)))
        else:
            matches = document_outcome
            sources.extend(self._document_sources(matches))

        for warning in warnings:
            logger.warning(f"Hybrid query degraded: {warning}")

        return QueryResult(
            intent=Intent.HYBRID,
            sql_rows=rows,
            document_matches=matches,
            generated_sql=generated_sql,
            sources=sources
        ), warnings

    @staticmethod
    def _require(outcome, leg: str):
        # Caller-facing errors keep their own type and status
        if isinstance(outcome, (DatasetNotFound, SQLSynthesisError)):
            raise outcome
        if isinstance(outcome, BaseException):
            raise TotalFailure(f"The {leg} leg failed: {outcome}", [outcome]) from outcome
        if outcome is None:
            raise TotalFailure(f"The {leg} leg produced no result")
        return outcome

    @staticmethod
    def _as_error(outcome) -> Exception:
        if isinstance(outcome, Exception):
            return outcome
        return RuntimeError("leg produced no result")

    @staticmethod
    def _document_sources(matches: List[DocumentMatch]) -> List[str]:
        seen = []
        for match in matches:
            if match.source_document and match.source_document not in seen:
                seen.append(match.source_document)
        return seen
