from typing import List, Optional


class QueryEngineError(Exception):
    """Base class for query engine failures"""


class Unauthorized(QueryEngineError):
    """No valid caller identity was supplied"""


class DatasetNotFound(QueryEngineError):
    """No discovered schema matches the dataset for this caller"""

    def __init__(self, dataset_id: str):
        super().__init__(f"Dataset '{dataset_id}' not found")
        self.dataset_id = dataset_id


class EmbeddingProviderUnavailable(QueryEngineError):
    """The embedding provider could not produce a query embedding"""


class RetrievalBackendUnavailable(QueryEngineError):
    """The vector store or relational store could not be reached"""


class SQLSynthesisError(QueryEngineError):
    """No template matched and the fallback policy forbids a default statement"""


class QueryTimeout(QueryEngineError):
    """The query did not complete within the configured time limit"""


class PartialHybridFailure(QueryEngineError):
    """
    One leg of a hybrid query failed while the other succeeded.
    Returned as a warning next to the partial result, never raised to callers.
    """

    def __init__(self, failed_leg: str, cause: Exception):
        super().__init__(f"{failed_leg} leg failed: {cause}")
        self.failed_leg = failed_leg
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "leg": self.failed_leg,
            "error": type(self.cause).__name__,
            "detail": str(self.cause)
        }


class TotalFailure(QueryEngineError):
    """Every leg required to answer the query failed"""

    def __init__(self, message: str, causes: Optional[List[Exception]] = None):
        super().__init__(message)
        self.causes = causes or []
