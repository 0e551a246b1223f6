from fastapi import HTTPException

from nlq_engine.domain.exceptions import (
    QueryEngineError,
    Unauthorized,
    DatasetNotFound,
    SQLSynthesisError,
    QueryTimeout
)

STATUS_CODES = {
    Unauthorized: 401,
    DatasetNotFound: 404,
    SQLSynthesisError: 422,
    QueryTimeout: 504,
}


def to_http_exception(error: QueryEngineError) -> HTTPException:
    """Map an engine failure onto an HTTP error; backend failures become 503"""
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=503, detail=str(error))
