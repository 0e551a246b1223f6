from typing import Optional

from fastapi import APIRouter, Depends

from nlq_engine.presentation.models.request_models import QueryRequest
from nlq_engine.presentation.models.response_models import QueryResponse, PurgeResponse
from nlq_engine.presentation.api.dependencies import (
    get_caller_id,
    get_process_query_use_case,
    get_cache_layer
)
from nlq_engine.presentation.api.errors import to_http_exception
from nlq_engine.application.services.cache_service import CacheLayer
from nlq_engine.application.use_cases.process_query import ProcessQueryUseCase
from nlq_engine.domain.exceptions import QueryEngineError, Unauthorized

router = APIRouter()


@router.post("/", response_model=QueryResponse)
async def process_query(
    request: QueryRequest,
    caller_id: Optional[str] = Depends(get_caller_id),
    engine: ProcessQueryUseCase = Depends(get_process_query_use_case)
):
    """
    Answer a natural-language question from the database, the documents, or both
    """
    try:
        processed = await engine.execute(
            query_text=request.query,
            dataset_id=request.dataset_id,
            caller_id=caller_id
        )
    except QueryEngineError as e:
        raise to_http_exception(e)

    return QueryResponse(**processed.to_dict())


@router.post("/cache/purge", response_model=PurgeResponse)
async def purge_cache(
    caller_id: Optional[str] = Depends(get_caller_id),
    cache: CacheLayer = Depends(get_cache_layer)
):
    """
    Delete expired cache rows
    """
    if not caller_id:
        raise to_http_exception(Unauthorized("A caller identity is required"))

    removed = await cache.purge_expired()
    return PurgeResponse(removed=removed)
