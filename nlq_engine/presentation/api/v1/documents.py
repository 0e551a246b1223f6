from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from nlq_engine.presentation.models.request_models import IngestRequest
from nlq_engine.presentation.models.response_models import IngestResponse
from nlq_engine.presentation.api.dependencies import get_caller_id, get_ingest_use_case
from nlq_engine.presentation.api.errors import to_http_exception
from nlq_engine.application.use_cases.ingest_document import IngestDocumentUseCase
from nlq_engine.domain.exceptions import QueryEngineError

router = APIRouter()


@router.post("/", response_model=IngestResponse)
async def ingest_document(
    request: IngestRequest,
    caller_id: Optional[str] = Depends(get_caller_id),
    ingest_use_case: IngestDocumentUseCase = Depends(get_ingest_use_case)
):
    """
    Chunk and embed a document's text so document queries can find it
    """
    try:
        result = await ingest_use_case.ingest(
            caller_id,
            request.filename,
            request.content,
            document_id=request.document_id
        )
    except QueryEngineError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return IngestResponse(**result)
