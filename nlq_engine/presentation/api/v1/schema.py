from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from nlq_engine.presentation.models.request_models import DiscoverRequest
from nlq_engine.presentation.models.response_models import SchemaResponse
from nlq_engine.presentation.api.dependencies import get_caller_id, get_schema_service
from nlq_engine.presentation.api.errors import to_http_exception
from nlq_engine.application.services.schema_service import SchemaService
from nlq_engine.domain.exceptions import QueryEngineError, Unauthorized

router = APIRouter()


@router.post("/discover", response_model=SchemaResponse)
async def discover_schema(
    request: DiscoverRequest,
    caller_id: Optional[str] = Depends(get_caller_id),
    schema_service: SchemaService = Depends(get_schema_service)
):
    """
    Introspect the connected database and store its schema for this caller
    """
    try:
        if not caller_id:
            raise Unauthorized("A caller identity is required")

        schema = await schema_service.discover_and_store(
            caller_id,
            request.connection_name,
            schema_name=request.schema_name,
            dataset_id=request.dataset_id
        )
        structure = await schema_service.get_schema_structure(schema.database_id, caller_id)
    except QueryEngineError as e:
        raise to_http_exception(e)

    return SchemaResponse(**structure)


@router.get("/{dataset_id}", response_model=SchemaResponse)
async def get_schema_info(
    dataset_id: str,
    caller_id: Optional[str] = Depends(get_caller_id),
    schema_service: SchemaService = Depends(get_schema_service)
):
    """
    Get detailed information about a discovered schema
    """
    try:
        if not caller_id:
            raise Unauthorized("A caller identity is required")

        structure = await schema_service.get_schema_structure(dataset_id, caller_id)
    except QueryEngineError as e:
        raise to_http_exception(e)

    return SchemaResponse(**structure)


@router.get("/{dataset_id}/tables/{table_name}")
async def describe_table(
    dataset_id: str,
    table_name: str,
    caller_id: Optional[str] = Depends(get_caller_id),
    schema_service: SchemaService = Depends(get_schema_service)
):
    """
    Human-readable description of one discovered table
    """
    try:
        if not caller_id:
            raise Unauthorized("A caller identity is required")

        description = await schema_service.get_table_description(dataset_id, caller_id, table_name)
    except QueryEngineError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"table": table_name, "description": description}
