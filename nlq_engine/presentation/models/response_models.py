from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional


class DocumentMatchModel(BaseModel):
    chunk_id: str
    text: str
    similarity: float
    source_document: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PerformanceMetrics(BaseModel):
    response_time_ms: float = Field(..., description="Time taken to process query in milliseconds")
    cache_hit: bool
    results_count: int


class QueryWarning(BaseModel):
    type: str
    leg: str
    error: str
    detail: str


class QueryResponse(BaseModel):
    intent: str = Field(..., description="sql, document or hybrid")
    sql_rows: Optional[List[Dict[str, Any]]] = None
    document_matches: Optional[List[DocumentMatchModel]] = None
    generated_sql: Optional[str] = None
    sources: List[str] = Field(default_factory=list)
    performance_metrics: PerformanceMetrics
    warnings: List[QueryWarning] = Field(default_factory=list)


class SchemaResponse(BaseModel):
    dataset_id: str
    tables: List[Dict[str, Any]]
    total_tables: int
    total_rows: int = 0
    relationships: List[Dict[str, str]] = Field(default_factory=list)


class PurgeResponse(BaseModel):
    removed: int


class IngestResponse(BaseModel):
    status: str
    document_id: str
    filename: str
    chunks: int
    duration: float = Field(..., description="Ingestion time in seconds")
