from pydantic import BaseModel, Field
from typing import Optional


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Question in natural language")
    dataset_id: str = Field(..., min_length=1, description="Discovered database to query")


class DiscoverRequest(BaseModel):
    connection_name: str = Field(..., description="Display name for the connected database")
    schema_name: str = Field(default="public", description="Database schema to inspect")
    dataset_id: Optional[str] = Field(default=None, description="Existing dataset to re-analyze")


class IngestRequest(BaseModel):
    filename: str = Field(..., min_length=1, description="Original file name; its extension picks the chunking strategy")
    content: str = Field(..., description="Text already extracted from the file")
    document_id: Optional[str] = Field(default=None, description="Existing document to replace")
