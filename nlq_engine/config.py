import os
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FallbackPolicy(str, Enum):
    """What the SQL synthesizer does when no template matches"""
    SILENT = "silent"
    STRICT = "strict"


class EngineSettings(BaseModel):
    """Runtime settings for the hybrid query engine"""

    cache_ttl_seconds: int = Field(default=300, gt=0)
    match_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    match_count: int = Field(default=10, ge=1)
    query_timeout_seconds: Optional[float] = Field(default=None, gt=0.0)
    sql_fallback_policy: FallbackPolicy = FallbackPolicy.SILENT
    primary_table: str = "employees"

    @classmethod
    def from_env(cls) -> "EngineSettings":
        timeout = os.getenv("QUERY_TIMEOUT_SECONDS")
        return cls(
            cache_ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", 300)),
            match_threshold=float(os.getenv("MATCH_THRESHOLD", 0.7)),
            match_count=int(os.getenv("MATCH_COUNT", 10)),
            query_timeout_seconds=float(timeout) if timeout else None,
            sql_fallback_policy=FallbackPolicy(os.getenv("SQL_FALLBACK_POLICY", "silent").lower()),
            primary_table=os.getenv("PRIMARY_TABLE", "employees")
        )
