from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Optional, FrozenSet
from datetime import datetime
from enum import Enum

EMBEDDING_DIMENSION = 384


class Intent(str, Enum):
    """Which backends a query is routed to"""
    SQL = "sql"
    DOCUMENT = "document"
    HYBRID = "hybrid"


@dataclass(frozen=True)
class ColumnDescriptor:
    """Entity representing a discovered table column"""
    name: str
    type: str
    nullable: bool
    is_primary_key: bool
    is_foreign_key: bool
    referenced_table: Optional[str] = None
    referenced_column: Optional[str] = None

    def __post_init__(self):
        if self.is_foreign_key and (not self.referenced_table or not self.referenced_column):
            raise ValueError(
                f"Foreign key column '{self.name}' must reference a table and column"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnDescriptor":
        return cls(
            name=data["name"],
            type=data.get("type", ""),
            nullable=bool(data.get("nullable", True)),
            is_primary_key=bool(data.get("is_primary_key", False)),
            is_foreign_key=bool(data.get("is_foreign_key", False)),
            referenced_table=data.get("referenced_table"),
            referenced_column=data.get("referenced_column")
        )


@dataclass(frozen=True)
class Relationship:
    """Entity representing a key relationship between two tables"""
    type: str
    source_column: str
    target_table: str
    target_column: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Relationship":
        return cls(
            type=data.get("type", "foreign_key"),
            source_column=data["source_column"],
            target_table=data["target_table"],
            target_column=data["target_column"]
        )


@dataclass(frozen=True)
class TableDescriptor:
    """Entity representing a discovered database table"""
    name: str
    purpose: str
    columns: List[ColumnDescriptor]
    relationships: List[Relationship] = field(default_factory=list)
    sample_row_count: int = 0

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        return next((c for c in self.columns if c.name == name), None)

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableDescriptor":
        return cls(
            name=data["name"],
            purpose=data.get("purpose") or "",
            columns=[ColumnDescriptor.from_dict(c) for c in data.get("columns", [])],
            relationships=[Relationship.from_dict(r) for r in data.get("relationships", [])],
            sample_row_count=int(data.get("sample_row_count") or 0)
        )


@dataclass(frozen=True)
class SchemaDescriptor:
    """Entity representing the discovered structure of a connected database"""
    database_id: str
    tables: List[TableDescriptor]

    def table(self, name: str) -> Optional[TableDescriptor]:
        return next((t for t in self.tables if t.name == name), None)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaDescriptor":
        return cls(
            database_id=str(data.get("database_id", "")),
            tables=[TableDescriptor.from_dict(t) for t in data.get("tables", [])]
        )


@dataclass
class DocumentChunk:
    """Entity representing an embedded span of a source document"""
    id: str
    document_id: str
    text: str
    index: int
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorHit:
    """Raw nearest-neighbour hit returned by a vector store"""
    chunk_id: str
    document_id: str
    text: str
    similarity: float
    metadata: Dict[str, Any]
    source_filename: str


@dataclass(frozen=True)
class DocumentMatch:
    """Entity representing a chunk matched for a query"""
    chunk_id: str
    text: str
    similarity: float
    source_document: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QueryResult:
    """
    Unified answer to a query. Which halves are present depends on the intent:
    sql carries rows only, document carries matches only, hybrid carries both.
    """
    intent: Intent
    sql_rows: Optional[List[Dict[str, Any]]] = None
    document_matches: Optional[List[DocumentMatch]] = None
    generated_sql: Optional[str] = None
    sources: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.intent == Intent.SQL and self.document_matches is not None:
            raise ValueError("sql results cannot carry document matches")
        if self.intent == Intent.DOCUMENT and self.sql_rows is not None:
            raise ValueError("document results cannot carry sql rows")
        if self.intent == Intent.HYBRID and (self.sql_rows is None or self.document_matches is None):
            raise ValueError("hybrid results require both sql rows and document matches")

    @property
    def results_count(self) -> int:
        return len(self.sql_rows or []) + len(self.document_matches or [])

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["intent"] = self.intent.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryResult":
        matches = data.get("document_matches")
        return cls(
            intent=Intent(data["intent"]),
            sql_rows=data.get("sql_rows"),
            document_matches=[DocumentMatch(**m) for m in matches] if matches is not None else None,
            generated_sql=data.get("generated_sql"),
            sources=list(data.get("sources") or [])
        )


@dataclass
class CacheEntry:
    """Entity representing a cached query result"""
    key: str
    query_text: str
    dataset_id: str
    caller_id: str
    result: QueryResult
    created_at: datetime
    expires_at: datetime
    hit_count: int = 0
    last_accessed_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class QueryRecord:
    """Append-only history entry for a processed query"""
    query_text: str
    intent: Optional[Intent]
    result_count: int
    response_time_ms: float
    cache_hit: bool
    sources: FrozenSet[str]
    caller_id: str
    dataset_id: str
    timestamp: datetime
    generated_sql: Optional[str] = None
    status: str = "completed"
    error_message: Optional[str] = None
