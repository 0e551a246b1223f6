import asyncio
import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2 import sql
from contextlib import contextmanager
from decimal import Decimal
from typing import List, Dict, Any
import logging
import json
from datetime import datetime, date

from nlq_engine.domain.interfaces import IRelationalExecutor, ISchemaDiscovery
from nlq_engine.domain.entities import TableDescriptor, ColumnDescriptor, Relationship
from nlq_engine.domain.exceptions import RetrievalBackendUnavailable

logger = logging.getLogger(__name__)

# Checked in order; first hit wins
PURPOSE_PATTERNS = [
    (("employee", "staff", "person", "people", "worker"), "employee_data"),
    (("dept", "department", "team", "division", "org"), "organizational_structure"),
    (("salary", "salaries", "payroll", "compensation", "bonus"), "compensation"),
    (("project", "task", "assignment"), "project_management"),
    (("skill", "certification", "training"), "qualifications"),
]


def infer_table_purpose(table_name: str) -> str:
    """Guess what a table holds from its name"""
    lowered = table_name.lower()
    for patterns, purpose in PURPOSE_PATTERNS:
        if any(p in lowered for p in patterns):
            return purpose
    return "general"


def to_json_safe(row: Dict[str, Any]) -> Dict[str, Any]:
    """Convert special types to JSON-serializable values"""
    for key, value in row.items():
        if isinstance(value, (datetime, date)):
            row[key] = value.isoformat()
        elif isinstance(value, Decimal):
            row[key] = float(value)
        elif value is not None:
            try:
                json.dumps({key: value})
            except TypeError:
                row[key] = str(value)
    return row


class PostgresRepository(IRelationalExecutor, ISchemaDiscovery):
    """
    Repository for the connected PostgreSQL database: runs synthesized
    statements and introspects its structure
    """

    def __init__(self, connection_string: str, statement_timeout_ms: int = 15000):
        self.connection_string = connection_string
        self.statement_timeout_ms = statement_timeout_ms

    @contextmanager
    def get_connection(self):
        """Get database connection with context manager"""
        conn = None
        try:
            conn = psycopg2.connect(self.connection_string)
            yield conn
        except psycopg2.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            if conn:
                conn.close()

    async def execute(self, statement: str) -> List[Dict[str, Any]]:
        """Run a synthesized read-only statement and return its rows"""
        try:
            return await asyncio.to_thread(self._execute_sync, statement)
        except psycopg2.Error as e:
            raise RetrievalBackendUnavailable(f"Relational store error: {e}") from e

    def _execute_sync(self, statement: str) -> List[Dict[str, Any]]:
        with self.get_connection() as conn:
            conn.set_session(readonly=True)
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SET statement_timeout = %s", (self.statement_timeout_ms,))
                cur.execute(statement)
                return [to_json_safe(dict(row)) for row in cur.fetchall()]

    async def discover_tables(self, schema_name: str) -> List[TableDescriptor]:
        """Get every table in a schema with columns, keys and row counts"""
        try:
            return await asyncio.to_thread(self._discover_sync, schema_name)
        except psycopg2.Error as e:
            raise RetrievalBackendUnavailable(f"Schema discovery failed: {e}") from e

    def _discover_sync(self, schema_name: str) -> List[TableDescriptor]:
        tables = []

        table_query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s AND table_type = 'BASE TABLE'
            ORDER BY table_name;
        """

        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(table_query, (schema_name,))
                table_names = [row['table_name'] for row in cur.fetchall()]

            for table_name in table_names:
                columns = self._get_table_columns(conn, schema_name, table_name)
                relationships = [
                    Relationship(
                        type="foreign_key",
                        source_column=col.name,
                        target_table=col.referenced_table,
                        target_column=col.referenced_column
                    )
                    for col in columns if col.is_foreign_key
                ]

                tables.append(TableDescriptor(
                    name=table_name,
                    purpose=infer_table_purpose(table_name),
                    columns=columns,
                    relationships=relationships,
                    sample_row_count=self._get_table_row_count(conn, schema_name, table_name)
                ))

        return tables

    def _get_table_columns(self, conn, schema: str, table: str) -> List[ColumnDescriptor]:
        """Get columns information for a table"""
        query = """
            SELECT
                c.column_name,
                c.data_type,
                (c.is_nullable = 'YES') AS is_nullable,
                CASE WHEN pk.column_name IS NOT NULL THEN true ELSE false END as is_primary_key,
                CASE WHEN fk.column_name IS NOT NULL THEN true ELSE false END as is_foreign_key,
                fk.foreign_table_name,
                fk.foreign_column_name
            FROM information_schema.columns c
            LEFT JOIN (
                SELECT
                    kcu.column_name,
                    kcu.table_name,
                    kcu.table_schema
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                    ON tc.constraint_name = kcu.constraint_name
                    AND tc.table_schema = kcu.table_schema
                WHERE tc.constraint_type = 'PRIMARY KEY'
            ) pk ON c.column_name = pk.column_name
                AND c.table_name = pk.table_name
                AND c.table_schema = pk.table_schema
            LEFT JOIN (
                SELECT
                    kcu.column_name,
                    kcu.table_name,
                    kcu.table_schema,
                    ccu.table_name as foreign_table_name,
                    ccu.column_name as foreign_column_name
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                    ON tc.constraint_name = kcu.constraint_name
                    AND tc.table_schema = kcu.table_schema
                JOIN information_schema.constraint_column_usage ccu
                    ON tc.constraint_name = ccu.constraint_name
                    AND tc.table_schema = ccu.table_schema
                WHERE tc.constraint_type = 'FOREIGN KEY'
            ) fk ON c.column_name = fk.column_name
                AND c.table_name = fk.table_name
                AND c.table_schema = fk.table_schema
            WHERE c.table_schema = %s AND c.table_name = %s
            ORDER BY c.ordinal_position;
        """

        columns = []
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, (schema, table))
            for row in cur.fetchall():
                columns.append(ColumnDescriptor(
                    name=row['column_name'],
                    type=row['data_type'],
                    nullable=row['is_nullable'],
                    is_primary_key=row['is_primary_key'],
                    is_foreign_key=row['is_foreign_key'],
                    referenced_table=row.get('foreign_table_name'),
                    referenced_column=row.get('foreign_column_name')
                ))

        return columns

    def _get_table_row_count(self, conn, schema: str, table: str) -> int:
        """Get row count for a table"""
        query = sql.SQL("SELECT COUNT(*) as count FROM {}.{}").format(
            sql.Identifier(schema),
            sql.Identifier(table)
        )

        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query)
                result = cur.fetchone()
                return result['count'] if result else 0
        except psycopg2.Error as e:
            logger.warning(f"Could not get row count for {schema}.{table}: {e}")
            conn.rollback()
            return 0
