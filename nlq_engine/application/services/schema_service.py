from typing import Dict, Any, Optional
import logging

from nlq_engine.domain.entities import SchemaDescriptor
from nlq_engine.domain.exceptions import RetrievalBackendUnavailable
from nlq_engine.domain.interfaces import ISchemaCatalog, ISchemaDiscovery

logger = logging.getLogger(__name__)


class SchemaService:
    """
    Application service for discovered schema operations
    """

    def __init__(
        self,
        schema_catalog: ISchemaCatalog,
        discovery: Optional[ISchemaDiscovery] = None
    ):
        self.schema_catalog = schema_catalog
        self.discovery = discovery

    async def discover_and_store(
        self,
        caller_id: str,
        connection_name: str,
        schema_name: str = "public",
        dataset_id: Optional[str] = None
    ) -> SchemaDescriptor:
        """
        Introspect the live database and store the result for this caller.
        Passing an existing dataset_id replaces that schema wholesale.
        """
        if self.discovery is None:
            raise RetrievalBackendUnavailable("No database is configured for schema discovery")

        tables = await self.discovery.discover_tables(schema_name)
        schema = await self.schema_catalog.save_schema(
            caller_id,
            connection_name,
            tables,
            dataset_id=dataset_id
        )

        logger.info(
            f"Discovered {len(tables)} tables with "
            f"{sum(len(t.columns) for t in tables)} columns for dataset {schema.database_id}"
        )
        return schema

    async def get_schema_structure(
        self,
        dataset_id: str,
        caller_id: str
    ) -> Dict[str, Any]:
        """
        Get complete structure of a discovered schema
        """
        schema = await self.schema_catalog.get_schema(dataset_id, caller_id)

        structure = {
            "dataset_id": schema.database_id,
            "tables": [],
            "total_tables": len(schema.tables),
            "total_rows": 0,
            "relationships": []
        }

        for table in schema.tables:
            table_info = {
                "name": table.name,
                "purpose": table.purpose,
                "columns": len(table.columns),
                "rows": table.sample_row_count,
                "primary_keys": [],
                "foreign_keys": []
            }

            # Identify keys
            for col in table.columns:
                if col.is_primary_key:
                    table_info["primary_keys"].append(col.name)
                if col.is_foreign_key:
                    table_info["foreign_keys"].append({
                        "column": col.name,
                        "references": f"{col.referenced_table}.{col.referenced_column}"
                    })

            structure["tables"].append(table_info)
            structure["total_rows"] += table_info["rows"]

            for fk in table_info["foreign_keys"]:
                structure["relationships"].append({
                    "from": f"{table.name}.{fk['column']}",
                    "to": fk["references"]
                })

        return structure

    async def get_table_description(
        self,
        dataset_id: str,
        caller_id: str,
        table_name: str
    ) -> str:
        """
        Generate human-readable description of a table
        """
        schema = await self.schema_catalog.get_schema(dataset_id, caller_id)

        table = schema.table(table_name)
        if not table:
            raise ValueError(f"Table {table_name} not found in dataset {dataset_id}")

        parts = [f"Table '{table.name}' ({table.purpose or 'unknown purpose'})"]

        if table.sample_row_count:
            parts.append(f"holds {table.sample_row_count} rows")

        parts.append(f"with {len(table.columns)} columns:")

        for col in table.columns:
            col_desc = f"- {col.name} ({col.type})"

            if col.is_primary_key:
                col_desc += " [PRIMARY KEY]"
            if col.is_foreign_key:
                col_desc += f" [FOREIGN KEY -> {col.referenced_table}.{col.referenced_column}]"
            if not col.nullable:
                col_desc += " [NOT NULL]"

            parts.append(col_desc)

        return "\n".join(parts)
