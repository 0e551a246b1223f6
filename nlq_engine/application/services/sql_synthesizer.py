import logging
import re
from typing import Dict, Optional

from nlq_engine.config import FallbackPolicy
from nlq_engine.domain.entities import SchemaDescriptor, TableDescriptor
from nlq_engine.domain.exceptions import SQLSynthesisError
from nlq_engine.domain.query_patterns import SynthesisConfig, SQLTemplate, DEFAULT_SYNTHESIS

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SQLSynthesizer:
    """
    Turns a natural-language question into a SQL statement using
    ordered phrase templates checked against a discovered schema
    """

    def __init__(
        self,
        config: SynthesisConfig = DEFAULT_SYNTHESIS,
        fallback_policy: FallbackPolicy = FallbackPolicy.SILENT,
        primary_table: str = "employees"
    ):
        self.config = config
        self.fallback_policy = fallback_policy
        self.primary_table = primary_table

    def synthesize(self, text: str, schema: SchemaDescriptor) -> str:
        """
        Return the statement for the first template that matches the text
        and whose table/column references all exist in the schema
        """
        lowered = (text or "").lower()

        for template in self.config.templates:
            match = template.pattern.search(lowered)
            if not match:
                continue

            roles = self._resolve_roles(template, schema)
            if roles is None:
                logger.info(
                    f"Template '{template.name}' matched but schema {schema.database_id} "
                    f"lacks a referenced table or column"
                )
                return self._fallback(text, schema)

            params = self._extract_params(template, match)
            sql = template.statement.format(**roles, **params)
            logger.debug(f"Template '{template.name}' produced: {sql}")
            return sql

        return self._fallback(text, schema)

    def _fallback(self, text: str, schema: SchemaDescriptor) -> str:
        if self.fallback_policy == FallbackPolicy.STRICT:
            raise SQLSynthesisError(f"Cannot synthesize SQL for: {text}")

        table = self._primary_table(schema)
        return f"SELECT * FROM {table} LIMIT {self.config.default_limit};"

    def _primary_table(self, schema: SchemaDescriptor) -> str:
        """Pick the primary entity table for the default projection"""
        if schema.table(self.primary_table):
            return self.primary_table

        hint = self.config.table_purpose_hints.get("employee_table", "")
        for table in schema.tables:
            if hint and hint in table.purpose.lower() and _IDENTIFIER.match(table.name):
                return table.name

        candidates = [t for t in schema.tables if _IDENTIFIER.match(t.name)]
        if candidates:
            return max(candidates, key=lambda t: t.sample_row_count).name

        return self.primary_table

    def _resolve_roles(self, template: SQLTemplate, schema: SchemaDescriptor) -> Optional[Dict[str, str]]:
        """
        Map every role a template needs onto a real table or column name.
        Returns None as soon as one role cannot be resolved.
        """
        tables: Dict[str, TableDescriptor] = {}
        resolved: Dict[str, str] = {}

        for role in template.roles:
            if role in self.config.table_roles:
                table = self._resolve_table(role, schema)
                if table is None:
                    return None
                tables[role] = table
                resolved[role] = table.name

        for role in template.roles:
            column_role = self.config.column_roles.get(role)
            if column_role is None:
                continue

            table = tables.get(column_role.table_role) or self._resolve_table(column_role.table_role, schema)
            if table is None:
                return None
            tables[column_role.table_role] = table

            column = next(
                (name for name in column_role.candidates if table.has_column(name)),
                None
            )
            if column is None or not _IDENTIFIER.match(column):
                return None
            resolved[role] = column

        # Join on the key the foreign key actually references
        if "employee_dept" in resolved and "department_key" in resolved:
            fk = tables["employee_table"].column(resolved["employee_dept"])
            department = tables["department_table"]
            if fk.is_foreign_key and fk.referenced_table == department.name:
                if not department.has_column(fk.referenced_column):
                    return None
                resolved["department_key"] = fk.referenced_column

        return resolved

    def _resolve_table(self, role: str, schema: SchemaDescriptor) -> Optional[TableDescriptor]:
        for name in self.config.table_roles.get(role, ()):
            table = schema.table(name)
            if table is not None:
                return table

        hint = self.config.table_purpose_hints.get(role)
        if hint:
            for table in schema.tables:
                if hint in table.purpose.lower() and _IDENTIFIER.match(table.name):
                    return table

        return None

    def _extract_params(self, template: SQLTemplate, match: re.Match) -> Dict[str, str]:
        params = dict(template.defaults)
        groups = {k: v for k, v in match.groupdict().items() if v is not None}

        if "limit" in groups:
            params["limit"] = str(int(groups["limit"]))

        if "amount" in groups:
            amount = float(groups["amount"].replace(",", ""))
            if groups.get("unit") == "k":
                amount *= 1000
            params["amount"] = str(int(amount))

        return params
