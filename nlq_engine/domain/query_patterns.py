"""
Keyword tables and SQL phrase templates.

Everything here is immutable and loaded once at import time. The classifier
and synthesizer receive these objects through their constructors so tests can
swap in narrower tables.
"""
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Mapping, Pattern, Tuple
from types import MappingProxyType


@dataclass(frozen=True)
class KeywordConfig:
    """Indicator vocabularies used by the query classifier"""
    structural: FrozenSet[str]
    unstructured: FrozenSet[str]


DEFAULT_KEYWORDS = KeywordConfig(
    structural=frozenset({
        "count", "average", "sum", "group by", "order by", "salary",
        "department", "employees", "how many", "list all", "show me all",
        "earning", "paid", "hired",
    }),
    unstructured=frozenset({
        "skills", "experience", "resume", "qualifications", "background",
        "python", "java", "programming", "certification",
    }),
)


@dataclass(frozen=True)
class ColumnRole:
    """A column the templates refer to by role, with candidate names in preference order"""
    table_role: str
    candidates: Tuple[str, ...]


@dataclass(frozen=True)
class SQLTemplate:
    """
    A phrase pattern and the statement it maps to.
    `statement` uses str.format placeholders for roles and extracted params.
    """
    name: str
    pattern: Pattern
    statement: str
    roles: Tuple[str, ...]
    defaults: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class SynthesisConfig:
    """Role vocabulary and ordered templates for the SQL synthesizer"""
    table_roles: Mapping[str, Tuple[str, ...]]
    table_purpose_hints: Mapping[str, str]
    column_roles: Mapping[str, ColumnRole]
    templates: Tuple[SQLTemplate, ...]
    default_limit: int = 10


def _template(name: str, pattern: str, statement: str, roles: Tuple[str, ...], **defaults: str) -> SQLTemplate:
    return SQLTemplate(
        name=name,
        pattern=re.compile(pattern),
        statement=" ".join(statement.split()),
        roles=roles,
        defaults=MappingProxyType(dict(defaults)),
    )


DEFAULT_TEMPLATES: Tuple[SQLTemplate, ...] = (
    _template(
        "headcount",
        r"\b(how many|number of|count(?: of)?|total)\s+employees\b",
        "SELECT COUNT(*) AS employee_count FROM {employee_table};",
        ("employee_table",),
    ),
    _template(
        "average_salary_by_department",
        r"\baverage (salary|pay)\b.*\bdepartments?\b|\bdepartments?\b.*\baverage (salary|pay)\b",
        """
        SELECT d.{dept_name}, AVG(e.{salary}) AS avg_salary
        FROM {employee_table} e
        JOIN {department_table} d ON e.{employee_dept} = d.{department_key}
        GROUP BY d.{dept_name};
        """,
        ("employee_table", "department_table", "salary", "employee_dept", "department_key", "dept_name"),
    ),
    _template(
        "average_salary",
        r"\baverage (salary|pay|compensation)\b",
        "SELECT AVG({salary}) AS average_salary FROM {employee_table};",
        ("employee_table", "salary"),
    ),
    _template(
        "highest_paid_per_department",
        r"\bhighest[ -]paid\b.*\b(each|every|per) department\b",
        """
        SELECT d.{dept_name}, e.{name}, e.{salary}
        FROM {employee_table} e
        JOIN {department_table} d ON e.{employee_dept} = d.{department_key}
        WHERE e.{salary} = (
            SELECT MAX(e2.{salary})
            FROM {employee_table} e2
            WHERE e2.{employee_dept} = e.{employee_dept}
        )
        ORDER BY e.{salary} DESC;
        """,
        ("employee_table", "department_table", "salary", "name", "employee_dept", "department_key", "dept_name"),
    ),
    _template(
        "top_paid",
        r"\btop\s+(?P<limit>\d+)\s+(highest[ -]paid|earners|paid)\b|\bhighest[ -]paid\b",
        "SELECT {name}, {salary} FROM {employee_table} ORDER BY {salary} DESC LIMIT {limit};",
        ("employee_table", "name", "salary"),
        limit="5",
    ),
    _template(
        "salary_threshold",
        r"\b(earning|earn|earns|paid|making|salary)\s+(over|above|more than|greater than)\s+"
        r"\$?(?P<amount>\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\s*(?P<unit>k)?\b",
        "SELECT {name}, {salary} FROM {employee_table} WHERE {salary} > {amount} ORDER BY {salary} DESC;",
        ("employee_table", "name", "salary"),
    ),
    _template(
        "hired_this_year",
        r"\b(hired|joined) this year\b",
        """
        SELECT {name}, {position}, {join_date}
        FROM {employee_table}
        WHERE EXTRACT(YEAR FROM {join_date}) = EXTRACT(YEAR FROM CURRENT_DATE);
        """,
        ("employee_table", "name", "position", "join_date"),
    ),
)


DEFAULT_SYNTHESIS = SynthesisConfig(
    table_roles=MappingProxyType({
        "employee_table": ("employees", "employee", "staff"),
        "department_table": ("departments", "department", "depts"),
    }),
    table_purpose_hints=MappingProxyType({
        "employee_table": "employee",
        "department_table": "organizational",
    }),
    column_roles=MappingProxyType({
        "salary": ColumnRole("employee_table", ("annual_salary", "salary", "base_salary", "compensation")),
        "name": ColumnRole("employee_table", ("full_name", "name", "employee_name")),
        "position": ColumnRole("employee_table", ("position", "job_title", "title")),
        "join_date": ColumnRole("employee_table", ("join_date", "hire_date", "start_date")),
        "employee_dept": ColumnRole("employee_table", ("dept_id", "department_id")),
        "department_key": ColumnRole("department_table", ("dept_id", "department_id", "id")),
        "dept_name": ColumnRole("department_table", ("dept_name", "department_name", "name")),
    }),
    templates=DEFAULT_TEMPLATES,
)
