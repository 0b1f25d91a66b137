# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""JQL construction helpers.

Values are always quoted and escaped. Field names come from a fixed
mapping, except custom field names which are quoted as well.
"""

from typing import Any, Literal, NamedTuple

from pydantic import BaseModel, Field, model_validator

SUPPORTED_OPERATORS = ("=", "<", ">", "<=", ">=", "!=")
SORT_DIRECTIONS = ("ASC", "DESC")

DEFAULT_ORDER_BY = "order by updated DESC"


class FieldMapping(NamedTuple):
    jql_field: str
    supports_operators: bool = False
    supports_fuzzy: bool = False
    is_custom_field: bool = False


FIELD_MAPPINGS: dict[str, FieldMapping] = {
    "assignee": FieldMapping("assignee"),
    "created": FieldMapping("created", supports_operators=True),
    "dueDate": FieldMapping("dueDate", supports_operators=True),
    "fixVersion": FieldMapping("fixVersion"),
    "issueType": FieldMapping("issueType"),
    "labels": FieldMapping("labels"),
    "priority": FieldMapping("priority"),
    "parentIssueKey": FieldMapping("parent"),
    "project": FieldMapping("project"),
    "reporter": FieldMapping("reporter"),
    "resolved": FieldMapping("resolved", supports_operators=True),
    "status": FieldMapping("status"),
    "summary": FieldMapping("summary", supports_fuzzy=True),
    "customField": FieldMapping("customField", supports_fuzzy=True, is_custom_field=True),
}


def escape_jql_string(value: str) -> str:
    """Escape backslashes and quotes for use inside a quoted JQL string."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("'", "\\'")


def quote(value: Any) -> str:
    return f'"{escape_jql_string(str(value))}"'


def build_jql_query(params: dict[str, Any]) -> str:
    """Build ``field = "v"`` / ``field IN ("a", "b")`` clauses joined with AND.

    Empty values (None, "", []) are skipped.
    """
    clauses = []
    for field, value in params.items():
        if value is None or value == "" or value == []:
            continue
        if isinstance(value, (list, tuple)):
            clauses.append(f"{field} IN ({', '.join(quote(v) for v in value)})")
        else:
            clauses.append(f"{field} = {quote(value)}")
    return " AND ".join(clauses)


class SearchFilter(BaseModel):
    """One advanced search condition."""

    field: str = Field(..., description="Filter field, one of FIELD_MAPPINGS")
    value: str = Field(..., description="The value to search for")
    operator: Literal["=", "<", ">", "<=", ">=", "!="] | None = Field(
        None,
        description="Comparison operator; only for date fields (created, dueDate, resolved)",
    )
    fuzzy: bool = Field(False, description="Use '~' instead of '=' (summary and custom fields)")
    custom_field_name: str | None = Field(
        None,
        alias="customFieldName",
        description="Display name of the custom field (e.g. 'Story Points')",
    )

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_field_capabilities(self) -> "SearchFilter":
        mapping = FIELD_MAPPINGS.get(self.field)
        if mapping is None:
            raise ValueError(f"Unsupported filter field: {self.field}. Must be one of {list(FIELD_MAPPINGS)}")
        if self.operator is not None and not mapping.supports_operators:
            raise ValueError(f"Operators are only supported for date fields, not '{self.field}'")
        if self.fuzzy and not mapping.supports_fuzzy:
            raise ValueError(f"Fuzzy search is not supported for '{self.field}'")
        if mapping.is_custom_field and not (self.custom_field_name or "").strip():
            raise ValueError("customFieldName is required for customField filters")
        if self.fuzzy and self.operator not in (None, "="):
            raise ValueError("Fuzzy search cannot be combined with a comparison operator")
        return self

    def to_clause(self) -> str:
        mapping = FIELD_MAPPINGS[self.field]
        if mapping.is_custom_field:
            field = quote(self.custom_field_name)
        else:
            field = mapping.jql_field
        if self.fuzzy:
            operator = "~"
        else:
            operator = self.operator or "="
        return f"{field} {operator} {quote(self.value)}"


class SortSpec(BaseModel):
    """One ORDER BY term."""

    field: str
    direction: Literal["ASC", "DESC"] = "DESC"

    @model_validator(mode="after")
    def check_field(self) -> "SortSpec":
        mapping = FIELD_MAPPINGS.get(self.field)
        if mapping is None or mapping.is_custom_field:
            raise ValueError(f"Unsupported sort field: {self.field}")
        return self

    def to_clause(self) -> str:
        return f"{FIELD_MAPPINGS[self.field].jql_field} {self.direction}"


def build_filtered_jql(
    filters: list[SearchFilter] | None = None,
    sort: list[SortSpec] | None = None,
    base_jql: str | None = None,
) -> str:
    """Combine an optional base query, filters and sort terms into JQL."""
    clauses = []
    if base_jql and base_jql.strip():
        clauses.append(f"({base_jql.strip()})")
    clauses.extend(f.to_clause() for f in filters or [])
    jql = " AND ".join(clauses)

    if sort:
        order_by = "ORDER BY " + ", ".join(s.to_clause() for s in sort)
        return f"{jql} {order_by}" if jql else order_by
    return jql
