"""Placeholder expansion and statement helpers."""
from datastore.query.placeholders import (
    BindPlaceholder,
    ExpandedQuery,
    InsertRows,
    ListExpand,
    PlaceholderExpander,
    Scalar,
    SetClause,
    coerce_bind,
    convert_paramstyle,
    driver_params,
    render_paramstyle,
)
from datastore.query.statements import StatementKind, classify_statement, count_query, paginate

__all__ = [
    "BindPlaceholder",
    "ExpandedQuery",
    "InsertRows",
    "ListExpand",
    "PlaceholderExpander",
    "Scalar",
    "SetClause",
    "StatementKind",
    "classify_statement",
    "coerce_bind",
    "count_query",
    "convert_paramstyle",
    "driver_params",
    "paginate",
    "render_paramstyle",
]
