"""Read-side helpers for querying a populated store."""

from testintel.serving.query import (
    QueryResult,
    execute_query,
    render,
    render_json,
    render_table,
)

__all__ = ["QueryResult", "execute_query", "render", "render_json", "render_table"]
