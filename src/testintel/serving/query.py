"""Run caller SQL against the store and render the result."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import pandas as pd
from duckdb import DuckDBPyConnection

log = logging.getLogger(__name__)

OutputFormat = Literal["json", "table"]


@dataclass(frozen=True)
class QueryResult:
    """Column names plus row tuples of one statement."""

    columns: list[str] = field(default_factory=list)
    rows: list[tuple[Any, ...]] = field(default_factory=list)

    @property
    def has_result_set(self) -> bool:
        """False for statements (DDL, INSERT) that return no columns."""
        return bool(self.columns)

    def records(self) -> list[dict[str, Any]]:
        """
        Return rows as column-to-value mappings.

        Returns
        -------
        list[dict[str, Any]]
            One dict per row, keyed by column name.
        """
        return [dict(zip(self.columns, row, strict=True)) for row in self.rows]

    def to_frame(self) -> pd.DataFrame:
        """
        Return the result as a pandas DataFrame.

        Returns
        -------
        pd.DataFrame
            Frame with the result columns in order.
        """
        return pd.DataFrame.from_records(self.rows, columns=self.columns)


def execute_query(con: DuckDBPyConnection, sql: str) -> QueryResult:
    """
    Execute caller-supplied SQL verbatim.

    Returns
    -------
    QueryResult
        Columns and rows; empty when the statement produces no result set.

    Raises
    ------
    duckdb.Error
        Propagated unchanged for invalid SQL.
    """
    relation = con.sql(sql)
    if relation is None:
        return QueryResult()
    columns = [str(col) for col in relation.columns]
    rows = [tuple(row) for row in relation.fetchall()]
    log.debug("query columns=%d rows=%d", len(columns), len(rows))
    return QueryResult(columns=columns, rows=rows)


def render_json(result: QueryResult) -> str:
    """
    Render rows as a JSON array of objects.

    Values JSON cannot represent (timestamps, decimals) are stringified.

    Returns
    -------
    str
        Indented JSON text.
    """
    return json.dumps(result.records(), indent=2, default=str)


def render_table(result: QueryResult) -> str:
    """
    Render rows as a fixed-width text table.

    Returns
    -------
    str
        Table text; empty for statements without a result set.
    """
    if not result.has_result_set:
        return ""
    return result.to_frame().to_string(index=False)


def render(result: QueryResult, fmt: OutputFormat = "json") -> str:
    """
    Render a result in the requested format.

    Returns
    -------
    str
        Rendered text.
    """
    if fmt == "table":
        return render_table(result)
    return render_json(result)
