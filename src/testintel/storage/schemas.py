"""
DuckDB schema for the collected test, coverage and source tables.

The whole schema is one statement-separated script applied in a single
transaction, and it drops everything before re-creating it: the database is a
disposable materialization of one collection run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

import duckdb
from duckdb import DuckDBPyConnection

from testintel.services.errors import PopulateError, SchemaError, problem
from testintel.storage.views import DROP_VIEWS_DDL, VIEW_DDL, VIEW_NAMES

log = logging.getLogger(__name__)

TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "all_tests": ("time", "action", "package", "test", "elapsed", "output"),
    "all_coverage": (
        "package",
        "file",
        "start_line",
        "start_col",
        "end_line",
        "end_col",
        "stmt_num",
        "count",
        "function_name",
    ),
    "test_coverage": (
        "test_name",
        "package",
        "file",
        "start_line",
        "start_col",
        "end_line",
        "end_col",
        "stmt_num",
        "count",
        "function_name",
    ),
    "all_code": ("package", "file", "line_number", "content"),
    "metadata": ("key", "value"),
}

TABLE_NAMES: tuple[str, ...] = tuple(TABLE_COLUMNS)

TABLE_DDL = """
CREATE TABLE all_tests (
    "time" TIMESTAMP NOT NULL,
    "action" VARCHAR NOT NULL,
    package VARCHAR NOT NULL,
    test VARCHAR NOT NULL,
    elapsed DOUBLE,
    "output" VARCHAR
);

CREATE TABLE all_coverage (
    package VARCHAR NOT NULL,
    file VARCHAR NOT NULL,
    start_line INTEGER NOT NULL,
    start_col INTEGER NOT NULL,
    end_line INTEGER NOT NULL,
    end_col INTEGER NOT NULL,
    stmt_num INTEGER NOT NULL,
    "count" INTEGER NOT NULL,
    function_name VARCHAR NOT NULL
);

CREATE TABLE test_coverage (
    test_name VARCHAR NOT NULL,
    package VARCHAR NOT NULL,
    file VARCHAR NOT NULL,
    start_line INTEGER NOT NULL,
    start_col INTEGER NOT NULL,
    end_line INTEGER NOT NULL,
    end_col INTEGER NOT NULL,
    stmt_num INTEGER NOT NULL,
    "count" INTEGER NOT NULL,
    function_name VARCHAR
);

CREATE TABLE all_code (
    package VARCHAR NOT NULL,
    file VARCHAR NOT NULL,
    line_number INTEGER NOT NULL,
    content VARCHAR NOT NULL
);

CREATE TABLE metadata (
    "key" VARCHAR NOT NULL,
    "value" VARCHAR
);
"""

DROP_TABLES_DDL = "\n".join(f"DROP TABLE IF EXISTS {name};" for name in reversed(TABLE_NAMES))

SCHEMA_SCRIPT = "\n".join((DROP_VIEWS_DDL, DROP_TABLES_DDL, TABLE_DDL, VIEW_DDL))


@dataclass(frozen=True)
class BatchResult:
    """Result metadata for a population pass."""

    table: str
    rows: int
    duration_s: float


def _quote(identifier: str) -> str:
    """
    Quote an identifier for DuckDB.

    Returns
    -------
    str
        Identifier wrapped in double quotes with internal quotes escaped.
    """
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def split_statements(script: str) -> list[str]:
    """
    Split a schema script on `;` into non-empty statements.

    Returns
    -------
    list[str]
        Stripped statements without their terminators.
    """
    return [stmt.strip() for stmt in script.split(";") if stmt.strip()]


def apply_schema_script(con: DuckDBPyConnection, script: str = SCHEMA_SCRIPT) -> int:
    """
    Apply every statement of `script` atomically.

    Returns
    -------
    int
        Number of statements executed.

    Raises
    ------
    SchemaError
        If any statement fails; the transaction is rolled back so no table or
        view from the script remains.
    """
    statements = split_statements(script)
    con.begin()
    for stmt in statements:
        try:
            con.execute(stmt)
        except duckdb.Error as exc:
            con.rollback()
            raise SchemaError(
                problem(
                    code="store.schema",
                    title="Failed to apply schema",
                    detail=f"failed to execute statement {stmt!r}: {exc}",
                    extras={"statement": stmt},
                )
            ) from exc
    con.commit()
    log.info("schema applied statements=%d", len(statements))
    return len(statements)


def insert_sql(table: str) -> str:
    """
    Build the parameterized INSERT statement for a table.

    Returns
    -------
    str
        INSERT statement with one placeholder per column.

    Raises
    ------
    KeyError
        If the table is not part of the schema.
    """
    columns = TABLE_COLUMNS[table]
    column_sql = ", ".join(_quote(col) for col in columns)
    placeholders = ", ".join("?" for _ in columns)
    return f"INSERT INTO {_quote(table)} ({column_sql}) VALUES ({placeholders})"


def populate_table(
    con: DuckDBPyConnection,
    table: str,
    rows: Sequence[Sequence[object]],
) -> BatchResult:
    """
    Insert one population pass inside its own transaction.

    Earlier passes stay committed when this one fails.

    Returns
    -------
    BatchResult
        Summary of rows inserted and elapsed time.

    Raises
    ------
    PopulateError
        If the insert fails; the pass is rolled back.
    """
    start = time.perf_counter()
    sql = insert_sql(table)
    con.begin()
    try:
        if rows:
            con.executemany(sql, [list(row) for row in rows])
    except duckdb.Error as exc:
        con.rollback()
        raise PopulateError(
            problem(
                code="store.populate",
                title="Failed to populate table",
                detail=f"failed to populate {table}: {exc}",
                extras={"table": table, "rows": len(rows)},
            )
        ) from exc
    con.commit()
    duration = time.perf_counter() - start
    log.info("ingest table=%s rows=%d duration=%.2fs", table, len(rows), duration)
    return BatchResult(table=table, rows=len(rows), duration_s=duration)


def list_tables(con: DuckDBPyConnection) -> list[str]:
    """
    Return the base tables present in the main schema.

    Returns
    -------
    list[str]
        Table names, sorted.
    """
    rows = con.execute(
        """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = 'main' AND table_type = 'BASE TABLE'
        ORDER BY table_name
        """
    ).fetchall()
    return [str(row[0]) for row in rows]


def list_views(con: DuckDBPyConnection) -> list[str]:
    """
    Return the views present in the main schema.

    Returns
    -------
    list[str]
        View names, sorted.
    """
    rows = con.execute(
        """
        SELECT table_name
        FROM information_schema.tables
        WHERE table_schema = 'main' AND table_type = 'VIEW'
        ORDER BY table_name
        """
    ).fetchall()
    return [str(row[0]) for row in rows]


__all__ = [
    "SCHEMA_SCRIPT",
    "TABLE_NAMES",
    "VIEW_NAMES",
    "BatchResult",
    "apply_schema_script",
    "insert_sql",
    "list_tables",
    "list_views",
    "populate_table",
    "split_statements",
]
