"""DuckDB client utilities for the testintel store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

import duckdb

from testintel.storage.schemas import apply_schema_script

log = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


@dataclass
class DuckDBConfig:
    """Configuration for connecting to a testintel DuckDB database."""

    db_path: Path | str
    read_only: bool = False
    apply_schema: bool = False

    @property
    def in_memory(self) -> bool:
        """True for a transient in-process database."""
        return str(self.db_path) == MEMORY_DB


class DuckDBClient:
    """Thin wrapper around a DuckDB connection."""

    def __init__(self, cfg: DuckDBConfig) -> None:
        self.cfg = cfg
        self._con: duckdb.DuckDBPyConnection | None = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Establish a DuckDB connection, applying the schema when requested.

        Returns
        -------
        duckdb.DuckDBPyConnection
            Live connection configured per `self.cfg`.
        """
        if self._con is not None:
            return self._con

        if self.cfg.in_memory:
            database = MEMORY_DB
        else:
            db_path = Path(self.cfg.db_path)
            if not self.cfg.read_only:
                db_path.parent.mkdir(parents=True, exist_ok=True)
            database = str(db_path)

        log.info("Connecting to DuckDB at %s (read_only=%s)", database, self.cfg.read_only)
        con = duckdb.connect(database, read_only=self.cfg.read_only)
        if self.cfg.apply_schema and not self.cfg.read_only:
            apply_schema_script(con)

        self._con = con
        return self._con

    @property
    def con(self) -> duckdb.DuckDBPyConnection:
        """
        Expose the lazily created connection.

        Returns
        -------
        duckdb.DuckDBPyConnection
            Active DuckDB connection.
        """
        return self.connect()

    def close(self) -> None:
        """Close the current connection if it exists."""
        if self._con is not None:
            log.info("Closing DuckDB connection to %s", self.cfg.db_path)
            self._con.close()
            self._con = None

    def __enter__(self) -> duckdb.DuckDBPyConnection:
        """
        Open the connection when entering a context manager.

        Returns
        -------
        duckdb.DuckDBPyConnection
            Active DuckDB connection.
        """
        return self.connect()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the connection when exiting a context manager."""
        self.close()


def connect_store(
    db_path: Path | str,
    *,
    read_only: bool = False,
    apply_schema: bool = False,
) -> duckdb.DuckDBPyConnection:
    """
    Open a store connection, optionally (re)creating the schema.

    Parameters
    ----------
    db_path:
        Database file, or ":memory:".
    read_only:
        Whether to open in read-only mode (skips DDL when True).
    apply_schema:
        When True, drop and re-create every table and view.

    Returns
    -------
    duckdb.DuckDBPyConnection
        Live connection.
    """
    return DuckDBClient(
        DuckDBConfig(db_path=db_path, read_only=read_only, apply_schema=apply_schema)
    ).con


def reset_store_file(db_path: Path | str) -> None:
    """Delete a database file (and its WAL) so the next run starts from scratch."""
    if str(db_path) == MEMORY_DB:
        return
    path = Path(db_path)
    for candidate in (path, path.with_name(f"{path.name}.wal")):
        if candidate.exists():
            log.info("Removing existing database file %s", candidate)
            candidate.unlink()
