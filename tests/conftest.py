"""Pytest configuration for the testintel test suite."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from duckdb import DuckDBPyConnection

from testintel.storage.duckdb_client import connect_store
from tests._helpers.builders import FOO_GO, FOO_TEST_GO, MODULE, go_list_entry, write_package
from tests._helpers.fakes import FakeGoToolchain


@pytest.fixture
def store() -> Iterator[DuckDBPyConnection]:
    """Provide an in-memory store with the schema applied.

    Yields
    ------
    DuckDBPyConnection
        Connection closed after the test.
    """
    con = connect_store(":memory:", apply_schema=True)
    try:
        yield con
    finally:
        con.close()


@pytest.fixture
def foo_repo(tmp_path: Path) -> Path:
    """Write a one-package Go module (`example.com/demo/foo`) under tmp_path.

    Returns
    -------
    Path
        Repository root.
    """
    repo = tmp_path / "repo"
    write_package(repo, "foo", {"foo.go": FOO_GO, "foo_test.go": FOO_TEST_GO})
    (repo / "go.mod").write_text(f"module {MODULE}\n\ngo 1.22\n", encoding="utf8")
    return repo


@pytest.fixture
def foo_toolchain(foo_repo: Path) -> FakeGoToolchain:
    """Fake toolchain listing the foo package; events and profiles are set per test.

    Returns
    -------
    FakeGoToolchain
        Toolchain with one package and no scripted runs.
    """
    entry = go_list_entry(
        f"{MODULE}/foo",
        foo_repo / "foo",
        go_files=["foo.go"],
        test_go_files=["foo_test.go"],
    )
    return FakeGoToolchain(packages=[entry])
