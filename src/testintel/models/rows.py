"""Typed row models for DuckDB inserts with helpers to keep column order stable."""

from __future__ import annotations

from datetime import datetime
from typing import TypedDict

__all__ = [
    "CodeLineRow",
    "CoverageRow",
    "MetadataRow",
    "TestCoverageRow",
    "TestRow",
    "code_line_to_tuple",
    "coverage_row_to_tuple",
    "metadata_row_to_tuple",
    "test_coverage_row_to_tuple",
    "test_row_to_tuple",
]


class TestRow(TypedDict):
    """Row shape for all_tests inserts."""

    time: datetime
    action: str
    package: str
    test: str
    elapsed: float | None
    output: str | None


def test_row_to_tuple(row: TestRow) -> tuple[object, ...]:
    """
    Serialize a TestRow into the INSERT column order.

    Returns
    -------
    tuple[object, ...]
        Values in the order expected by all_tests INSERTs.
    """
    return (
        row["time"],
        row["action"],
        row["package"],
        row["test"],
        row["elapsed"],
        row["output"],
    )


class CoverageRow(TypedDict):
    """Row shape for all_coverage inserts."""

    package: str
    file: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    stmt_num: int
    count: int
    function_name: str


def coverage_row_to_tuple(row: CoverageRow) -> tuple[object, ...]:
    """
    Serialize a CoverageRow into the INSERT column order.

    Returns
    -------
    tuple[object, ...]
        Values in the order expected by all_coverage INSERTs.
    """
    return (
        row["package"],
        row["file"],
        row["start_line"],
        row["start_col"],
        row["end_line"],
        row["end_col"],
        row["stmt_num"],
        row["count"],
        row["function_name"],
    )


class TestCoverageRow(TypedDict):
    """Row shape for test_coverage inserts."""

    test_name: str
    package: str
    file: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    stmt_num: int
    count: int
    function_name: str | None


def test_coverage_row_to_tuple(row: TestCoverageRow) -> tuple[object, ...]:
    """
    Serialize a TestCoverageRow into the INSERT column order.

    Returns
    -------
    tuple[object, ...]
        Values in the order expected by test_coverage INSERTs.
    """
    return (
        row["test_name"],
        row["package"],
        row["file"],
        row["start_line"],
        row["start_col"],
        row["end_line"],
        row["end_col"],
        row["stmt_num"],
        row["count"],
        row["function_name"],
    )


class CodeLineRow(TypedDict):
    """Row shape for all_code inserts."""

    package: str
    file: str
    line_number: int
    content: str


def code_line_to_tuple(row: CodeLineRow) -> tuple[object, ...]:
    """
    Serialize a CodeLineRow into the INSERT column order.

    Returns
    -------
    tuple[object, ...]
        Values in the order expected by all_code INSERTs.
    """
    return (row["package"], row["file"], row["line_number"], row["content"])


class MetadataRow(TypedDict):
    """Row shape for metadata inserts."""

    key: str
    value: str


def metadata_row_to_tuple(row: MetadataRow) -> tuple[object, ...]:
    """
    Serialize a MetadataRow into the INSERT column order.

    Returns
    -------
    tuple[object, ...]
        Values in the order expected by metadata INSERTs.
    """
    return (row["key"], row["value"])
