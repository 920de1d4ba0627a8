"""Turn the aggregate coverage profile into `all_coverage` rows."""

from __future__ import annotations

import logging
from pathlib import Path

from testintel.ingestion.coverage_profile import CoverageBlock, CoverageProfile, load_profile
from testintel.ingestion.function_locator import FunctionLocator
from testintel.ingestion.packages import SourceResolver, split_profile_name
from testintel.models.rows import CoverageRow

log = logging.getLogger(__name__)


def block_to_row(
    block: CoverageBlock,
    locator: FunctionLocator,
    resolver: SourceResolver,
) -> CoverageRow:
    """
    Resolve one block's enclosing function and flatten it into a row.

    Returns
    -------
    CoverageRow
        Row with package/file split from the profile entry and the function
        containing the block's start line ("" when there is none).
    """
    package, file_name = split_profile_name(block.file)
    function_name = locator.locate(resolver.resolve(block.file), block.start_line)
    return CoverageRow(
        package=package,
        file=file_name,
        start_line=block.start_line,
        start_col=block.start_col,
        end_line=block.end_line,
        end_col=block.end_col,
        stmt_num=block.num_stmt,
        count=block.count,
        function_name=function_name,
    )


def build_coverage_rows(
    profile: CoverageProfile,
    locator: FunctionLocator,
    resolver: SourceResolver,
) -> list[CoverageRow]:
    """
    Convert every block of a parsed profile into a CoverageRow.

    Returns
    -------
    list[CoverageRow]
        Rows in profile order.
    """
    return [block_to_row(block, locator, resolver) for block in profile.blocks()]


def collect_coverage_rows(
    profile_path: Path,
    locator: FunctionLocator,
    resolver: SourceResolver,
) -> list[CoverageRow]:
    """
    Parse the aggregate profile and resolve function names for every block.

    Returns
    -------
    list[CoverageRow]
        Rows for `all_coverage`.

    Raises
    ------
    ParseError
        Propagated unchanged: a corrupt aggregate profile means the test run
        itself is broken.
    """
    profile = load_profile(profile_path)
    rows = build_coverage_rows(profile, locator, resolver)
    unresolved = sum(1 for row in rows if not row["function_name"])
    log.info(
        "coverage rows=%d files=%d mode=%s outside_functions=%d",
        len(rows),
        len(profile.files),
        profile.mode,
        unresolved,
    )
    return rows
