"""Load every source line of the discovered packages into `all_code` rows."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from testintel.ingestion.packages import GoPackage
from testintel.models.rows import CodeLineRow

log = logging.getLogger(__name__)


def _package_files(package: GoPackage) -> list[str]:
    if package.source_files:
        return sorted(package.source_files)
    # `go list` leaves the file lists empty for some error packages.
    return sorted(path.name for path in package.dir.glob("*.go") if path.is_file())


def iter_code_lines(package: GoPackage) -> Iterator[CodeLineRow]:
    """
    Yield one row per line of every .go file in a package.

    Lines are split on "\\n" only, so a trailing newline yields a final empty
    line and carriage returns stay in the content.

    Yields
    ------
    CodeLineRow
        Rows keyed by the package import path and the base file name.
    """
    for file_name in _package_files(package):
        path = package.dir / file_name
        text = path.read_text(encoding="utf-8", errors="replace")
        for line_number, content in enumerate(text.split("\n"), start=1):
            yield CodeLineRow(
                package=package.import_path,
                file=file_name,
                line_number=line_number,
                content=content,
            )


def collect_code_lines(packages: Iterable[GoPackage]) -> list[CodeLineRow]:
    """
    Read the source of every package.

    Returns
    -------
    list[CodeLineRow]
        Rows for `all_code`.

    Raises
    ------
    OSError
        If a listed source file cannot be read.
    """
    rows: list[CodeLineRow] = []
    files = 0
    for package in packages:
        before = len(rows)
        rows.extend(iter_code_lines(package))
        files += len(_package_files(package))
        log.debug("code package=%s lines=%d", package.import_path, len(rows) - before)
    log.info("code files=%d lines=%d", files, len(rows))
    return rows
