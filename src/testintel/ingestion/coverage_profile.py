"""
Parse and format Go block coverage profiles.

A profile is one `mode:` header followed by one line per statement block:

    mode: set
    example.com/pkg/foo.go:3.1,5.2 1 1

Blocks are kept grouped by file and sorted by start position. Blocks reported
more than once for the same range are merged the way the Go toolchain merges
them (`set` keeps the logical or, `count`/`atomic` add up).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

_HEADER_PREFIX = "mode:"
_BLOCK_RE = re.compile(r"^(?P<file>.+):(?P<pos>[^:]+?) (?P<stmts>\S+) (?P<count>\S+)$")
_POS_RE = re.compile(r"^([^.,\s]+)\.([^.,\s]+),([^.,\s]+)\.([^.,\s]+)$")


class ParseError(ValueError):
    """Raised when a coverage profile cannot be read or does not follow the grammar."""

    def __init__(
        self, message: str, *, source: str | None = None, line_no: int | None = None
    ) -> None:
        location = source or "<profile>"
        if line_no is not None:
            location = f"{location}:{line_no}"
        super().__init__(f"{location}: {message}")
        self.source = source
        self.line_no = line_no


@dataclass(frozen=True, order=True)
class CoverageBlock:
    """One contiguous statement range and its execution count."""

    file: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    num_stmt: int
    count: int

    @property
    def start(self) -> tuple[int, int]:
        """Start position as (line, column)."""
        return self.start_line, self.start_col

    @property
    def end(self) -> tuple[int, int]:
        """End position as (line, column)."""
        return self.end_line, self.end_col

    def as_tuple(self) -> tuple[str, int, int, int, int, int, int]:
        """
        Flatten the block for set comparisons.

        Returns
        -------
        tuple[str, int, int, int, int, int, int]
            File, positions, statement count and execution count.
        """
        return (
            self.file,
            self.start_line,
            self.start_col,
            self.end_line,
            self.end_col,
            self.num_stmt,
            self.count,
        )


@dataclass
class CoverageProfile:
    """Parsed profile: the counting mode and blocks grouped by file."""

    mode: str
    files: dict[str, list[CoverageBlock]] = field(default_factory=dict)

    def blocks(self) -> list[CoverageBlock]:
        """
        Return every block, file by file in first-seen order.

        Returns
        -------
        list[CoverageBlock]
            Flattened block list.
        """
        return [block for blocks in self.files.values() for block in blocks]

    def __len__(self) -> int:
        return sum(len(blocks) for blocks in self.files.values())


def _to_int(raw: str, name: str, *, source: str | None, line_no: int) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        message = f"non-numeric {name} {raw!r}"
        raise ParseError(message, source=source, line_no=line_no) from exc
    if value < 0:
        message = f"negative {name} {value}"
        raise ParseError(message, source=source, line_no=line_no)
    return value


def _parse_block(line: str, *, source: str | None, line_no: int) -> CoverageBlock:
    match = _BLOCK_RE.match(line)
    pos = _POS_RE.match(match.group("pos")) if match else None
    if match is None or pos is None:
        message = f"line does not match <file>:<line>.<col>,<line>.<col> <stmts> <count>: {line!r}"
        raise ParseError(message, source=source, line_no=line_no)

    start_line, start_col, end_line, end_col = (
        _to_int(raw, name, source=source, line_no=line_no)
        for raw, name in zip(
            pos.groups(), ("start line", "start column", "end line", "end column"), strict=True
        )
    )
    block = CoverageBlock(
        file=match.group("file"),
        start_line=start_line,
        start_col=start_col,
        end_line=end_line,
        end_col=end_col,
        num_stmt=_to_int(match.group("stmts"), "statement count", source=source, line_no=line_no),
        count=_to_int(match.group("count"), "execution count", source=source, line_no=line_no),
    )
    if block.start > block.end:
        message = f"block starts after it ends: {line!r}"
        raise ParseError(message, source=source, line_no=line_no)
    if block.num_stmt < 1:
        message = f"block has no statements: {line!r}"
        raise ParseError(message, source=source, line_no=line_no)
    return block


def _merge(mode: str, blocks: list[CoverageBlock], *, source: str | None) -> list[CoverageBlock]:
    merged: list[CoverageBlock] = []
    for block in sorted(blocks, key=lambda b: (b.start, b.end)):
        if merged and merged[-1].start == block.start and merged[-1].end == block.end:
            previous = merged[-1]
            if previous.num_stmt != block.num_stmt:
                message = (
                    f"inconsistent statement count for {block.file} "
                    f"{block.start_line}.{block.start_col}: {previous.num_stmt} != {block.num_stmt}"
                )
                raise ParseError(message, source=source)
            if mode == "set":
                count = 1 if previous.count or block.count else 0
            else:
                count = previous.count + block.count
            merged[-1] = CoverageBlock(
                file=previous.file,
                start_line=previous.start_line,
                start_col=previous.start_col,
                end_line=previous.end_line,
                end_col=previous.end_col,
                num_stmt=previous.num_stmt,
                count=count,
            )
            continue
        merged.append(block)
    return merged


def parse_profile(text: str, *, source: str | None = None) -> CoverageProfile:
    """
    Parse profile text into a CoverageProfile.

    Parameters
    ----------
    text
        Full profile contents.
    source
        Optional name used in error messages (usually the file path).

    Returns
    -------
    CoverageProfile
        Mode plus merged, position-sorted blocks per file.

    Raises
    ------
    ParseError
        If the header is missing or any block line is malformed.
    """
    mode: str | None = None
    raw: dict[str, list[CoverageBlock]] = {}
    for line_no, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped:
            continue
        if mode is None:
            if not stripped.startswith(_HEADER_PREFIX):
                message = f"missing '{_HEADER_PREFIX}' header, got {stripped!r}"
                raise ParseError(message, source=source, line_no=line_no)
            mode = stripped[len(_HEADER_PREFIX) :].strip()
            if not mode:
                message = "empty coverage mode in header"
                raise ParseError(message, source=source, line_no=line_no)
            continue
        block = _parse_block(stripped, source=source, line_no=line_no)
        raw.setdefault(block.file, []).append(block)

    if mode is None:
        message = f"missing '{_HEADER_PREFIX}' header (empty profile)"
        raise ParseError(message, source=source)

    files = {name: _merge(mode, blocks, source=source) for name, blocks in raw.items()}
    return CoverageProfile(mode=mode, files=files)


def load_profile(path: Path) -> CoverageProfile:
    """
    Read and parse a profile file.

    Returns
    -------
    CoverageProfile
        Parsed profile.

    Raises
    ------
    ParseError
        If the file cannot be opened or its contents are malformed.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        message = f"cannot open coverage profile: {exc}"
        raise ParseError(message, source=str(path)) from exc
    return parse_profile(text, source=str(path))


def format_profile(profile: CoverageProfile) -> str:
    """
    Serialize a profile back into the textual grammar.

    Returns
    -------
    str
        Header line plus one line per block, newline-terminated.
    """
    lines = [f"{_HEADER_PREFIX} {profile.mode}"]
    lines.extend(
        f"{b.file}:{b.start_line}.{b.start_col},{b.end_line}.{b.end_col} {b.num_stmt} {b.count}"
        for b in profile.blocks()
    )
    return "\n".join(lines) + "\n"
