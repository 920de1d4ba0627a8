"""Resolve (file, line) positions to the enclosing top-level Go function."""

from __future__ import annotations

import bisect
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from functools import cache
from pathlib import Path

from tree_sitter import Parser
from tree_sitter_language_pack import get_parser

log = logging.getLogger(__name__)

FUNCTION_NODE_TYPES = frozenset({"function_declaration", "method_declaration"})


@dataclass(frozen=True)
class FunctionRange:
    """Line span (1-based, inclusive) of one top-level function or method."""

    name: str
    start_line: int
    end_line: int

    def contains(self, line: int) -> bool:
        """Return True when `line` falls inside the declaration."""
        return self.start_line <= line <= self.end_line


@cache
def _go_parser() -> Parser:
    return get_parser("go")


def parse_function_ranges(source: bytes) -> list[FunctionRange]:
    """
    Parse Go source and list its top-level function and method declarations.

    Only direct children of the file node are recorded; function literals
    nested inside a body are part of their enclosing declaration.

    Returns
    -------
    list[FunctionRange]
        Declarations in source order.
    """
    tree = _go_parser().parse(source)
    ranges: list[FunctionRange] = []
    for node in tree.root_node.children:
        if node.type not in FUNCTION_NODE_TYPES:
            continue
        name_node = node.child_by_field_name("name")
        if name_node is None:
            continue
        name = source[name_node.start_byte : name_node.end_byte].decode("utf-8", errors="replace")
        ranges.append(
            FunctionRange(
                name=name,
                start_line=node.start_point[0] + 1,
                end_line=node.end_point[0] + 1,
            )
        )
    return ranges


class FunctionIndex:
    """Sorted lookup structure over the function ranges of one file."""

    def __init__(self, ranges: Iterable[FunctionRange]) -> None:
        self._ranges = sorted(ranges, key=lambda r: (r.start_line, r.end_line))
        self._starts = [r.start_line for r in self._ranges]

    @property
    def ranges(self) -> list[FunctionRange]:
        """Ranges ordered by start line."""
        return list(self._ranges)

    def find(self, line: int) -> str:
        """
        Return the name of the declaration containing `line`.

        Returns
        -------
        str
            Function name, or an empty string when the line sits outside every
            declaration (package-level code, comments, blank lines).
        """
        position = bisect.bisect_right(self._starts, line)
        # Top-level declarations never overlap; the last one starting at or
        # before the line is the only candidate.
        if position == 0:
            return ""
        candidate = self._ranges[position - 1]
        return candidate.name if candidate.contains(line) else ""

    def __len__(self) -> int:
        return len(self._ranges)


class FunctionLocator:
    """
    Cache of per-file FunctionIndex objects for one collection run.

    Each source file is read and parsed at most once, however many blocks or
    tests reference it. Safe to share across worker threads.
    """

    def __init__(self) -> None:
        self._indexes: dict[Path, FunctionIndex] = {}
        self._lock = threading.Lock()
        self.parse_count = 0

    def index_for(self, path: Path) -> FunctionIndex:
        """
        Return the cached index for `path`, parsing the file on first use.

        Unreadable files are logged once and cached as an empty index.

        Returns
        -------
        FunctionIndex
            Function ranges of the file.
        """
        key = path.resolve()
        with self._lock:
            index = self._indexes.get(key)
            if index is not None:
                return index
            try:
                source = key.read_bytes()
            except OSError as exc:
                log.warning("function_locator.unreadable path=%s error=%s", key, exc)
                index = FunctionIndex(())
            else:
                index = FunctionIndex(parse_function_ranges(source))
                self.parse_count += 1
                log.debug("function_locator.parsed path=%s functions=%d", key, len(index))
            self._indexes[key] = index
            return index

    def locate(self, path: Path, line: int) -> str:
        """
        Resolve `line` of `path` to its enclosing top-level function name.

        Returns
        -------
        str
            Function name, or an empty string when no declaration contains it.
        """
        return self.index_for(path).find(line)
