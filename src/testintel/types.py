"""Shared TypedDicts describing the JSON emitted by the Go toolchain."""

from __future__ import annotations

from typing import TypedDict


class GoModuleEntry(TypedDict, total=False):
    """Module stanza of a `go list -json` package object."""

    Path: str
    Dir: str


class GoListPackage(TypedDict, total=False):
    """Subset of a `go list -json` package object."""

    Dir: str
    ImportPath: str
    Name: str
    Module: GoModuleEntry
    GoFiles: list[str]
    TestGoFiles: list[str]
    XTestGoFiles: list[str]


class GoTestRecord(TypedDict, total=False):
    """Shape of one `go test -json` (test2json) record."""

    Time: str
    Action: str
    Package: str
    Test: str
    Elapsed: float
    Output: str
    FailedBuild: str
    ImportPath: str
