"""Tests for the Go coverage profile parser."""

from __future__ import annotations

from pathlib import Path

import pytest

from testintel.ingestion.coverage_profile import (
    CoverageBlock,
    ParseError,
    format_profile,
    load_profile,
    parse_profile,
)
from tests._helpers.expect import expect_equal

SCENARIO = "mode: set\nfoo.go:3.1,5.2 1 1\nfoo.go:7.1,9.2 1 0\n"


def test_parse_scenario_blocks() -> None:
    """
    The header mode and both blocks are returned with their positions.

    Raises
    ------
    AssertionError
        If a field is parsed incorrectly.
    """
    profile = parse_profile(SCENARIO)
    expect_equal(profile.mode, "set", label="mode")
    expect_equal(
        profile.blocks(),
        [
            CoverageBlock("foo.go", 3, 1, 5, 2, 1, 1),
            CoverageBlock("foo.go", 7, 1, 9, 2, 1, 0),
        ],
        label="blocks",
    )


def test_parse_ignores_blank_lines_and_keeps_files_grouped() -> None:
    """
    Blank lines are skipped and blocks are sorted by position within a file.

    Raises
    ------
    AssertionError
        If ordering or grouping is wrong.
    """
    text = (
        "\nmode: count\n\n"
        "example.com/m/b.go:10.2,12.3 2 4\n"
        "example.com/m/a.go:1.1,1.20 1 0\n"
        "\n"
        "example.com/m/b.go:2.1,4.5 3 1\n"
    )
    profile = parse_profile(text)
    expect_equal(sorted(profile.files), ["example.com/m/a.go", "example.com/m/b.go"])
    starts = [block.start for block in profile.files["example.com/m/b.go"]]
    expect_equal(starts, [(2, 1), (10, 2)], label="b.go starts")
    expect_equal(len(profile), 3, label="block count")


def test_duplicate_blocks_merge_by_mode() -> None:
    """
    Repeated ranges merge: `set` keeps 0/1, `count` adds the counts.

    Raises
    ------
    AssertionError
        If merged counts differ.
    """
    body = "x.go:1.1,2.2 1 3\nx.go:1.1,2.2 1 4\n"
    expect_equal(parse_profile(f"mode: count\n{body}").blocks()[0].count, 7, label="count")
    expect_equal(parse_profile(f"mode: atomic\n{body}").blocks()[0].count, 7, label="atomic")
    set_body = "x.go:1.1,2.2 1 0\nx.go:1.1,2.2 1 1\n"
    expect_equal(parse_profile(f"mode: set\n{set_body}").blocks()[0].count, 1, label="set")


def test_header_only_profile_has_no_blocks() -> None:
    """
    A profile with only the header is valid and empty.

    Raises
    ------
    AssertionError
        If blocks are reported.
    """
    profile = parse_profile("mode: set\n")
    expect_equal(profile.blocks(), [], label="blocks")


@pytest.mark.parametrize(
    ("text", "fragment"),
    [
        ("", "header"),
        ("foo.go:3.1,5.2 1 1\n", "header"),
        ("mode: set\nfoo.go:3.1,5.2 1\n", ":2:"),
        ("mode: set\nfoo.go:3.1-5.2 1 1\n", ":2:"),
        ("mode: set\nfoo.go:a.1,5.2 1 1\n", ":2:"),
        ("mode: set\nfoo.go:3.1,5.2 one 1\n", ":2:"),
        ("mode: set\nfoo.go:9.1,5.2 1 1\n", ":2:"),
        ("mode: set\nfoo.go:3.1,5.2 1 -1\n", ":2:"),
    ],
)
def test_malformed_profiles_raise_parse_error(text: str, fragment: str) -> None:
    """
    Grammar violations raise ParseError naming the offending line.

    Raises
    ------
    AssertionError
        If the error message lacks the location.
    """
    with pytest.raises(ParseError) as excinfo:
        parse_profile(text)
    if fragment not in str(excinfo.value):
        pytest.fail(f"expected {fragment!r} in error message, got {excinfo.value}")


def test_load_missing_file_raises_parse_error(tmp_path: Path) -> None:
    """An unreadable profile is a ParseError, never a silent empty profile."""
    with pytest.raises(ParseError, match="cannot open coverage profile"):
        load_profile(tmp_path / "missing.out")


def test_format_round_trip(tmp_path: Path) -> None:
    """
    parse -> format -> parse yields the same blocks.

    Raises
    ------
    AssertionError
        If the round trip changes the profile.
    """
    text = (
        "mode: count\n"
        "example.com/m/a.go:1.13,3.2 1 5\n"
        "example.com/m/a.go:5.1,9.16 4 0\n"
        "example.com/m/sub/b.go:2.1,2.30 1 2\n"
    )
    first = parse_profile(text)
    path = tmp_path / "cover.out"
    path.write_text(format_profile(first), encoding="utf8")
    second = load_profile(path)
    expect_equal(second.mode, first.mode, label="mode")
    expect_equal(set(second.blocks()), set(first.blocks()), label="blocks")
