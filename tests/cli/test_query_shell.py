"""Tests for the interactive SQL shell."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from types import SimpleNamespace

import pytest
from duckdb import DuckDBPyConnection

from testintel.cli import shell as shell_module
from testintel.cli.shell import CONTINUATION_PROMPT, PROMPT, QueryShell
from testintel.storage.schemas import populate_table
from tests._helpers.expect import expect_equal, expect_true


def _run(store: DuckDBPyConnection, script: str) -> tuple[QueryShell, str]:
    out = io.StringIO()
    shell = QueryShell(store, fmt="json", stdin=io.StringIO(script), stdout=out)
    shell.cmdloop(intro="")
    return shell, out.getvalue()


def test_multiline_statement_runs_on_semicolon(store: DuckDBPyConnection) -> None:
    """
    Lines accumulate until one ends with `;`.

    Raises
    ------
    AssertionError
        If the statement runs early or not at all.
    """
    populate_table(store, "metadata", [("pkg", "./...")])
    _, output = _run(store, 'SELECT "value"\nFROM metadata\nWHERE "key" = \'pkg\';\nexit\n')
    expect_true('"value": "./..."' in output, message=f"unexpected output {output!r}")
    expect_equal(output.count('"value"'), 1, label="executions")


def test_errors_are_printed_and_loop_continues(store: DuckDBPyConnection) -> None:
    """
    A failing statement prints ERROR and the next statement still runs.

    Raises
    ------
    AssertionError
        If the shell stops after the error.
    """
    _, output = _run(store, "SELECT * FROM nope;\nSELECT 41 + 1 AS answer;\n")
    expect_true("ERROR: " in output, message=f"missing error line in {output!r}")
    expect_true('"answer": 42' in output, message=f"second statement did not run: {output!r}")


def test_prompt_switches_while_accumulating(store: DuckDBPyConnection) -> None:
    """
    The continuation prompt is shown until the statement completes.

    Raises
    ------
    AssertionError
        If the prompt does not switch back.
    """
    shell = QueryShell(store, stdin=io.StringIO(""), stdout=io.StringIO())
    shell.onecmd("SELECT 1")
    expect_equal(shell.prompt, CONTINUATION_PROMPT, label="pending prompt")
    expect_equal(shell.pending, "SELECT 1", label="pending text")
    shell.onecmd("AS one;")
    expect_equal(shell.prompt, PROMPT, label="reset prompt")
    expect_equal(shell.pending, "", label="buffer cleared")


def test_exit_and_eof_stop_the_loop(store: DuckDBPyConnection) -> None:
    """
    `exit`, `quit` and end of input all end the session.

    Raises
    ------
    AssertionError
        If a terminator is not honored.
    """
    shell = QueryShell(store, stdin=io.StringIO(""), stdout=io.StringIO())
    expect_equal(shell.onecmd("exit"), True, label="exit")
    expect_equal(shell.onecmd("quit"), True, label="quit")
    expect_equal(shell.onecmd("EOF"), True, label="EOF")
    expect_equal(shell.onecmd(""), False, label="blank line")


def test_unreadable_history_does_not_stop_startup(
    store: DuckDBPyConnection,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """
    A history file that cannot be read is logged and the shell still starts.

    Raises
    ------
    AssertionError
        If the read error escapes or is not logged.
    """
    history = tmp_path / "history"
    history.write_text("SELECT 1;\n", encoding="utf-8")

    def _denied(path: str) -> None:
        raise PermissionError(13, "Permission denied", path)

    monkeypatch.setattr(shell_module, "readline", SimpleNamespace(read_history_file=_denied))
    shell = QueryShell(store, history_file=history)
    with caplog.at_level(logging.WARNING, logger="testintel.cli.shell"):
        shell.preloop()
    messages = [record.getMessage() for record in caplog.records]
    expect_true(
        any("cannot read shell history" in message for message in messages),
        message=f"missing history warning in {messages!r}",
    )
