"""Interactive SQL shell over a populated store."""

from __future__ import annotations

import cmd
import logging
from pathlib import Path
from typing import IO

import duckdb
from duckdb import DuckDBPyConnection

from testintel.serving.query import OutputFormat, execute_query, render

try:
    import readline
except ImportError:  # pragma: no cover - platforms without GNU readline
    readline = None  # type: ignore[assignment]

log = logging.getLogger(__name__)

HISTORY_FILENAME = "~/.testintel_history"
HISTORY_SIZE = 1000
PROMPT = "> "
CONTINUATION_PROMPT = ">>> "


class QueryShell(cmd.Cmd):
    """
    Line-oriented SQL console.

    Input accumulates until a line ends with `;`, then the whole statement is
    executed. Errors are printed and the session continues.
    """

    prompt = PROMPT
    intro = "testintel shell: end statements with ';', 'exit' to quit."

    def __init__(
        self,
        con: DuckDBPyConnection,
        *,
        fmt: OutputFormat = "table",
        stdin: IO[str] | None = None,
        stdout: IO[str] | None = None,
        history_file: Path | None = None,
    ) -> None:
        super().__init__(stdin=stdin, stdout=stdout)
        if stdin is not None:
            self.use_rawinput = False
        self.con = con
        self.fmt: OutputFormat = fmt
        self.history_file = history_file
        self._buffer: list[str] = []

    @property
    def pending(self) -> str:
        """Statement text accumulated so far."""
        return "\n".join(self._buffer)

    def preloop(self) -> None:
        """Load history before the first prompt."""
        super().preloop()
        path = self._history_path()
        if path is not None and path.exists():
            try:
                readline.read_history_file(str(path))
            except OSError as exc:
                log.warning("cannot read shell history %s: %s", path, exc)

    def postloop(self) -> None:
        """Persist history when the loop ends."""
        super().postloop()
        path = self._history_path()
        if path is not None:
            readline.set_history_length(HISTORY_SIZE)
            try:
                readline.write_history_file(str(path))
            except OSError as exc:
                log.warning("cannot write shell history %s: %s", path, exc)

    def _history_path(self) -> Path | None:
        if readline is None or not self.use_rawinput:
            return None
        if self.history_file is not None:
            return self.history_file
        return Path(HISTORY_FILENAME).expanduser()

    def onecmd(self, line: str) -> bool:
        """
        Consume one input line.

        Returns
        -------
        bool
            True to stop the loop.
        """
        stripped = line.strip()
        if stripped == "EOF":
            self.stdout.write("\n")
            return True
        if not self._buffer:
            if stripped in {"exit", "quit"}:
                return True
            if not stripped:
                return False

        self._buffer.append(line)
        if not stripped.endswith(";"):
            self.prompt = CONTINUATION_PROMPT
            return False

        statement = self.pending
        self._buffer.clear()
        self.prompt = PROMPT
        self.run_statement(statement)
        return False

    def run_statement(self, sql: str) -> None:
        """Execute one statement and print its rendered result or the error."""
        try:
            result = execute_query(self.con, sql)
        except duckdb.Error as exc:
            self.stdout.write(f"ERROR: {exc}\n")
            return
        output = render(result, self.fmt)
        if output:
            self.stdout.write(f"{output}\n")
