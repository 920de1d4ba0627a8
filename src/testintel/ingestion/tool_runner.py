"""Structured runner for the Go toolchain with typed results."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import time
from asyncio.subprocess import PIPE
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from testintel.config.models import ToolsConfig

log = logging.getLogger(__name__)


class ToolName(StrEnum):
    """Supported external tools invoked by the collection pipeline."""

    GO = "go"


@dataclass(frozen=True)
class ToolRunResult:
    """Structured output from a tool invocation."""

    tool: ToolName
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_s: float
    output_path: Path | None = None

    @property
    def ok(self) -> bool:
        """Return True when the tool completed successfully."""
        return self.returncode == 0


class ToolNotFoundError(RuntimeError):
    """Raised when a configured tool cannot be resolved on the host."""

    def __init__(self, tool: ToolName, configured_path: str) -> None:
        message = f"Tool {tool.value} not found (configured as {configured_path!r})"
        super().__init__(message)
        self.tool = tool
        self.configured_path = configured_path


class ToolLaunchError(RuntimeError):
    """Raised when the operating system refuses to start a resolved tool."""

    def __init__(self, tool: ToolName, executable: str, reason: str) -> None:
        message = f"Tool {tool.value} could not be started ({executable}): {reason}"
        super().__init__(message)
        self.tool = tool
        self.executable = executable


class ToolExecutionError(RuntimeError):
    """Raised when a tool invocation fails irrecoverably (e.g., timeout)."""

    def __init__(self, result: ToolRunResult) -> None:
        message = (
            f"Tool {result.tool.value} failed (code={result.returncode})\n"
            f"Args: {result.args}\n"
            f"stderr: {result.stderr.strip()}"
        )
        super().__init__(message)
        self.result = result


class ToolRunner:
    """Run external tools with configured executables and environment overrides."""

    def __init__(
        self,
        *,
        tools_config: ToolsConfig | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.tools_config = tools_config or ToolsConfig.default()
        self.base_env = dict(base_env or {})

    @staticmethod
    def _coerce_tool(tool: ToolName | str) -> ToolName:
        if isinstance(tool, ToolName):
            return tool
        try:
            return ToolName(tool)
        except ValueError as exc:
            message = f"Unknown tool {tool!r}"
            raise ValueError(message) from exc

    def _resolve_executable(self, tool: ToolName) -> str:
        configured = self.tools_config.resolve_path(tool)
        candidate_path = Path(configured)
        if candidate_path.is_file():
            return str(candidate_path)
        discovered = shutil.which(configured)
        if discovered is None:
            raise ToolNotFoundError(tool, configured)
        return discovered

    def _build_command(
        self,
        tool: ToolName,
        args: Sequence[str],
        *,
        executable: str | None = None,
    ) -> list[str]:
        resolved = executable or self._resolve_executable(tool)
        if args and args[0] in {tool.value, resolved, self.tools_config.resolve_path(tool)}:
            cmd_args = list(args[1:])
        else:
            cmd_args = list(args)
        return [resolved, *cmd_args]

    async def run_async(
        self,
        tool: ToolName | str,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        output_path: Path | None = None,
        timeout_s: float | None = None,
    ) -> ToolRunResult:
        """
        Execute a tool asynchronously and capture stdout/stderr.

        A non-zero exit status is returned, not raised: for `go test` it is
        the normal signal that some test failed.

        Parameters
        ----------
        tool
            Tool identifier to invoke.
        args
            Argument vector (with or without the executable name).
        cwd
            Optional working directory.
        output_path
            Optional path expected to be written by the tool.
        timeout_s
            Optional timeout in seconds.

        Returns
        -------
        ToolRunResult
            Structured process result including stdout, stderr, and exit code.

        Raises
        ------
        ToolNotFoundError
            When the configured tool executable cannot be located.
        ToolLaunchError
            When the executable exists but cannot be started.
        ToolExecutionError
            When the subprocess times out.
        """
        tool_enum = self._coerce_tool(tool)
        executable = self._resolve_executable(tool_enum)
        cmd = self._build_command(tool_enum, args, executable=executable)
        env = self.tools_config.build_env(tool_enum, base_env=self.base_env)
        start_ts = time.perf_counter()

        log.debug("tool.run tool=%s args=%s cwd=%s", tool_enum.value, cmd[1:], cwd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd) if cwd is not None else None,
                stdout=PIPE,
                stderr=PIPE,
                env=env if env else None,
            )
        except FileNotFoundError as exc:
            raise ToolNotFoundError(tool_enum, executable) from exc
        except OSError as exc:
            raise ToolLaunchError(tool_enum, executable, str(exc)) from exc

        try:
            stdout_b, stderr_b = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
        except TimeoutError as exc:
            proc.kill()
            await proc.communicate()
            duration = time.perf_counter() - start_ts
            result = ToolRunResult(
                tool=tool_enum,
                args=tuple(cmd[1:]),
                returncode=proc.returncode or 1,
                stdout="",
                stderr="timed out",
                duration_s=duration,
                output_path=output_path,
            )
            raise ToolExecutionError(result) from exc

        duration = time.perf_counter() - start_ts
        stdout = stdout_b.decode(errors="replace")
        stderr = stderr_b.decode(errors="replace")
        return ToolRunResult(
            tool=tool_enum,
            args=tuple(cmd[1:]),
            returncode=proc.returncode if proc.returncode is not None else 1,
            stdout=stdout,
            stderr=stderr,
            duration_s=duration,
            output_path=output_path,
        )

    def run(
        self,
        tool: ToolName | str,
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        output_path: Path | None = None,
        timeout_s: float | None = None,
    ) -> ToolRunResult:
        """
        Execute a tool synchronously.

        Returns
        -------
        ToolRunResult
            Structured result from :meth:`run_async`.
        """
        return asyncio.run(
            self.run_async(
                tool,
                args,
                cwd=cwd,
                output_path=output_path,
                timeout_s=timeout_s,
            )
        )

    @staticmethod
    def iter_json_stream(text: str) -> list[object]:
        """
        Decode a stream of concatenated JSON values (as printed by `go list -json`).

        Returns
        -------
        list[object]
            Decoded values in stream order.

        Raises
        ------
        json.JSONDecodeError
            If the stream contains malformed JSON.
        """
        decoder = json.JSONDecoder()
        values: list[object] = []
        index = 0
        length = len(text)
        while True:
            while index < length and text[index].isspace():
                index += 1
            if index >= length:
                return values
            value, index = decoder.raw_decode(text, index)
            values.append(value)
