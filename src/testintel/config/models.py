"""
Configuration models used by the testintel CLI and collection pipeline.

These Pydantic models normalize the repository root, the Go package specifiers,
the database location, and external tool paths so the collectors can rely on
consistent settings.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

if TYPE_CHECKING:
    from testintel.ingestion.tool_runner import ToolName


DEFAULT_TOOL_TIMEOUT_S = 600.0
DEFAULT_DB_NAME = "testintel.duckdb"
GO_BIN_ENV = "TESTINTEL_GO_BIN"


class ToolsConfig(BaseModel):
    """
    External tool configuration used by the collectors.

    Only the Go toolchain is invoked: `go list` for package discovery and
    `go test` for the aggregate run and the isolated per-test re-runs.
    """

    go_bin: str = Field("go", description="Path to the go binary")
    default_timeout_s: float = Field(
        DEFAULT_TOOL_TIMEOUT_S,
        description="Default timeout (seconds) for external tool invocations",
    )

    @classmethod
    def default(cls) -> ToolsConfig:
        """
        Return a tool configuration with baked-in defaults and env overrides.

        Returns
        -------
        ToolsConfig
            Configuration populated with built-in binary names.
        """
        overrides: dict[str, str] = {}
        go_bin = os.getenv(GO_BIN_ENV)
        if go_bin:
            overrides["go_bin"] = go_bin
        return cls.model_validate(overrides)

    @classmethod
    def with_overrides(cls, **overrides: str | float | None) -> ToolsConfig:
        """
        Construct a ToolsConfig using defaults merged with provided overrides.

        Returns
        -------
        ToolsConfig
            Fully-populated configuration with overrides applied.
        """
        return cls.default().model_copy(
            update={key: value for key, value in overrides.items() if value is not None}
        )

    def resolve_path(self, tool: ToolName | str) -> str:
        """
        Return the configured executable path for a tool or fall back to its name.

        Returns
        -------
        str
            Executable path or name to invoke.
        """
        name = str(tool)
        mapping = {"go": self.go_bin}
        return str(mapping.get(name, name))

    def build_env(
        self,
        tool: ToolName | str,
        *,
        base_env: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """
        Construct an environment mapping for a tool invocation.

        The current process environment is inherited so the Go toolchain keeps
        its GOPATH/GOCACHE/HOME settings; `base_env` entries win.

        Returns
        -------
        dict[str, str]
            Environment variables to supply to the subprocess call.
        """
        _ = tool
        env: dict[str, str] = dict(os.environ)
        env.update(base_env or {})
        return env


class CollectConfig(BaseModel):
    """
    Settings for one collection run.

    Relative `db_path` and `work_dir` values are resolved against `repo_root`.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    repo_root: Path = Field(default=Path(), description="Go module root the tests run from")
    packages: list[str] = Field(
        default_factory=lambda: ["./..."],
        description="Package specifiers passed to go list / go test",
    )
    db_path: Path = Field(default=Path(DEFAULT_DB_NAME), description="DuckDB database path")
    work_dir: Path | None = Field(
        default=None,
        description="Scratch directory for coverage profiles (default: <repo_root>/.testintel)",
    )
    workers: int = Field(default=1, ge=1, description="Concurrent isolated test re-runs")
    test_timeout_s: float | None = Field(
        default=None,
        description="Timeout for a single isolated test re-run (default: tools timeout)",
    )
    tools: ToolsConfig = Field(default_factory=ToolsConfig.default)

    @field_validator("repo_root", "db_path", "work_dir", mode="before")
    @classmethod
    def _expand_user(cls, v: Path | str | None) -> Path | None:
        if v is None:
            return None
        return Path(str(v)).expanduser()

    @field_validator("packages", mode="before")
    @classmethod
    def _split_packages(cls, v: str | list[str] | None) -> list[str]:
        if v is None:
            return ["./..."]
        if isinstance(v, str):
            return v.split() or ["./..."]
        return list(v) or ["./..."]

    @model_validator(mode="after")
    def _resolve_paths(self) -> Self:
        """
        Resolve relative paths against repo_root and set defaults.

        Returns
        -------
        Self
            Instance with absolute paths applied.
        """
        repo_root = self.repo_root.resolve()
        db_path = self.db_path
        if str(db_path) != ":memory:" and not db_path.is_absolute():
            db_path = (repo_root / db_path).resolve()
        work_dir = self.work_dir
        if work_dir is None:
            work_dir = repo_root / ".testintel"
        elif not work_dir.is_absolute():
            work_dir = (repo_root / work_dir).resolve()

        self.repo_root = repo_root
        self.db_path = db_path
        self.work_dir = work_dir
        return self

    @property
    def scratch_dir(self) -> Path:
        """
        Scratch directory for profile artifacts.

        Returns
        -------
        Path
            Resolved work directory.

        Raises
        ------
        RuntimeError
            If work_dir was not populated.
        """
        if self.work_dir is None:
            message = "work_dir was not resolved; ensure CollectConfig._resolve_paths ran."
            raise RuntimeError(message)
        return self.work_dir

    @property
    def aggregate_profile_path(self) -> Path:
        """
        Location of the profile written by the aggregate `go test` run.

        Returns
        -------
        Path
            Path under the scratch directory.
        """
        return self.scratch_dir / "coverage.out"

    @property
    def per_test_timeout_s(self) -> float:
        """
        Timeout applied to each isolated test re-run.

        Returns
        -------
        float
            Explicit per-test timeout or the tools default.
        """
        if self.test_timeout_s is not None:
            return self.test_timeout_s
        return self.tools.default_timeout_s
