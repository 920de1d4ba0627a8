"""Collection pipeline: run the Go test suite and materialize the store."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

import duckdb
from duckdb import DuckDBPyConnection

from testintel.config.models import CollectConfig
from testintel.ingestion.code_ingest import collect_code_lines
from testintel.ingestion.coverage_ingest import collect_coverage_rows
from testintel.ingestion.coverage_profile import ParseError
from testintel.ingestion.function_locator import FunctionLocator
from testintel.ingestion.packages import (
    GoPackage,
    PackageDiscoveryError,
    SourceResolver,
    list_packages,
)
from testintel.ingestion.test_coverage import SkippedTest, TestCoverageCorrelator
from testintel.ingestion.test_events import (
    BuildFailedError,
    EventDecodeError,
    TestEvent,
    collect_test_events,
)
from testintel.ingestion.tool_runner import (
    ToolExecutionError,
    ToolLaunchError,
    ToolNotFoundError,
    ToolRunner,
)
from testintel.models.rows import (
    MetadataRow,
    TestRow,
    code_line_to_tuple,
    coverage_row_to_tuple,
    metadata_row_to_tuple,
    test_coverage_row_to_tuple,
    test_row_to_tuple,
)
from testintel.services.errors import PipelineError, ProblemError, problem
from testintel.storage.duckdb_client import connect_store, reset_store_file
from testintel.storage.schemas import apply_schema_script, populate_table

log = logging.getLogger(__name__)

T = TypeVar("T")

# Leaf failures that abort a collection run; anything else is a bug and
# propagates untouched.
_FATAL_ERRORS: tuple[type[Exception], ...] = (
    ToolNotFoundError,
    ToolLaunchError,
    ToolExecutionError,
    PackageDiscoveryError,
    EventDecodeError,
    BuildFailedError,
    ParseError,
    OSError,
    duckdb.Error,
)

_STAGE_TITLES = {
    "collect.packages": "Package discovery failed",
    "collect.tests": "Test run failed",
    "collect.coverage": "Coverage collection failed",
    "collect.test_coverage": "Per-test coverage failed",
    "collect.code": "Source collection failed",
    "store.open": "Failed to open store",
    "store.schema": "Failed to apply schema",
    "store.populate": "Failed to populate table",
}


@dataclass
class CollectionContext:
    """Shared state for the stages of one collection run."""

    cfg: CollectConfig
    runner: ToolRunner
    con: DuckDBPyConnection
    cancel: threading.Event | None = None
    locator: FunctionLocator = field(default_factory=FunctionLocator)

    @property
    def repo_root(self) -> Path:
        """Module root the toolchain runs from."""
        return self.cfg.repo_root

    @property
    def packages_label(self) -> str:
        """Package specifiers as given on the command line."""
        return " ".join(self.cfg.packages)


@dataclass(frozen=True)
class CollectionSummary:
    """Counts describing one completed collection run."""

    db_path: str
    packages: tuple[str, ...]
    tests: int
    passed: int
    failed: int
    skipped: int
    coverage_rows: int
    test_coverage_rows: int
    code_rows: int
    correlation_skips: tuple[SkippedTest, ...] = ()
    duration_s: float = 0.0

    def to_dict(self) -> dict[str, object]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, object]
            Summary values with skipped correlations flattened.
        """
        return {
            "db_path": self.db_path,
            "packages": list(self.packages),
            "tests": self.tests,
            "passed": self.passed,
            "failed": self.failed,
            "skipped": self.skipped,
            "coverage_rows": self.coverage_rows,
            "test_coverage_rows": self.test_coverage_rows,
            "code_rows": self.code_rows,
            "correlation_skips": [
                {"package": s.package, "test": s.test, "reason": s.reason}
                for s in self.correlation_skips
            ],
            "duration_s": round(self.duration_s, 3),
        }


def _log_step_start(step: str, ctx: CollectionContext) -> float:
    """
    Emit a start log for a collection step.

    Returns
    -------
    float
        Start timestamp for duration tracking.
    """
    log.info("collect start: %s packages=%s", step, ctx.packages_label)
    return time.perf_counter()


def _log_step_done(step: str, start_ts: float, ctx: CollectionContext) -> None:
    """Emit completion log with duration for a collection step."""
    duration = time.perf_counter() - start_ts
    log.info("collect done: %s packages=%s (%.2fs)", step, ctx.packages_label, duration)


def _run_stage(stage: str, ctx: CollectionContext | None, func: Callable[[], T]) -> T:
    """
    Run one stage, re-raising fatal failures as PipelineError.

    ProblemErrors raised by the store keep their payload (and code).

    Returns
    -------
    T
        Whatever the stage returns.

    Raises
    ------
    PipelineError
        When the stage fails with a known fatal error.
    """
    start_ts = _log_step_start(stage, ctx) if ctx is not None else time.perf_counter()
    try:
        result = func()
    except ProblemError as exc:
        if isinstance(exc, PipelineError):
            raise
        raise PipelineError(exc.problem_detail) from exc
    except _FATAL_ERRORS as exc:
        extras: dict[str, object] = {"error": type(exc).__name__}
        if isinstance(exc, BuildFailedError):
            extras["package"] = exc.package
        raise PipelineError(
            problem(
                code=stage,
                title=_STAGE_TITLES.get(stage, "Collection failed"),
                detail=str(exc),
                extras=extras,
            )
        ) from exc
    if ctx is not None:
        _log_step_done(stage, start_ts, ctx)
    return result


def _test_rows(tests: list[TestEvent]) -> list[TestRow]:
    return [
        TestRow(
            time=event.utc_time,
            action=event.action,
            package=event.package,
            test=event.test,
            elapsed=event.elapsed,
            output=event.output,
        )
        for event in tests
    ]


def _metadata_rows(ctx: CollectionContext, packages: list[GoPackage]) -> list[MetadataRow]:
    return [
        MetadataRow(key="pkg", value=ctx.packages_label),
        MetadataRow(key="repo_root", value=str(ctx.repo_root)),
        MetadataRow(key="collected_at", value=datetime.now(UTC).isoformat()),
        MetadataRow(
            key="packages",
            value=json.dumps([package.import_path for package in packages]),
        ),
    ]


def _open_store(cfg: CollectConfig) -> DuckDBPyConnection:
    reset_store_file(cfg.db_path)
    return connect_store(cfg.db_path)


def collect(
    cfg: CollectConfig,
    *,
    runner: ToolRunner | None = None,
    con: DuckDBPyConnection | None = None,
    cancel: threading.Event | None = None,
) -> CollectionSummary:
    """
    Run the full collection pipeline and populate a fresh store.

    Parameters
    ----------
    cfg
        Collection settings.
    runner
        Tool runner; defaults to one built from `cfg.tools`.
    con
        Open connection to populate instead of `cfg.db_path`; left open.
    cancel
        Stops starting new isolated re-runs once set.

    Returns
    -------
    CollectionSummary
        Row counts and the tests whose per-test coverage was skipped.

    Raises
    ------
    PipelineError
        When any stage fails fatally; `code` names the stage.
    """
    started = time.perf_counter()
    tool_runner = runner or ToolRunner(tools_config=cfg.tools)

    packages = _run_stage(
        "collect.packages",
        None,
        lambda: list_packages(tool_runner, cfg.packages, cwd=cfg.repo_root),
    )
    if not packages:
        raise PipelineError(
            problem(
                code="collect.packages",
                title=_STAGE_TITLES["collect.packages"],
                detail=f"no packages matched {' '.join(cfg.packages)}",
            )
        )

    owns_connection = con is None
    store = con if con is not None else _run_stage("store.open", None, lambda: _open_store(cfg))
    ctx = CollectionContext(cfg=cfg, runner=tool_runner, con=store, cancel=cancel)
    try:
        _run_stage("store.schema", ctx, lambda: apply_schema_script(ctx.con))
        summary = _populate(ctx, packages)
    finally:
        if owns_connection:
            store.close()

    summary = replace(summary, duration_s=time.perf_counter() - started)
    log.info(
        "collect finished db=%s tests=%d coverage=%d test_coverage=%d code=%d skips=%d (%.2fs)",
        summary.db_path,
        summary.tests,
        summary.coverage_rows,
        summary.test_coverage_rows,
        summary.code_rows,
        len(summary.correlation_skips),
        summary.duration_s,
    )
    return summary


def _populate(ctx: CollectionContext, packages: list[GoPackage]) -> CollectionSummary:
    cfg = ctx.cfg
    import_paths = [package.import_path for package in packages]

    run = _run_stage(
        "collect.tests",
        ctx,
        lambda: collect_test_events(
            ctx.runner,
            import_paths,
            profile_path=cfg.aggregate_profile_path,
            cwd=ctx.repo_root,
            timeout_s=cfg.tools.default_timeout_s,
        ),
    )
    test_rows = _test_rows(list(run.tests))
    _run_stage(
        "store.populate",
        None,
        lambda: populate_table(ctx.con, "all_tests", [test_row_to_tuple(r) for r in test_rows]),
    )

    resolver = SourceResolver(ctx.repo_root, packages)
    coverage_rows = _run_stage(
        "collect.coverage",
        ctx,
        lambda: collect_coverage_rows(cfg.aggregate_profile_path, ctx.locator, resolver),
    )
    _run_stage(
        "store.populate",
        None,
        lambda: populate_table(
            ctx.con, "all_coverage", [coverage_row_to_tuple(r) for r in coverage_rows]
        ),
    )

    correlator = TestCoverageCorrelator(
        ctx.runner,
        ctx.locator,
        resolver,
        work_dir=cfg.scratch_dir,
        cwd=ctx.repo_root,
        timeout_s=cfg.per_test_timeout_s,
        workers=cfg.workers,
    )
    correlation = _run_stage(
        "collect.test_coverage",
        ctx,
        lambda: correlator.correlate(run.events, cancel=ctx.cancel),
    )
    _run_stage(
        "store.populate",
        None,
        lambda: populate_table(
            ctx.con,
            "test_coverage",
            [test_coverage_row_to_tuple(r) for r in correlation.rows],
        ),
    )

    code_rows = _run_stage("collect.code", ctx, lambda: collect_code_lines(packages))
    _run_stage(
        "store.populate",
        None,
        lambda: populate_table(ctx.con, "all_code", [code_line_to_tuple(r) for r in code_rows]),
    )
    _run_stage(
        "store.populate",
        None,
        lambda: populate_table(
            ctx.con,
            "metadata",
            [metadata_row_to_tuple(r) for r in _metadata_rows(ctx, packages)],
        ),
    )

    return CollectionSummary(
        db_path=str(cfg.db_path),
        packages=tuple(import_paths),
        tests=len(run.tests),
        passed=sum(1 for event in run.tests if event.action == "pass"),
        failed=sum(1 for event in run.tests if event.action == "fail"),
        skipped=len(run.skipped),
        coverage_rows=len(coverage_rows),
        test_coverage_rows=len(correlation.rows),
        code_rows=len(code_rows),
        correlation_skips=tuple(correlation.skipped),
    )


__all__ = ["CollectionContext", "CollectionSummary", "collect"]
