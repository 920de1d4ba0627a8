"""CLI entrypoint: collect a Go test run into DuckDB and query it."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

from testintel.cli.shell import QueryShell
from testintel.config.models import DEFAULT_DB_NAME, CollectConfig, ToolsConfig
from testintel.ingestion.runner import CollectionSummary, collect
from testintel.serving.query import execute_query, render
from testintel.services.errors import ProblemError, log_problem, problem
from testintel.storage.duckdb_client import DuckDBClient, DuckDBConfig

LOG = logging.getLogger("testintel.cli")

CommandHandler = Callable[[argparse.Namespace], int]


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _add_store_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--repo-root",
        type=Path,
        default=Path(),
        help="Go module root the tests run from (default: current directory)",
    )
    p.add_argument(
        "--pkg",
        default="./...",
        help="Package pattern(s) to test, space separated (default: ./...)",
    )
    p.add_argument(
        "--db",
        type=Path,
        default=Path(DEFAULT_DB_NAME),
        help=f"DuckDB database path, relative to --repo-root (default: {DEFAULT_DB_NAME})",
    )
    p.add_argument(
        "--work-dir",
        type=Path,
        default=None,
        help="Scratch directory for coverage profiles (default: <repo-root>/.testintel)",
    )
    p.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Isolated test re-runs executed concurrently (default: 1)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Timeout in seconds for one isolated test re-run",
    )
    p.add_argument(
        "--go-bin",
        default=None,
        help="Path to the go binary (default: $TESTINTEL_GO_BIN or 'go')",
    )


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="testintel",
        description="Collect go test results and per-test coverage into DuckDB.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)",
    )
    subparsers = parser.add_subparsers(dest="command")

    p_build = subparsers.add_parser("build", help="Run the tests and (re)build the database")
    _add_store_args(p_build)
    p_build.set_defaults(func=_cmd_build)

    p_query = subparsers.add_parser("query", help="Run one SQL statement against the database")
    _add_store_args(p_query)
    p_query.add_argument("sql", help="SQL statement to execute")
    p_query.add_argument(
        "--force",
        action="store_true",
        help="Rebuild the database before querying even if it exists",
    )
    p_query.add_argument(
        "--format",
        choices=["json", "table"],
        default="json",
        help="Output format (default: json)",
    )
    p_query.set_defaults(func=_cmd_query)

    p_shell = subparsers.add_parser("shell", help="Interactive SQL shell over the database")
    _add_store_args(p_shell)
    p_shell.add_argument(
        "--force",
        action="store_true",
        help="Rebuild the database before opening the shell even if it exists",
    )
    p_shell.add_argument(
        "--format",
        choices=["json", "table"],
        default="table",
        help="Output format (default: table)",
    )
    p_shell.set_defaults(func=_cmd_shell)

    return parser


def _config_from_args(args: argparse.Namespace) -> CollectConfig:
    return CollectConfig(
        repo_root=args.repo_root,
        packages=args.pkg,
        db_path=args.db,
        work_dir=args.work_dir,
        workers=args.workers,
        test_timeout_s=args.timeout,
        tools=ToolsConfig.with_overrides(go_bin=args.go_bin),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _build(cfg: CollectConfig) -> CollectionSummary:
    summary = collect(cfg)
    for skipped in summary.correlation_skips:
        LOG.warning(
            "no per-test coverage for %s %s: %s", skipped.package, skipped.test, skipped.reason
        )
    return summary


def _ensure_store(cfg: CollectConfig, *, force: bool) -> None:
    if force or not Path(cfg.db_path).exists():
        LOG.info("Building database %s", cfg.db_path)
        _build(cfg)


def _cmd_build(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    summary = _build(cfg)
    sys.stdout.write(json.dumps(summary.to_dict(), indent=2) + "\n")
    return 0


def _cmd_query(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    _ensure_store(cfg, force=args.force)
    with DuckDBClient(DuckDBConfig(db_path=cfg.db_path)) as con:
        result = execute_query(con, args.sql)
    output = render(result, args.format)
    if output:
        sys.stdout.write(output + "\n")
    return 0


def _cmd_shell(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    _ensure_store(cfg, force=args.force)
    with DuckDBClient(DuckDBConfig(db_path=cfg.db_path)) as con:
        QueryShell(con, fmt=args.format).cmdloop()
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Iterable[str] | None = None) -> int:
    """
    CLI entrypoint for the build, query and shell commands.

    Parameters
    ----------
    argv:
        Optional argument list (defaults to sys.argv).

    Returns
    -------
    int
        Exit code (0 on success).
    """
    parser = _make_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    _setup_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        func: CommandHandler = args.func
        return int(func(args))
    except ProblemError as exc:
        log_problem(LOG, exc.problem_detail)
        return 1
    except Exception as exc:  # noqa: BLE001
        pd = problem(
            code="cli.failure",
            title="CLI command failed",
            detail=str(exc),
            extras={"command": args.command},
        )
        log_problem(LOG, pd)
        return 1


if __name__ == "__main__":
    sys.exit(main())
