"""
Attribute coverage blocks to the individual test that executed them.

The aggregate `go test` run only yields one profile for the whole suite. Here
every passing or failing test is re-run alone (`-run` with an exact filter)
with a private profile, and each block of that profile is resolved to its
enclosing top-level function.

A test whose isolated re-run fails, times out, or leaves an unreadable
profile is logged and skipped; the remaining tests are still correlated. Only
an inability to start the toolchain at all aborts the batch.
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from testintel.ingestion.coverage_ingest import block_to_row
from testintel.ingestion.coverage_profile import (
    CoverageBlock,
    CoverageProfile,
    ParseError,
    load_profile,
)
from testintel.ingestion.function_locator import FunctionLocator
from testintel.ingestion.packages import SourceResolver
from testintel.ingestion.test_events import TestEvent
from testintel.ingestion.tool_runner import ToolExecutionError, ToolName, ToolRunner
from testintel.models.rows import TestCoverageRow

log = logging.getLogger(__name__)

ProfileLoader = Callable[[Path], CoverageProfile]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")
_REGEXP_META = frozenset("\\.+*?()|[]{}^$")


def sanitize_test_name(test_name: str) -> str:
    """
    Replace every character outside `[A-Za-z0-9_]` with `_`.

    Returns
    -------
    str
        Filesystem-safe form of the test name.
    """
    return _UNSAFE_CHARS.sub("_", test_name)


def artifact_name(package: str, test_name: str) -> str:
    """
    Build a unique, filesystem-safe profile name for one test.

    The sanitized test name alone can collide (`TestA/b-c` and `TestA/b_c`), so a
    short digest of the full (package, test) pair is appended.

    Returns
    -------
    str
        Name without extension.
    """
    digest = hashlib.blake2b(f"{package}\x00{test_name}".encode(), digest_size=4).hexdigest()
    return f"{sanitize_test_name(test_name)}_{digest}"


def quote_meta(text: str) -> str:
    """
    Escape Go regexp metacharacters, like Go's `regexp.QuoteMeta`.

    Returns
    -------
    str
        Text matching itself literally.
    """
    return "".join(f"\\{char}" if char in _REGEXP_META else char for char in text)


def exact_run_filter(test_name: str) -> str:
    """
    Build a `-run` pattern that selects exactly one (sub)test.

    `go test` splits the pattern on `/` and matches each element against one
    level of the test name, so every level is anchored separately.

    Returns
    -------
    str
        Pattern such as `^TestParse$/^empty_input$`.
    """
    return "/".join(f"^{quote_meta(level)}$" for level in test_name.split("/"))


@dataclass(frozen=True)
class SkippedTest:
    """A test whose isolated re-run produced no correlated rows."""

    package: str
    test: str
    reason: str


@dataclass
class CorrelationResult:
    """Rows attributed to individual tests plus the tests that were skipped."""

    rows: list[TestCoverageRow] = field(default_factory=list)
    skipped: list[SkippedTest] = field(default_factory=list)
    correlated: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TestOutcome:
    """Result of one isolated re-run: attributed rows or a skip reason."""

    __test__ = False

    event: TestEvent
    rows: list[TestCoverageRow]
    skipped: SkippedTest | None = None


class TestCoverageCorrelator:
    """
    Re-run tests one at a time and attribute their coverage blocks.

    Collaborators are injected: `runner` launches the toolchain, `locator`
    resolves functions (its per-file cache is reused across all tests) and
    `profile_loader` reads a per-test profile.
    """

    __test__ = False

    def __init__(  # noqa: PLR0913
        self,
        runner: ToolRunner,
        locator: FunctionLocator,
        resolver: SourceResolver,
        *,
        work_dir: Path,
        cwd: Path | None = None,
        timeout_s: float | None = None,
        workers: int = 1,
        profile_loader: ProfileLoader = load_profile,
    ) -> None:
        self.runner = runner
        self.locator = locator
        self.resolver = resolver
        self.work_dir = work_dir
        self.cwd = cwd
        self.timeout_s = timeout_s
        self.workers = max(1, workers)
        self.profile_loader = profile_loader

    def profile_path_for(self, event: TestEvent) -> Path:
        """
        Return the private profile path of a test.

        Returns
        -------
        Path
            `<work_dir>/<artifact name>.out`.
        """
        return self.work_dir / f"{artifact_name(event.package, event.test)}.out"

    def correlate(
        self,
        events: Sequence[TestEvent],
        *,
        cancel: threading.Event | None = None,
    ) -> CorrelationResult:
        """
        Correlate every test-level pass/fail event, in event order.

        Parameters
        ----------
        events
            Decoded events; records that are not test-level pass/fail are ignored
            and never re-run.
        cancel
            Optional event; once set no further test is started.

        Returns
        -------
        CorrelationResult
            Correlated rows (in event order) and skipped tests.

        Raises
        ------
        ToolNotFoundError
            When the toolchain binary is missing.
        ToolLaunchError
            When the toolchain cannot be started.
        """
        eligible = [event for event in events if event.correlatable]
        self.work_dir.mkdir(parents=True, exist_ok=True)
        log.info(
            "test_coverage start tests=%d ignored=%d workers=%d",
            len(eligible),
            len(events) - len(eligible),
            self.workers,
        )
        if self.workers == 1:
            outcomes = self._correlate_sequential(eligible, cancel)
        else:
            outcomes = self._correlate_pooled(eligible, cancel)

        result = CorrelationResult()
        for outcome in outcomes:
            if outcome.skipped is not None:
                result.skipped.append(outcome.skipped)
                continue
            result.rows.extend(outcome.rows)
            result.correlated.append(outcome.event.test)
        log.info(
            "test_coverage done correlated=%d skipped=%d rows=%d",
            len(result.correlated),
            len(result.skipped),
            len(result.rows),
        )
        return result

    def _correlate_sequential(
        self,
        events: Sequence[TestEvent],
        cancel: threading.Event | None,
    ) -> list[TestOutcome]:
        outcomes: list[TestOutcome] = []
        for event in events:
            if cancel is not None and cancel.is_set():
                log.info("test_coverage cancelled before %s", event.test)
                break
            outcomes.append(self.correlate_one(event))
        return outcomes

    def _correlate_pooled(
        self,
        events: Sequence[TestEvent],
        cancel: threading.Event | None,
    ) -> list[TestOutcome]:
        stop = cancel or threading.Event()

        def _task(event: TestEvent) -> TestOutcome | None:
            if stop.is_set():
                return None
            return self.correlate_one(event)

        outcomes: list[TestOutcome] = []
        executor = ThreadPoolExecutor(max_workers=self.workers)
        try:
            futures: list[Future[TestOutcome | None]] = [
                executor.submit(_task, event) for event in events
            ]
            # Results are drained here, in submission order, so this thread is
            # the only one touching `outcomes`.
            for future in futures:
                try:
                    outcome = future.result()
                except Exception:
                    stop.set()
                    raise
                if outcome is not None:
                    outcomes.append(outcome)
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return outcomes

    def correlate_one(self, event: TestEvent) -> TestOutcome:
        """
        Re-run one test in isolation and attribute its coverage blocks.

        Returns
        -------
        TestOutcome
            Rows for the test, or the reason it was skipped.
        """
        profile_path = self.profile_path_for(event)
        try:
            try:
                result = self.runner.run(
                    ToolName.GO,
                    [
                        "test",
                        event.package,
                        "-run",
                        exact_run_filter(event.test),
                        f"-coverprofile={profile_path}",
                    ],
                    cwd=self.cwd,
                    output_path=profile_path,
                    timeout_s=self.timeout_s,
                )
            except ToolExecutionError as exc:
                log.warning("test run failed, skipping coverage for %s: %s", event.test, exc)
                return self._skip(event, "timeout")
            if not result.ok:
                log.warning(
                    "test failed, skipping coverage for %s (code=%d)",
                    event.test,
                    result.returncode,
                )
                return self._skip(event, f"exit status {result.returncode}")

            try:
                profile = self.profile_loader(profile_path)
            except ParseError as exc:
                log.warning("failed to parse coverage profile for %s: %s", event.test, exc)
                return self._skip(event, f"unparseable profile: {exc}")

            rows = [self._to_test_row(event, block) for block in profile.blocks()]
            log.debug("test_coverage test=%s blocks=%d", event.test, len(rows))
            return TestOutcome(event=event, rows=rows)
        finally:
            profile_path.unlink(missing_ok=True)

    def _to_test_row(self, event: TestEvent, block: CoverageBlock) -> TestCoverageRow:
        row = block_to_row(block, self.locator, self.resolver)
        return TestCoverageRow(
            test_name=event.test,
            package=row["package"],
            file=row["file"],
            start_line=row["start_line"],
            start_col=row["start_col"],
            end_line=row["end_line"],
            end_col=row["end_col"],
            stmt_num=row["stmt_num"],
            count=row["count"],
            function_name=row["function_name"],
        )

    @staticmethod
    def _skip(event: TestEvent, reason: str) -> TestOutcome:
        return TestOutcome(
            event=event,
            rows=[],
            skipped=SkippedTest(package=event.package, test=event.test, reason=reason),
        )
