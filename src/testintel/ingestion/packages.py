"""Go package discovery via `go list -json` and profile-path resolution."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from testintel.ingestion.tool_runner import ToolName, ToolRunner
from testintel.types import GoListPackage

log = logging.getLogger(__name__)


class PackageDiscoveryError(RuntimeError):
    """Raised when `go list` cannot enumerate the requested packages."""


@dataclass(frozen=True)
class GoPackage:
    """A Go package resolved from a package specifier."""

    import_path: str
    dir: Path
    name: str = ""
    module_path: str | None = None
    go_files: tuple[str, ...] = ()
    test_go_files: tuple[str, ...] = ()
    xtest_go_files: tuple[str, ...] = ()

    @property
    def source_files(self) -> tuple[str, ...]:
        """Every .go file of the package, test files included."""
        return (*self.go_files, *self.test_go_files, *self.xtest_go_files)

    @classmethod
    def from_go_list(cls, entry: GoListPackage) -> GoPackage:
        """
        Build a package from one decoded `go list -json` object.

        Returns
        -------
        GoPackage
            Normalized package record.
        """
        module = entry.get("Module") or {}
        return cls(
            import_path=str(entry.get("ImportPath", "")),
            dir=Path(str(entry.get("Dir", "."))),
            name=str(entry.get("Name", "")),
            module_path=module.get("Path"),
            go_files=tuple(entry.get("GoFiles") or ()),
            test_go_files=tuple(entry.get("TestGoFiles") or ()),
            xtest_go_files=tuple(entry.get("XTestGoFiles") or ()),
        )


def list_packages(
    runner: ToolRunner,
    specifiers: Sequence[str],
    *,
    cwd: Path | None = None,
) -> list[GoPackage]:
    """
    Resolve package specifiers (e.g. `./...`) into concrete packages.

    Returns
    -------
    list[GoPackage]
        Packages in `go list` order.

    Raises
    ------
    PackageDiscoveryError
        If `go list` exits non-zero or prints malformed JSON.
    """
    result = runner.run(ToolName.GO, ["list", "-json", *specifiers], cwd=cwd)
    if not result.ok:
        message = (
            f"go list failed for {' '.join(specifiers)} "
            f"(code={result.returncode}): {result.stderr.strip()}"
        )
        raise PackageDiscoveryError(message)
    try:
        entries = runner.iter_json_stream(result.stdout)
    except json.JSONDecodeError as exc:
        message = f"failed to decode go list output: {exc}"
        raise PackageDiscoveryError(message) from exc

    packages = [GoPackage.from_go_list(entry) for entry in entries if isinstance(entry, dict)]
    log.info("packages.discovered specifiers=%s count=%d", list(specifiers), len(packages))
    return packages


@dataclass
class SourceResolver:
    """Map coverage profile entries (`<import path>/<file>.go`) to files on disk."""

    repo_root: Path
    packages: Iterable[GoPackage] = ()
    _dirs: dict[str, Path] = field(init=False, default_factory=dict)
    _modules: list[str] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        modules: set[str] = set()
        for package in self.packages:
            self._dirs[package.import_path] = package.dir
            if package.module_path:
                modules.add(package.module_path)
        # Longest module path first so nested modules win.
        self._modules = sorted(modules, key=len, reverse=True)

    def resolve(self, profile_name: str) -> Path:
        """
        Return the source path for a profile file name.

        Returns
        -------
        Path
            Package directory joined with the file name when the import path is
            known, a module-relative path under the repo root when the entry sits
            under a known module, and `repo_root / profile_name` otherwise.
        """
        entry = PurePosixPath(profile_name)
        package_dir = self._dirs.get(str(entry.parent))
        if package_dir is not None:
            return package_dir / entry.name
        for module in self._modules:
            prefix = f"{module}/"
            if profile_name.startswith(prefix):
                return self.repo_root / profile_name[len(prefix) :]
        return self.repo_root / profile_name


def split_profile_name(profile_name: str) -> tuple[str, str]:
    """
    Split a profile file name into (package, file).

    `foo.go` yields `(".", "foo.go")`, matching Go's `filepath.Dir`.

    Returns
    -------
    tuple[str, str]
        Import-path directory and base file name.
    """
    entry = PurePosixPath(profile_name)
    return str(entry.parent), entry.name
