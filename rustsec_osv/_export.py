"""
Export of a whole advisory database to OSV JSON files.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from tempfile import NamedTemporaryFile

from rustsec_osv._advisory import AdvisoryError, load_advisory
from rustsec_osv._git import GitError, GitModificationTimes, GitPath, Repository
from rustsec_osv._osv import OsvAdvisory
from rustsec_osv._state import ExportState
from rustsec_osv._version_ranges import VersionRangeError

logger = logging.getLogger(__name__)

DEFAULT_COLLECTIONS = ("crates",)


class ExportError(Exception):
    """
    Raised when an export cannot be performed.
    """

    pass


class AdvisoryExportError(ExportError):
    """
    Raised when a single advisory cannot be exported.

    The underlying error is available as `__cause__`.
    """

    def __init__(self, path: Path, msg: str) -> None:
        """
        Create a new `AdvisoryExportError` for the advisory at `path`.
        """
        super().__init__(f"{path}: {msg}")
        self.path = path


@dataclass
class ExportResult:
    """
    The outcome of an export run.
    """

    exported: list[str] = field(default_factory=list)
    """
    The IDs of the advisories that were written.
    """

    failures: list[AdvisoryExportError] = field(default_factory=list)
    """
    The advisories that could not be exported, when failures don't abort the run.
    """

    @property
    def ok(self) -> bool:
        return not self.failures


class OsvExporter:
    """
    Exports every advisory in a RustSec advisory database checkout to OSV JSON.
    """

    def __init__(
        self,
        repo_path: Path,
        *,
        collections: Sequence[str] = DEFAULT_COLLECTIONS,
        state: ExportState = ExportState(),
    ) -> None:
        """
        Load the database at `repo_path`, which must be the top level of a git
        work tree.

        `collections` names the top-level directories holding advisories.

        `state` is an `ExportState` to use for state callbacks.

        Raises a `GitError` if the repository or its history can't be read.
        """
        self.repository = Repository(repo_path)
        self.collections = collections
        self.state = state

        self.state.update_state("Reading advisory database history")
        self.mod_times = GitModificationTimes(self.repository, state=state)

    def advisory_paths(self) -> Iterator[Path]:
        """
        Yield the path of every advisory file, laid out as
        `<collection>/<package>/<advisory>`, in a stable order.
        """
        for collection in self.collections:
            collection_path = self.repository.path / collection
            if not collection_path.is_dir():
                logger.warning(f"no `{collection}` collection in {self.repository.path}")
                continue
            for package_path in sorted(p for p in collection_path.iterdir() if p.is_dir()):
                for advisory_path in sorted(package_path.iterdir()):
                    if advisory_path.is_file() and advisory_path.suffix in (".md", ".toml"):
                        yield advisory_path

    def export_advisory(self, advisory_path: Path, destination: Path) -> str:
        """
        Convert the advisory at `advisory_path` and write it to
        `<destination>/<advisory-id>.json`, returning the advisory's ID.

        The file is only written once the conversion has succeeded, and is
        replaced atomically.

        Raises an `AdvisoryExportError` on any failure.
        """
        try:
            advisory = load_advisory(advisory_path)
            relative_path = advisory_path.relative_to(self.repository.path)
            osv = OsvAdvisory.from_advisory(
                advisory, self.mod_times, GitPath(self.repository, relative_path)
            )
            _write_atomic(destination / f"{advisory.id}.json", osv.to_json() + "\n")
        except (AdvisoryError, GitError, VersionRangeError, OSError, ValueError) as e:
            raise AdvisoryExportError(advisory_path, str(e)) from e

        return advisory.id

    def export_all(self, destination: Path, *, fail_fast: bool = True) -> ExportResult:
        """
        Export all advisories to OSV JSON files in `destination`, which must exist.

        With `fail_fast` (the default) the first failing advisory aborts the run by
        raising its `AdvisoryExportError`. Otherwise failures are logged, collected
        in the returned `ExportResult`, and the remaining advisories are exported.

        Raises an `ExportError` if `destination` is not a directory or if no
        advisories were found.
        """
        if not destination.is_dir():
            raise ExportError(f"output directory {destination} does not exist")

        result = ExportResult()
        seen = 0
        for advisory_path in self.advisory_paths():
            seen += 1
            self.state.update_state(f"Exporting {advisory_path.name}")
            try:
                advisory_id = self.export_advisory(advisory_path, destination)
            except AdvisoryExportError as e:
                if fail_fast:
                    raise
                logger.error(str(e))
                result.failures.append(e)
                continue
            logger.debug(f"exported {advisory_id}")
            result.exported.append(advisory_id)

        if seen == 0:
            raise ExportError(f"no advisories found in {self.repository.path}")

        return result


def _write_atomic(path: Path, contents: str) -> None:
    tmp = NamedTemporaryFile(
        "w", dir=path.parent, prefix=f".{path.name}.", delete=False, encoding="utf-8"
    )
    try:
        with tmp:
            tmp.write(contents)
        os.replace(tmp.name, path)
    except BaseException:
        os.unlink(tmp.name)
        raise
