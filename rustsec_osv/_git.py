"""
Minimal access to the advisory database's git repository: validating that
paths are tracked, and looking up when each path was last modified.

Everything goes through `pygit2`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePath
from typing import Iterator

import pygit2
import pygit2.enums

from rustsec_osv._state import ExportState

logger = logging.getLogger(__name__)


class GitError(Exception):
    """
    Raised when the advisory repository cannot be queried, or a path is not
    what it is expected to be.
    """

    pass


class Repository:
    """
    A git work tree on disk.
    """

    def __init__(self, path: Path) -> None:
        """
        Open the repository whose top-level directory is `path`.

        Raises a `GitError` if `path` is not the top level of a git work tree,
        or if the repository has no commits yet.
        """
        self.path = Path(path)

        try:
            self._repo = pygit2.Repository(str(self.path))
        except pygit2.GitError as e:
            raise GitError(f"{self.path} is not a git repository: {e}") from e

        workdir = self._repo.workdir
        if workdir is None:
            raise GitError(f"{self.path} is a bare repository")
        if Path(workdir).resolve() != self.path.resolve():
            raise GitError(f"{self.path} is not the top level of its git repository ({workdir})")
        if self._repo.head_is_unborn:
            raise GitError(f"{self.path} has no commits")

    def head(self) -> pygit2.Commit:
        return self._repo.head.peel(pygit2.Commit)

    def has_path(self, path: PurePath) -> bool:
        """
        Returns whether `path` (relative to the repository root) exists in the
        tree of the `HEAD` commit.
        """
        return path.as_posix() in self.head().tree

    def commits(self) -> Iterator[pygit2.Commit]:
        """
        Yield every commit reachable from `HEAD`, newest first.
        """
        yield from self._repo.walk(self.head().id, pygit2.enums.SortMode.TIME)

    def changed_paths(self, commit: pygit2.Commit) -> set[str]:
        """
        Returns the paths added, modified or deleted by `commit`.

        A root commit adds every path in its tree. Merge commits are skipped,
        as in `git log`: their changes are attributed to the merged commits.
        """
        if not commit.parents:
            diff = commit.tree.diff_to_tree(swap=True)
        elif len(commit.parents) == 1:
            diff = self._repo.diff(commit.parents[0], commit)
        else:
            return set()

        paths = set()
        for delta in diff.deltas:
            paths.add(delta.old_file.path)
            paths.add(delta.new_file.path)
        return paths


class GitPath:
    """
    A path relative to the root of a git repository, guaranteed to be tracked
    by git.
    """

    def __init__(self, repository: Repository, path: PurePath) -> None:
        """
        Create a new `GitPath`, validating that `path` is tracked in `repository`.

        Raises a `GitError` if `path` is absolute or not tracked.
        """
        # Catch absolute paths up front for better feedback to API users
        if path.is_absolute():
            raise GitError(f"{path} is not a relative path")
        if not repository.has_path(path):
            raise GitError(f"{path} is not tracked in {repository.path}")

        self.repository = repository
        self.path = path

    def as_posix(self) -> str:
        return self.path.as_posix()

    def __str__(self) -> str:
        return self.as_posix()


def _commit_time(commit: pygit2.Commit) -> datetime:
    offset = timezone(timedelta(minutes=commit.commit_time_offset))
    return datetime.fromtimestamp(commit.commit_time, offset)


class GitModificationTimes:
    """
    The most recent commit time of every path in a repository's history.

    The history is walked once, when this object is created.
    """

    def __init__(self, repository: Repository, *, state: ExportState = ExportState()) -> None:
        """
        Collect modification times for `repository`.

        `state` is an `ExportState` to use for state callbacks.

        Raises a `GitError` if the history cannot be read.
        """
        self._times: dict[str, datetime] = {}

        try:
            # Commits are walked newest first, so the first time seen for a path wins.
            for count, commit in enumerate(repository.commits(), start=1):
                when = _commit_time(commit)
                for name in repository.changed_paths(commit):
                    self._times.setdefault(name, when)
                if count % 1000 == 0:
                    state.update_state(f"Reading history: {count} commits")
        except pygit2.GitError as e:
            raise GitError(f"couldn't read the history of {repository.path}: {e}") from e

        logger.debug(f"collected modification times for {len(self._times)} paths")

    def for_path(self, path: GitPath) -> datetime:
        """
        Returns the time of the most recent commit touching `path`.

        Raises a `GitError` if `path` never appears in the history.
        """
        try:
            return self._times[path.as_posix()]
        except KeyError:
            raise GitError(f"no modification time recorded for {path}") from None
