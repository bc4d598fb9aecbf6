"""Read-only Git access backed by pygit2."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import pygit2


@dataclass
class GitCommit:
    """Represents a git commit."""

    oid: str
    message: str
    author_name: str
    author_email: str
    date: int
    offset: int
    parents: List[str]

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def short_date(self) -> str:
        """Commit date as ``YYYY-MM-DD`` in the committer's own timezone."""
        tz = timezone(timedelta(minutes=self.offset))
        return datetime.fromtimestamp(self.date, tz).strftime("%Y-%m-%d")


class GitRepository:
    """
    High-level read API for a git work tree.

    Reads go through pygit2 so that version queries never spawn a ``git``
    process; nothing here writes to the repository.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).resolve()
        self._repo: Optional[pygit2.Repository] = None

    def open(self) -> None:
        """Opens the repository. Raises exception if not found."""
        try:
            self._repo = pygit2.Repository(str(self.path))
        except pygit2.GitError as e:
            raise RuntimeError(f"Failed to open repository at {self.path}: {e}")

    @property
    def repo(self) -> pygit2.Repository:
        """Access the underlying pygit2 Repository object."""
        if self._repo is None:
            self.open()
        return self._repo  # type: ignore

    @property
    def is_valid(self) -> bool:
        """Checks if the path is the root of a git work tree."""
        if not (self.path / ".git").exists():
            return False
        try:
            self.open()
            return True
        except RuntimeError:
            return False

    def head(self) -> GitCommit:
        commit = self.repo.revparse_single("HEAD").peel(pygit2.Commit)
        return self._wrap(commit)

    @staticmethod
    def _wrap(commit: pygit2.Commit) -> GitCommit:
        return GitCommit(
            oid=str(commit.id),
            message=commit.message,
            author_name=commit.author.name,
            author_email=commit.author.email,
            date=commit.commit_time,
            offset=commit.commit_time_offset,
            parents=[str(p.id) for p in commit.parents],
        )

    def get_commits(
        self, rev_range: str, order: int = pygit2.GIT_SORT_TOPOLOGICAL
    ) -> List[GitCommit]:
        """
        Get list of commits for a range (e.g. 'main..feature').

        A ``start..end`` range yields commits reachable from ``end`` but not
        from ``start``, like ``git rev-list start..end``. Unknown revisions
        raise :class:`KeyError`.
        """
        if ".." in rev_range:
            start, end = rev_range.split("..", 1)
            end_obj = self.repo.revparse_single(end or "HEAD")
            start_obj = self.repo.revparse_single(start or "HEAD")
            walker = self.repo.walk(end_obj.id, order)
            walker.hide(start_obj.id)
        else:
            obj = self.repo.revparse_single(rev_range)
            walker = self.repo.walk(obj.id, order)

        return [self._wrap(commit) for commit in walker]

    def count_merges(self, rev_range: str) -> int:
        """Equivalent of ``git rev-list --count --merges <rev_range>``."""
        return sum(1 for commit in self.get_commits(rev_range) if commit.is_merge)


__all__ = ["GitCommit", "GitRepository"]
