"""Release channel naming and commit information for version strings."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import threading

import pygit2

from core.git_api import GitRepository

from .errors import BootstrapError


# Merges since branching off master give the beta prerelease number.
BETA_MERGE_RANGE = "refs/remotes/origin/master..HEAD"


@dataclass(frozen=True, slots=True)
class CommitInfo:
    sha: str
    short_sha: str
    commit_date: str


class GitInfo:
    """Commit information for a source tree, absent outside git or when ignored."""

    def __init__(self, path: Path, *, ignore_git: bool = False) -> None:
        self.path = path
        self._repo: Optional[GitRepository] = None
        self._info: Optional[CommitInfo] = None
        if ignore_git:
            return
        repo = GitRepository(path)
        if not repo.is_valid:
            return
        try:
            head = repo.head()
        except (KeyError, pygit2.GitError):
            # Freshly initialized repository without commits.
            return
        self._repo = repo
        self._info = CommitInfo(sha=head.oid, short_sha=head.oid[:9], commit_date=head.short_date)

    def is_git(self) -> bool:
        return self._info is not None

    def sha(self) -> str | None:
        return self._info.sha if self._info else None

    def sha_short(self) -> str | None:
        return self._info.short_sha if self._info else None

    def commit_date(self) -> str | None:
        return self._info.commit_date if self._info else None

    def version(self, release: str) -> str:
        if self._info is None:
            return release
        return f"{release} ({self._info.short_sha} {self._info.commit_date})"

    def count_merges(self, rev_range: str) -> int:
        if self._repo is None:
            raise BootstrapError(f"{self.path} is not a git checkout; cannot count merges in {rev_range}")
        try:
            return self._repo.count_merges(rev_range)
        except (KeyError, pygit2.GitError) as exc:
            raise BootstrapError(f"failed to count merges in {rev_range} at {self.path}: {exc}") from exc


class ReleaseResolver:
    """Maps a release number to channel specific version strings."""

    def __init__(self, channel: str, git_info: GitInfo, *, description: str | None = None) -> None:
        self.channel = channel
        self.git_info = git_info
        self.description = description
        self._prerelease_version: int | None = None
        self._lock = threading.Lock()

    def release(self, num: str) -> str:
        """``num`` as a release string, e.g. ``1.2.3-nightly`` or ``1.2.3-beta.4``."""
        if self.channel == "stable":
            return num
        if self.channel == "beta":
            if self.git_info.is_git():
                return f"{num}-beta.{self.beta_prerelease_version()}"
            return f"{num}-beta"
        if self.channel == "nightly":
            return f"{num}-nightly"
        return f"{num}-dev"

    def package_vers(self, num: str) -> str:
        """Version used in package file names; just the channel on beta and nightly."""
        if self.channel == "stable":
            return num
        if self.channel in ("beta", "nightly"):
            return self.channel
        return f"{num}-dev"

    def beta_prerelease_version(self) -> int:
        with self._lock:
            if self._prerelease_version is None:
                self._prerelease_version = self.git_info.count_merges(BETA_MERGE_RANGE)
            return self._prerelease_version

    def unstable_features(self) -> bool:
        return self.channel not in ("stable", "beta")

    def rust_version(self, version: str) -> str:
        """Full version string: release, commit information and vendor description."""
        text = self.git_info.version(self.release(version))
        if self.description:
            text += f" ({self.description})"
        return text


def release_num(src: Path, package: str) -> str:
    """The ``a.b.c`` version declared in ``src/tools/<package>/Cargo.toml``."""
    manifest = src / "src" / "tools" / package / "Cargo.toml"
    try:
        text = manifest.read_text(encoding="utf-8")
    except OSError as exc:
        raise BootstrapError(f"failed to read {manifest}: {exc}") from exc
    for line in text.splitlines():
        if line.startswith('version = "') and line.endswith('"'):
            return line[len('version = "') : -1]
    raise BootstrapError(f"failed to find version in {package}'s Cargo.toml")


__all__ = ["BETA_MERGE_RANGE", "CommitInfo", "GitInfo", "ReleaseResolver", "release_num"]
