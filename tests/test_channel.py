from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

import pygit2

from stagebuild.channel import BETA_MERGE_RANGE, GitInfo, ReleaseResolver, release_num
from stagebuild.errors import BootstrapError


class FakeGitInfo:
    def __init__(self, *, is_git: bool = True, merges: int = 3) -> None:
        self._is_git = is_git
        self._merges = merges
        self.ranges: list[str] = []

    def is_git(self) -> bool:
        return self._is_git

    def count_merges(self, rev_range: str) -> int:
        self.ranges.append(rev_range)
        return self._merges

    def version(self, release: str) -> str:
        return f"{release} (abcdef123 2021-01-01)" if self._is_git else release


class ReleaseResolverTests(unittest.TestCase):
    def test_release_per_channel(self) -> None:
        self.assertEqual(ReleaseResolver("stable", FakeGitInfo()).release("1.50.0"), "1.50.0")
        self.assertEqual(ReleaseResolver("nightly", FakeGitInfo()).release("1.50.0"), "1.50.0-nightly")
        self.assertEqual(ReleaseResolver("dev", FakeGitInfo()).release("1.50.0"), "1.50.0-dev")
        self.assertEqual(ReleaseResolver("beta", FakeGitInfo(merges=3)).release("1.50.0"), "1.50.0-beta.3")
        self.assertEqual(ReleaseResolver("beta", FakeGitInfo(is_git=False)).release("1.50.0"), "1.50.0-beta")

    def test_beta_prerelease_version_is_computed_once(self) -> None:
        git = FakeGitInfo(merges=7)
        resolver = ReleaseResolver("beta", git)
        self.assertEqual(resolver.release("1.50.0"), "1.50.0-beta.7")
        self.assertEqual(resolver.release("1.51.0"), "1.51.0-beta.7")
        self.assertEqual(git.ranges, [BETA_MERGE_RANGE])

    def test_package_versions(self) -> None:
        self.assertEqual(ReleaseResolver("stable", FakeGitInfo()).package_vers("1.50.0"), "1.50.0")
        self.assertEqual(ReleaseResolver("beta", FakeGitInfo()).package_vers("1.50.0"), "beta")
        self.assertEqual(ReleaseResolver("nightly", FakeGitInfo()).package_vers("1.50.0"), "nightly")
        self.assertEqual(ReleaseResolver("custom", FakeGitInfo()).package_vers("1.50.0"), "1.50.0-dev")

    def test_unstable_features(self) -> None:
        self.assertFalse(ReleaseResolver("stable", FakeGitInfo()).unstable_features())
        self.assertFalse(ReleaseResolver("beta", FakeGitInfo()).unstable_features())
        self.assertTrue(ReleaseResolver("nightly", FakeGitInfo()).unstable_features())
        self.assertTrue(ReleaseResolver("dev", FakeGitInfo()).unstable_features())

    def test_rust_version_appends_description(self) -> None:
        resolver = ReleaseResolver("nightly", FakeGitInfo(), description="vendor build")
        self.assertEqual(resolver.rust_version("1.50.0"), "1.50.0-nightly (abcdef123 2021-01-01) (vendor build)")
        self.assertEqual(ReleaseResolver("stable", FakeGitInfo(is_git=False)).rust_version("1.50.0"), "1.50.0")


class GitInfoTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = Path(self.temp_dir.name) / "rust"
        self.path.mkdir()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _commit(self, repo: pygit2.Repository, ref: str | None, message: str, parents: list) -> pygit2.Oid:
        signature = pygit2.Signature("Dev", "dev@example.com", 1_700_000_000, 0)
        tree = repo.TreeBuilder().write()
        return repo.create_commit(ref, signature, signature, message, tree, parents)

    def test_outside_git_reports_nothing(self) -> None:
        info = GitInfo(self.path)
        self.assertFalse(info.is_git())
        self.assertIsNone(info.sha())
        self.assertEqual(info.version("1.50.0"), "1.50.0")
        with self.assertRaises(BootstrapError):
            info.count_merges(BETA_MERGE_RANGE)

    def test_reads_head_commit_and_counts_merges(self) -> None:
        repo = pygit2.init_repository(str(self.path))
        base = self._commit(repo, "HEAD", "base", [])
        repo.references.create("refs/remotes/origin/master", base)
        mainline = self._commit(repo, "HEAD", "mainline", [base])
        side = self._commit(repo, None, "side", [base])
        merge = self._commit(repo, "HEAD", "merge side", [mainline, side])

        info = GitInfo(self.path)
        self.assertTrue(info.is_git())
        self.assertEqual(info.sha(), str(merge))
        self.assertEqual(info.sha_short(), str(merge)[:9])
        self.assertEqual(info.commit_date(), "2023-11-14")
        self.assertEqual(info.version("1.50.0"), f"1.50.0 ({str(merge)[:9]} 2023-11-14)")
        self.assertEqual(info.count_merges(BETA_MERGE_RANGE), 1)

        resolver = ReleaseResolver("beta", info)
        self.assertEqual(resolver.release("1.50.0"), "1.50.0-beta.1")

    def test_ignore_git_hides_repository(self) -> None:
        repo = pygit2.init_repository(str(self.path))
        self._commit(repo, "HEAD", "base", [])
        self.assertFalse(GitInfo(self.path, ignore_git=True).is_git())


class ReleaseNumTests(unittest.TestCase):
    def test_reads_version_line(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            src = Path(temp)
            manifest = src / "src" / "tools" / "cargo" / "Cargo.toml"
            manifest.parent.mkdir(parents=True)
            manifest.write_text(
                textwrap.dedent(
                    """
                    [package]
                    name = "cargo"
                    version = "0.51.0"
                    edition = "2018"
                    """
                )
            )
            self.assertEqual(release_num(src, "cargo"), "0.51.0")

    def test_missing_manifest_or_version_is_fatal(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            src = Path(temp)
            with self.assertRaises(BootstrapError):
                release_num(src, "rustfmt")
            manifest = src / "src" / "tools" / "rustfmt" / "Cargo.toml"
            manifest.parent.mkdir(parents=True)
            manifest.write_text('[package]\nname = "rustfmt"\n')
            with self.assertRaises(BootstrapError):
                release_num(src, "rustfmt")


if __name__ == "__main__":
    unittest.main()
