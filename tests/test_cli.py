from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest import mock
import io
import os
import tempfile
import textwrap
import unittest

from stagebuild.cli import _parse_arguments, load_config, main
from stagebuild.config import CONFIG_ENV_VAR
from stagebuild.setup import render_config
from stagebuild.subcommands import DocTests, FormatCmd
from stagebuild.subcommands import TestCmd as RunTestsCmd


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.src = self.root / "rust"
        (self.src / "src").mkdir(parents=True)
        (self.src / "src" / "version").write_text("1.50.0\n")
        self.config_path = self.root / "stagebuild.toml"
        self.config_path.write_text(
            textwrap.dedent(
                """
                [build]
                build = "x86_64-unknown-linux-gnu"
                ignore-git = true
                """
            )
        )
        patcher = mock.patch.dict(os.environ, {CONFIG_ENV_VAR: str(self.config_path)})
        patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _main(self, *argv: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            status = main([*argv, "--src", str(self.src)])
        return status, stdout.getvalue(), stderr.getvalue()

    def test_setup_writes_config_once(self) -> None:
        status, stdout, _ = self._main("setup", "--dry-run", "library")
        self.assertEqual(status, 0)
        self.assertEqual((self.src / "config.toml").read_text(), render_config("library"))
        self.assertIn("`library` profile written", stdout)

        status, _, stderr = self._main("setup", "--dry-run", "compiler")
        self.assertEqual(status, 2)
        self.assertIn("already exists", stderr)
        self.assertEqual((self.src / "config.toml").read_text(), render_config("library"))

    def test_dry_run_build_plans_default_steps(self) -> None:
        status, _, stderr = self._main("build", "--dry-run")
        self.assertEqual(status, 0, stderr)
        self.assertFalse((self.src / "build").exists())

    def test_dry_run_format_succeeds(self) -> None:
        status, _, _ = self._main("fmt", "--check", "--dry-run")
        self.assertEqual(status, 0)

    def test_unknown_path_reports_error(self) -> None:
        status, _, stderr = self._main("build", "--dry-run", "src/tools/does-not-exist")
        self.assertEqual(status, 2)
        self.assertIn("Error: no build step matches", stderr)

    def test_missing_version_file_reports_error(self) -> None:
        (self.src / "src" / "version").unlink()
        status, _, stderr = self._main("check", "--dry-run")
        self.assertEqual(status, 2)
        self.assertIn("Error:", stderr)

    def test_invalid_configuration_reports_error(self) -> None:
        self.config_path.write_text("[build]\nunknown-key = 1\n")
        status, _, stderr = self._main("build", "--dry-run")
        self.assertEqual(status, 2)
        self.assertIn("unknown keys: unknown_key", stderr)

    def test_target_only_vxworks_reports_error(self) -> None:
        self.config_path.write_text(
            textwrap.dedent(
                """
                [build]
                build = "x86_64-unknown-linux-gnu"
                target = ["x86_64-unknown-linux-gnu", "armv7-wrs-vxworks-eabihf"]
                ignore-git = true
                """
            )
        )
        status, _, stderr = self._main("build", "--dry-run")
        self.assertEqual(status, 2)
        self.assertIn("Error: cannot pick a linker for `armv7-wrs-vxworks-eabihf`", stderr)

    def test_flags_reach_configuration(self) -> None:
        args = _parse_arguments(
            [
                "test",
                "library/std",
                "--no-fail-fast",
                "--no-doc",
                "--test-args=--quiet --exact",
                "--target",
                "aarch64-unknown-linux-gnu",
                "--stage",
                "2",
                "-j",
                "4",
                "-vv",
                "--src",
                str(self.src),
            ]
        )
        config = load_config(args)
        self.assertIsInstance(config.cmd, RunTestsCmd)
        self.assertEqual(config.cmd.paths, ("library/std",))
        self.assertFalse(config.cmd.fail_fast)
        self.assertIs(config.cmd.doc_tests, DocTests.NO)
        self.assertEqual(config.cmd.test_args, ("--quiet", "--exact"))
        self.assertEqual([str(t) for t in config.targets], ["aarch64-unknown-linux-gnu"])
        self.assertEqual(config.stage, 2)
        self.assertEqual(config.jobs, 4)
        self.assertEqual(config.verbose, 2)
        self.assertEqual(config.src, self.src.resolve())

    def test_fmt_check_flag(self) -> None:
        args = _parse_arguments(["fmt", "--check", "--src", str(self.src)])
        self.assertEqual(load_config(args).cmd, FormatCmd(check=True))


if __name__ == "__main__":
    unittest.main()
