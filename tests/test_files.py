from __future__ import annotations

from pathlib import Path
from unittest import mock
import os
import stat
import tempfile
import unittest

from core.console import Console
from stagebuild.errors import BootstrapError
from stagebuild.files import FileSystem


class FileSystemTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.dry_run = False
        self.fs = FileSystem(lambda: self.dry_run, Console("none"))

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_copy_is_repeatable(self) -> None:
        src = self.root / "libstd.rlib"
        src.write_text("v1")
        os.chmod(src, 0o640)
        dst = self.root / "out.rlib"
        self.fs.copy(src, dst)
        self.fs.copy(src, dst)
        self.assertEqual(dst.read_text(), "v1")
        self.assertEqual(stat.S_IMODE(dst.stat().st_mode), 0o640)

    def test_copy_without_hard_links_keeps_metadata(self) -> None:
        src = self.root / "librustc_driver.so"
        src.write_text("driver")
        os.chmod(src, 0o751)
        os.utime(src, (1000.0, 2000.0))
        dst = self.root / "sysroot-driver.so"
        with mock.patch("stagebuild.files.os.link", side_effect=OSError("cross-device link")):
            self.fs.copy(src, dst)
            self.fs.copy(src, dst)
        self.assertFalse(os.path.samefile(src, dst))
        self.assertEqual(dst.read_text(), "driver")
        self.assertEqual(stat.S_IMODE(dst.stat().st_mode), 0o751)
        self.assertEqual(dst.stat().st_mtime, 2000.0)

    def test_copy_recreates_symlinks(self) -> None:
        real = self.root / "libLLVM.so.17"
        real.write_text("llvm")
        link = self.root / "libLLVM.so"
        link.symlink_to("libLLVM.so.17")
        dst_dir = self.root / "sysroot"
        dst_dir.mkdir()
        self.fs.copy(link, dst_dir / "libLLVM.so")
        self.assertTrue((dst_dir / "libLLVM.so").is_symlink())
        self.assertEqual(os.readlink(dst_dir / "libLLVM.so"), "libLLVM.so.17")

    def test_copy_of_same_path_is_noop(self) -> None:
        src = self.root / "a.txt"
        src.write_text("keep")
        self.fs.copy(src, src)
        self.assertEqual(src.read_text(), "keep")

    def test_copy_of_missing_file_is_fatal(self) -> None:
        with self.assertRaises(BootstrapError):
            self.fs.copy(self.root / "missing", self.root / "dst")

    def test_dry_run_touches_nothing(self) -> None:
        self.dry_run = True
        src = self.root / "a.txt"
        self.fs.create(src, "text")
        self.fs.create_dir(self.root / "dir")
        self.fs.install(self.root / "missing", self.root / "bin", 0o755)
        self.assertFalse(src.exists())
        self.assertFalse((self.root / "dir").exists())
        self.assertEqual(self.fs.read(src), "")
        self.assertEqual(self.fs.read_dir(self.root / "nowhere"), [])

    def test_install_sets_permissions(self) -> None:
        src = self.root / "rustc"
        src.write_text("#!/bin/sh\n")
        os.chmod(src, 0o600)
        self.fs.install(src, self.root / "image" / "bin", 0o755)
        installed = self.root / "image" / "bin" / "rustc"
        self.assertEqual(stat.S_IMODE(installed.stat().st_mode), 0o755)
        self.assertEqual(installed.read_text(), "#!/bin/sh\n")

    def test_install_missing_source_is_fatal(self) -> None:
        with self.assertRaises(BootstrapError) as ctx:
            self.fs.install(self.root / "ghost", self.root / "bin", 0o644)
        self.assertIn("not found", str(ctx.exception))

    def test_cp_r_and_cp_filtered(self) -> None:
        src = self.root / "src"
        (src / "sub").mkdir(parents=True)
        (src / "keep.rs").write_text("fn main() {}")
        (src / "sub" / "inner.rs").write_text("mod x;")
        (src / "target").mkdir()
        (src / "target" / "junk").write_text("junk")

        full = self.root / "full"
        full.mkdir()
        self.fs.cp_r(src, full)
        self.assertTrue((full / "sub" / "inner.rs").is_file())
        self.assertTrue((full / "target" / "junk").is_file())

        filtered = self.root / "filtered"
        filtered.mkdir()
        self.fs.cp_filtered(src, filtered, lambda rel: rel.parts[0] != "target")
        self.assertTrue((filtered / "keep.rs").is_file())
        self.assertTrue((filtered / "sub" / "inner.rs").is_file())
        self.assertFalse((filtered / "target").exists())

    def test_replace_in_file_applies_in_order(self) -> None:
        path = self.root / "Cargo.toml"
        path.write_text('version = "0.0.0"\n')
        self.fs.replace_in_file(path, [("0.0.0", "1.2.3"), ("1.2.3", "1.2.4")])
        self.assertEqual(path.read_text(), 'version = "1.2.4"\n')

    def test_remove_helpers(self) -> None:
        directory = self.root / "tmp"
        directory.mkdir()
        (directory / "file").write_text("x")
        self.fs.remove(directory / "file")
        self.assertFalse((directory / "file").exists())
        self.fs.remove_dir(directory)
        self.assertFalse(directory.exists())
        with self.assertRaises(BootstrapError):
            self.fs.remove_dir(directory)
        with self.assertRaises(BootstrapError):
            self.fs.read_dir(directory)


if __name__ == "__main__":
    unittest.main()
