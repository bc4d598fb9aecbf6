"""Filesystem primitives that become no-ops during a dry run."""
from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Sequence, Tuple
import os
import shutil

from core.console import Console

from .errors import BootstrapError


def _replicate_metadata(dst: Path, stat: os.stat_result) -> None:
    os.chmod(dst, stat.st_mode & 0o7777)
    os.utime(dst, ns=(stat.st_atime_ns, stat.st_mtime_ns))


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except (FileNotFoundError, IsADirectoryError):
        pass


class FileSystem:
    """Copy, install and remove files on behalf of build steps.

    ``is_dry_run`` is consulted on every call so the same instance serves
    both the dry and the real pass.
    """

    def __init__(self, is_dry_run: Callable[[], bool], console: Console) -> None:
        self._is_dry_run = is_dry_run
        self.console = console

    @property
    def dry_run(self) -> bool:
        return self._is_dry_run()

    def copy(self, src: Path, dst: Path) -> None:
        """Copy one file, preferring a hard link; symlinks are recreated as symlinks."""
        if self.dry_run:
            return
        self.console.trace(f"Copy {src} to {dst}")
        if src == dst:
            return
        _unlink_quietly(dst)
        try:
            stat = os.lstat(src)
            if src.is_symlink():
                os.symlink(os.readlink(src), dst)
                return
            try:
                os.link(src, dst)
                return
            except OSError:
                pass
            shutil.copyfile(src, dst)
            _replicate_metadata(dst, stat)
        except OSError as exc:
            raise BootstrapError(f"failed to copy `{src}` to `{dst}`: {exc}") from exc

    def cp_r(self, src: Path, dst: Path) -> None:
        """Recursively copy the contents of ``src`` into the existing ``dst``."""
        if self.dry_run:
            return
        for entry in self.read_dir(src):
            target = dst / entry.name
            if entry.is_dir() and not entry.is_symlink():
                self.create_dir(target)
                self.cp_r(entry, target)
            else:
                self.copy(entry, target)

    def cp_filtered(self, src: Path, dst: Path, keep: Callable[[Path], bool]) -> None:
        """Like :meth:`cp_r`, skipping entries whose relative path ``keep`` rejects.

        Directories that are kept replace any existing directory at the target.
        """
        if self.dry_run:
            return
        self._copy_filtered(src, dst, Path(), keep)

    def _copy_filtered(self, src: Path, dst: Path, relative: Path, keep: Callable[[Path], bool]) -> None:
        for entry in self.read_dir(src):
            entry_relative = relative / entry.name
            if not keep(entry_relative):
                continue
            target = dst / entry.name
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(target, ignore_errors=True)
                self.create_dir(target)
                self._copy_filtered(entry, target, entry_relative, keep)
            else:
                self.copy(entry, target)

    def copy_to_folder(self, src: Path, dest_folder: Path) -> None:
        self.copy(src, dest_folder / src.name)

    def install(self, src: Path, dstdir: Path, perms: int) -> None:
        """Copy ``src`` into ``dstdir`` and set ``perms`` on the result."""
        if self.dry_run:
            return
        dst = dstdir / src.name
        self.console.trace(f"Install {src} to {dst}")
        if not src.exists():
            raise BootstrapError(f'File "{src}" not found!')
        try:
            dstdir.mkdir(parents=True, exist_ok=True)
            _unlink_quietly(dst)
            stat = os.lstat(src)
            shutil.copyfile(src, dst)
            _replicate_metadata(dst, stat)
            os.chmod(dst, perms)
        except OSError as exc:
            raise BootstrapError(f"failed to install `{src}` to `{dst}`: {exc}") from exc

    def create(self, path: Path, contents: str) -> None:
        if self.dry_run:
            return
        try:
            path.write_text(contents, encoding="utf-8")
        except OSError as exc:
            raise BootstrapError(f"failed to write `{path}`: {exc}") from exc

    def read(self, path: Path) -> str:
        if self.dry_run:
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise BootstrapError(f"failed to read `{path}`: {exc}") from exc

    def create_dir(self, directory: Path) -> None:
        if self.dry_run:
            return
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BootstrapError(f"failed to create directory `{directory}`: {exc}") from exc

    def remove_dir(self, directory: Path) -> None:
        if self.dry_run:
            return
        try:
            shutil.rmtree(directory)
        except OSError as exc:
            raise BootstrapError(f"failed to remove directory `{directory}`: {exc}") from exc

    def remove(self, path: Path) -> None:
        if self.dry_run:
            return
        try:
            path.unlink()
        except OSError as exc:
            raise BootstrapError(f"failed to remove `{path}`: {exc}") from exc

    def read_dir(self, directory: Path) -> List[Path]:
        try:
            return sorted(directory.iterdir())
        except OSError as exc:
            if self.dry_run:
                return []
            raise BootstrapError(f"could not read dir `{directory}`: {exc}") from exc

    def replace_in_file(self, path: Path, replacements: Sequence[Tuple[str, str]]) -> None:
        """Apply each ``(old, new)`` substitution in order and rewrite ``path``."""
        if self.dry_run:
            return
        contents = self.read(path)
        for old, new in replacements:
            contents = contents.replace(old, new)
        self.create(path, contents)


__all__ = ["FileSystem"]
