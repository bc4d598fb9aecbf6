"""Checks that the environment can run a build before any step starts."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict
import shutil

from .errors import BootstrapError

if TYPE_CHECKING:
    from .build import Build


class Finder:
    """Cached ``PATH`` lookups."""

    def __init__(self, path: str | None = None) -> None:
        self._path = path
        self._cache: Dict[str, Path | None] = {}

    def maybe_have(self, command: str | Path) -> Path | None:
        key = str(command)
        if key not in self._cache:
            found = shutil.which(key, path=self._path)
            self._cache[key] = Path(found) if found else None
        return self._cache[key]

    def must_have(self, command: str | Path) -> Path:
        found = self.maybe_have(command)
        if found is None:
            raise BootstrapError(f"couldn't find required command: {str(command)!r}")
        return found


def check(build: "Build", finder: Finder | None = None) -> None:
    finder = finder or Finder()
    config = build.config

    if " " in str(build.out):
        raise BootstrapError(f"the build directory may not contain spaces: {build.out}")

    if not config.ignore_git:
        finder.must_have("git")

    if config.dry_run:
        return

    finder.must_have(build.initial_cargo)
    finder.must_have(build.initial_rustc)
    for target in build.toolchains.targets():
        cc = build.cc(target)
        if finder.maybe_have(cc) is None:
            raise BootstrapError(
                f"C compiler `{cc}` for target {target} was not found; "
                f"set `cc` in [target.{target}] or the CC_{target} environment variable"
            )

    if build.is_sudo and not config.vendor:
        build.console.warn(
            "running as root via sudo without vendored sources; cargo may need to "
            "write to the invoking user's home directory"
        )


__all__ = ["Finder", "check"]
