"""The ``clean`` subcommand."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING
import shutil

from .errors import BootstrapError

if TYPE_CHECKING:
    from .build import Build


# Expensive native builds survive a regular clean.
PRESERVED_HOST_ENTRIES = ("llvm", "lld")


def _rm_rf(path: Path) -> None:
    if not path.exists() and not path.is_symlink():
        return
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as exc:
        raise BootstrapError(f"failed to remove {path}: {exc}") from exc


def clean(build: "Build", all: bool = False) -> None:
    if build.dry_run:
        build.console.dry(f"would clean {build.out}")
        return
    if all:
        build.console.info(f"Removing {build.out}")
        _rm_rf(build.out)
        return

    _rm_rf(build.out / "tmp")
    _rm_rf(build.out / "dist")
    for host in build.hosts:
        entry_root = build.out / host.triple
        if not entry_root.is_dir():
            continue
        for entry in sorted(entry_root.iterdir()):
            if entry.name in PRESERVED_HOST_ENTRIES:
                continue
            build.console.debug(f"Removing {entry}")
            _rm_rf(entry)


__all__ = ["PRESERVED_HOST_ENTRIES", "clean"]
