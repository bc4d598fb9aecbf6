"""Timestamp based invalidation of output directories and the stamp file format.

A stamp file lists the artifacts one cargo invocation produced. It is a
sequence of records separated by a single NUL byte; the first byte of each
record is the dependency class tag (see :class:`DependencyType`) and the rest
is the UTF-8 encoded path.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Tuple
import os
import shutil

from .errors import BootstrapError, StampFormatError
from .target import DependencyType

STAMP_NAME = ".stamp"

_SEPARATOR = b"\0"
_TAGS = {member.value.encode("ascii"): member for member in DependencyType}

StampEntry = Tuple[Path, DependencyType]


def mtime(path: Path) -> float:
    """Modification time of ``path``, or 0 when it does not exist."""
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return 0.0


def clear_if_dirty(directory: Path, input_path: Path) -> bool:
    """Wipe ``directory`` when ``input_path`` is newer than its ``.stamp``.

    Afterwards the directory exists and holds a fresh ``.stamp``. An up to
    date directory is left untouched. Returns whether anything was removed.
    """
    stamp = directory / STAMP_NAME
    cleared = False
    if mtime(stamp) < mtime(input_path):
        shutil.rmtree(directory, ignore_errors=True)
        cleared = True
    elif stamp.exists():
        return cleared
    try:
        directory.mkdir(parents=True, exist_ok=True)
        stamp.touch()
        os.utime(stamp, None)
    except OSError as exc:
        raise BootstrapError(f"failed to refresh stamp `{stamp}`: {exc}") from exc
    return cleared


def encode_stamp(entries: Iterable[StampEntry]) -> bytes:
    chunks: List[bytes] = []
    for path, dependency_type in entries:
        chunks.append(dependency_type.value.encode("ascii") + str(path).encode("utf-8"))
        chunks.append(_SEPARATOR)
    return b"".join(chunks)


def parse_stamp(contents: bytes, *, source: Path | str = "<stamp>") -> List[StampEntry]:
    entries: List[StampEntry] = []
    for part in contents.split(_SEPARATOR):
        if not part:
            continue
        tag = part[:1]
        dependency_type = _TAGS.get(tag)
        if dependency_type is None:
            raise StampFormatError(f"unknown dependency type tag {tag!r} in {source}")
        try:
            path = part[1:].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StampFormatError(f"stamp record in {source} is not valid UTF-8: {exc}") from exc
        entries.append((Path(path), dependency_type))
    return entries


def read_stamp_file(stamp: Path, *, dry_run: bool = False) -> List[StampEntry]:
    if dry_run:
        return []
    try:
        contents = stamp.read_bytes()
    except OSError as exc:
        raise BootstrapError(f"failed to read stamp file `{stamp}`: {exc}") from exc
    return parse_stamp(contents, source=stamp)


def write_stamp_file(stamp: Path, entries: Iterable[StampEntry]) -> None:
    try:
        stamp.parent.mkdir(parents=True, exist_ok=True)
        stamp.write_bytes(encode_stamp(entries))
    except OSError as exc:
        raise BootstrapError(f"failed to write stamp file `{stamp}`: {exc}") from exc


__all__ = [
    "STAMP_NAME",
    "StampEntry",
    "clear_if_dirty",
    "encode_stamp",
    "mtime",
    "parse_stamp",
    "read_stamp_file",
    "write_stamp_file",
]
