"""The subcommands accepted by the orchestrator, as a closed set of variants."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple, Union


class DocTests(str, Enum):
    YES = "yes"
    NO = "no"
    ONLY = "only"


@dataclass(frozen=True, slots=True)
class BuildCmd:
    paths: Tuple[str, ...] = ()
    kind = "build"


@dataclass(frozen=True, slots=True)
class CheckCmd:
    paths: Tuple[str, ...] = ()
    kind = "check"


@dataclass(frozen=True, slots=True)
class TestCmd:
    paths: Tuple[str, ...] = ()
    fail_fast: bool = True
    doc_tests: DocTests = DocTests.YES
    test_args: Tuple[str, ...] = ()
    kind = "test"


@dataclass(frozen=True, slots=True)
class DocCmd:
    paths: Tuple[str, ...] = ()
    kind = "doc"


@dataclass(frozen=True, slots=True)
class DistCmd:
    paths: Tuple[str, ...] = ()
    kind = "dist"


@dataclass(frozen=True, slots=True)
class InstallCmd:
    paths: Tuple[str, ...] = ()
    kind = "install"


@dataclass(frozen=True, slots=True)
class FormatCmd:
    check: bool = False
    kind = "fmt"


@dataclass(frozen=True, slots=True)
class CleanCmd:
    all: bool = False
    kind = "clean"


@dataclass(frozen=True, slots=True)
class SetupCmd:
    profile: str = "user"
    kind = "setup"


Subcommand = Union[BuildCmd, CheckCmd, TestCmd, DocCmd, DistCmd, InstallCmd, FormatCmd, CleanCmd, SetupCmd]

STAGED_COMMANDS = (BuildCmd, CheckCmd, TestCmd, DocCmd, DistCmd, InstallCmd)


def requested_paths(cmd: Subcommand) -> List[str]:
    """Paths the scheduler should resolve for ``cmd``; empty for short-circuit commands."""
    if isinstance(cmd, STAGED_COMMANDS):
        return list(cmd.paths)
    return []


def fail_fast(cmd: Subcommand) -> bool:
    if isinstance(cmd, TestCmd):
        return cmd.fail_fast
    return True


def doc_tests(cmd: Subcommand) -> DocTests:
    if isinstance(cmd, TestCmd):
        return cmd.doc_tests
    return DocTests.YES


__all__ = [
    "BuildCmd",
    "CheckCmd",
    "CleanCmd",
    "DistCmd",
    "DocCmd",
    "DocTests",
    "FormatCmd",
    "InstallCmd",
    "STAGED_COMMANDS",
    "SetupCmd",
    "Subcommand",
    "TestCmd",
    "doc_tests",
    "fail_fast",
    "requested_paths",
]
