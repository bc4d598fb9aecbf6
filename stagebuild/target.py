"""Value types naming platforms, compilers and build modes."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict
import threading

if TYPE_CHECKING:
    from .build import Build


_INTERNER: Dict[str, "TargetSelection"] = {}
_INTERNER_LOCK = threading.Lock()


@dataclass(frozen=True, order=True, slots=True)
class TargetSelection:
    """A host or cross-compilation platform, usually a target triple.

    A selection may also point at a custom target specification file; the
    triple is then the file stem and ``file`` is what gets passed to the
    compiler.
    """

    triple: str
    file: str | None = None

    @classmethod
    def from_user(cls, selection: str) -> "TargetSelection":
        """Parse ``selection`` and return the shared instance for it."""
        selection = selection.strip()
        if not selection:
            raise ValueError("target selection cannot be empty")
        with _INTERNER_LOCK:
            cached = _INTERNER.get(selection)
            if cached is not None:
                return cached
            if selection.endswith(".json"):
                target = cls(triple=Path(selection).stem, file=selection)
            else:
                target = cls(triple=selection)
            _INTERNER[selection] = target
            return target

    def rustc_target_arg(self) -> str:
        return self.file or self.triple

    def contains(self, needle: str) -> bool:
        return needle in self.triple

    def starts_with(self, needle: str) -> bool:
        return self.triple.startswith(needle)

    def ends_with(self, needle: str) -> bool:
        return self.triple.endswith(needle)

    @property
    def is_windows(self) -> bool:
        return self.contains("windows")

    @property
    def is_msvc(self) -> bool:
        return self.contains("msvc")

    def __str__(self) -> str:
        return self.triple


@dataclass(frozen=True, order=True, slots=True)
class Compiler:
    """Which build of the compiler produced (or will produce) some artifacts.

    ``stage`` is the bootstrap pass, ``host`` the platform the compiler runs on.
    """

    stage: int
    host: TargetSelection

    def __post_init__(self) -> None:
        if self.stage < 0:
            raise ValueError(f"compiler stage must be >= 0, got {self.stage}")

    def with_stage(self, stage: int) -> "Compiler":
        return replace(self, stage=stage)

    def is_snapshot(self, build: "Build") -> bool:
        """True for the downloaded stage0 compiler of the build platform."""
        return self.stage == 0 and self.host == build.build_triple

    def is_final_stage(self, build: "Build") -> bool:
        """Whether this compiler is final for the current session.

        Accounts for full bootstrap; do not compare ``stage`` with 2 directly.
        """
        final_stage = 2 if build.config.full_bootstrap else 1
        return self.stage >= final_stage

    def __str__(self) -> str:
        return f"stage{self.stage}:{self.host}"


class Mode(str, Enum):
    """What is being built; picks the output directory and producer rules."""

    STD = "std"
    RUSTC = "rustc"
    CODEGEN = "codegen"
    TOOL_BOOTSTRAP = "tool-bootstrap"
    TOOL_STD = "tool-std"
    TOOL_RUSTC = "tool-rustc"

    def is_tool(self) -> bool:
        return self in (Mode.TOOL_BOOTSTRAP, Mode.TOOL_STD, Mode.TOOL_RUSTC)

    def must_support_dlopen(self) -> bool:
        return self in (Mode.STD, Mode.CODEGEN)


class DependencyType(str, Enum):
    """Class of a build artifact recorded in a stamp file.

    The value is the single-byte tag used on disk.
    """

    HOST = "h"
    TARGET = "t"
    TARGET_SELF_CONTAINED = "s"


class GitRepo(str, Enum):
    """Source tree whose paths get remapped in debug info."""

    RUSTC = "rustc"
    LLVM = "llvm"


__all__ = ["Compiler", "DependencyType", "GitRepo", "Mode", "TargetSelection"]
