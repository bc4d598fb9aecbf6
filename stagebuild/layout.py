"""Where each stage's artifacts live on disk.

Every directory is a pure function of the output root, the compiler that
produced the artifacts, the build mode and the target. Nothing here touches
the filesystem except :meth:`Layout.tools_dir`, which guarantees the
directory exists.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable

from .target import Compiler, Mode, TargetSelection


STAGE_SUFFIXES: Dict[Mode, str] = {
    Mode.STD: "-std",
    Mode.RUSTC: "-rustc",
    Mode.CODEGEN: "-codegen",
    Mode.TOOL_BOOTSTRAP: "-bootstrap-tools",
    Mode.TOOL_STD: "-tools",
    Mode.TOOL_RUSTC: "-tools",
}


def exe(name: str, target: TargetSelection) -> str:
    """File name of executable ``name`` on ``target``."""
    return f"{name}.exe" if target.is_windows else name


def libdir(target: TargetSelection) -> str:
    """Directory holding dynamic libraries next to the binaries on ``target``."""
    return "bin" if target.is_windows else "lib"


def cargo_profile_dir(optimized: bool) -> str:
    return "release" if optimized else "debug"


@dataclass(frozen=True, slots=True)
class Layout:
    out: Path
    optimized: bool

    def stage_out(self, compiler: Compiler, mode: Mode) -> Path:
        """Root directory for everything ``compiler`` produces in ``mode``."""
        suffix = STAGE_SUFFIXES[mode]
        return self.out / compiler.host.triple / f"stage{compiler.stage}{suffix}"

    def cargo_out(self, compiler: Compiler, mode: Mode, target: TargetSelection) -> Path:
        """Cargo's output directory for ``target`` within :meth:`stage_out`."""
        return self.stage_out(compiler, mode) / target.triple / cargo_profile_dir(self.optimized)

    def tools_dir(self, compiler: Compiler) -> Path:
        path = self.out / compiler.host.triple / f"stage{compiler.stage}-tools-bin"
        path.mkdir(parents=True, exist_ok=True)
        return path

    def sysroot(self, compiler: Compiler) -> Path:
        if compiler.stage == 0:
            return self.out / compiler.host.triple / "stage0-sysroot"
        return self.out / compiler.host.triple / f"stage{compiler.stage}"

    def sysroot_libdir(self, compiler: Compiler, target: TargetSelection) -> Path:
        """Where ``compiler`` looks for the libraries it links ``target`` binaries against."""
        return self.sysroot(compiler) / "lib" / "rustlib" / target.triple / "lib"

    def rustc_binary(self, compiler: Compiler) -> Path:
        return self.sysroot(compiler) / "bin" / exe("rustc", compiler.host)

    def llvm_out(self, target: TargetSelection) -> Path:
        return self.out / target.triple / "llvm"

    def lld_out(self, target: TargetSelection) -> Path:
        return self.out / target.triple / "lld"

    def doc_out(self, target: TargetSelection) -> Path:
        return self.out / target.triple / "doc"

    def compiler_doc_out(self, target: TargetSelection) -> Path:
        return self.out / target.triple / "compiler-doc"

    def md_doc_out(self, target: TargetSelection) -> Path:
        return self.out / target.triple / "md-doc"

    def native_dir(self, target: TargetSelection) -> Path:
        """Libraries built from C/C++ code, shared between stages."""
        return self.out / target.triple / "native"

    def test_helpers_out(self, target: TargetSelection) -> Path:
        return self.native_dir(target) / "rust-test-helpers"

    def extended_error_dir(self) -> Path:
        return self.out / "tmp" / "extended-error-metadata"

    def dist_dir(self) -> Path:
        return self.out / "dist"


def force_use_stage1(
    compiler: Compiler,
    target: TargetSelection,
    *,
    full_bootstrap: bool,
    hosts: Iterable[TargetSelection],
    build: TargetSelection,
) -> bool:
    """Should ``compiler`` building for ``target`` reuse stage1 artifacts instead?

    Without a full bootstrap the compiler is only built twice; the final
    stage copies the previous stage's libraries instead of rebuilding
    them. That applies when ``compiler`` is at stage 2 or later and
    ``target`` is not a pure cross target, so stage1 already produced its
    artifacts.
    """
    return (
        not full_bootstrap
        and compiler.stage >= 2
        and (any(host == target for host in hosts) or target == build)
    )


__all__ = ["Layout", "STAGE_SUFFIXES", "cargo_profile_dir", "exe", "force_use_stage1", "libdir"]
