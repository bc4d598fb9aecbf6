"""Built-in steps: the standard library, the compiler and bundled tools."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Tuple

from .cargo import CargoCommand, cargo, run_cargo, rustc_for
from .layout import exe
from .scheduler import ExecutionMode, StepScheduler
from .subcommands import CheckCmd, Subcommand
from .target import Compiler, DependencyType, Mode, TargetSelection

if TYPE_CHECKING:
    from .build import Build


CARGO_COMMANDS = {
    "build": "build",
    "dist": "build",
    "install": "build",
    "check": "check",
    "test": "test",
    "doc": "doc",
}

DEFAULT_TOOLS = ("cargo", "rustfmt")


def cargo_subcommand(cmd: Subcommand) -> str:
    return CARGO_COMMANDS.get(cmd.kind, "build")


def _execute(build: "Build", command: CargoCommand, stamp: Path) -> List[Tuple[Path, DependencyType]]:
    """Run ``command`` the way its cargo subcommand needs.

    Only build and check leave artifacts behind; tests honour ``--no-fail-fast``.
    """
    subcommand = command.command[1]
    if subcommand == "test":
        build.run_delaying_failure(command.command, cwd=command.cwd, env=command.env)
        return []
    if subcommand == "doc":
        build.run(command.command, cwd=command.cwd, env=command.env)
        return []
    return run_cargo(build, command, stamp)


def copy_stamped(build: "Build", stamp: Path, dest: Path) -> None:
    """Copy the target artifacts listed in ``stamp`` into ``dest``."""
    build.create_dir(dest)
    for path, dependency_type in build.read_stamp_file(stamp):
        if dependency_type is DependencyType.HOST:
            continue
        build.copy(path, dest / path.name)


def std_stamp(build: "Build", compiler: Compiler, target: TargetSelection) -> Path:
    return build.cargo_out(compiler, Mode.STD, target) / "libstd.stamp"


def rustc_stamp(build: "Build", compiler: Compiler, target: TargetSelection) -> Path:
    return build.cargo_out(compiler, Mode.RUSTC, target) / "librustc.stamp"


@dataclass(slots=True)
class Std:
    compiler: Compiler
    target: TargetSelection
    paths: Tuple[str, ...] = ("library/std", "library/test")
    default: bool = True

    @property
    def name(self) -> str:
        return f"std {self.compiler} -> {self.target}"

    def run(self, build: "Build", mode: ExecutionMode) -> None:
        compiler, target = self.compiler, self.target
        kind = cargo_subcommand(build.config.cmd)
        if kind == "build" and build.force_use_stage1(compiler, target):
            stage1 = compiler.with_stage(1)
            build.info(f"Uplifting stage1 std ({stage1.host} -> {target})")
            copy_stamped(build, std_stamp(build, stage1, target), build.sysroot_libdir(compiler, target))
            return

        build.info(f"Building stage{compiler.stage} std artifacts ({compiler.host} -> {target})")
        build.clear_if_dirty(build.stage_out(compiler, Mode.STD), rustc_for(build, compiler))
        command = cargo(
            build,
            compiler,
            Mode.STD,
            target,
            kind,
            manifest=build.src / "library" / "test" / "Cargo.toml",
            packages=("test",),
            features=build.std_features(target),
        )
        stamp = std_stamp(build, compiler, target)
        _execute(build, command, stamp)
        if kind == "build":
            copy_stamped(build, stamp, build.sysroot_libdir(compiler, target))


@dataclass(slots=True)
class Rustc:
    """Builds the compiler for ``target`` with ``compiler``, producing the next stage."""

    compiler: Compiler
    target: TargetSelection
    paths: Tuple[str, ...] = ("compiler/rustc",)
    default: bool = True

    @property
    def name(self) -> str:
        return f"rustc {self.compiler} -> {self.target}"

    def run(self, build: "Build", mode: ExecutionMode) -> None:
        compiler, target = self.compiler, self.target
        kind = cargo_subcommand(build.config.cmd)
        next_compiler = Compiler(compiler.stage + 1, target)
        if kind == "build" and build.force_use_stage1(compiler, target):
            stage1 = compiler.with_stage(1)
            build.info(f"Uplifting stage1 rustc ({stage1.host} -> {target})")
            copy_stamped(build, rustc_stamp(build, stage1, target), build.sysroot(next_compiler) / "lib")
            return

        build.info(f"Building stage{compiler.stage} compiler artifacts ({compiler.host} -> {target})")
        build.clear_if_dirty(build.stage_out(compiler, Mode.RUSTC), rustc_for(build, compiler))
        command = cargo(
            build,
            compiler,
            Mode.RUSTC,
            target,
            kind,
            manifest=build.src / "compiler" / "rustc" / "Cargo.toml",
            features=build.rustc_features(),
        )
        stamp = rustc_stamp(build, compiler, target)
        _execute(build, command, stamp)
        if kind != "build":
            return
        copy_stamped(build, stamp, build.sysroot(next_compiler) / "lib")
        binary = build.cargo_out(compiler, Mode.RUSTC, target) / exe("rustc-main", target)
        build.create_dir(build.rustc_binary(next_compiler).parent)
        build.copy(binary, build.rustc_binary(next_compiler))


@dataclass(slots=True)
class ToolStep:
    tool: str
    compiler: Compiler
    target: TargetSelection
    mode: Mode = Mode.TOOL_RUSTC
    features: Tuple[str, ...] = ()
    default: bool = False

    @property
    def name(self) -> str:
        return f"tool {self.tool} {self.compiler} -> {self.target}"

    @property
    def paths(self) -> Tuple[str, ...]:
        return (f"src/tools/{self.tool}",)

    def run(self, build: "Build", mode: ExecutionMode) -> None:
        compiler, target = self.compiler, self.target
        kind = cargo_subcommand(build.config.cmd)
        build.info(f"Building stage{compiler.stage} tool {self.tool} ({compiler.host} -> {target})")
        command = cargo(
            build,
            compiler,
            self.mode,
            target,
            kind,
            manifest=build.src / "src" / "tools" / self.tool / "Cargo.toml",
            features=" ".join(self.features),
        )
        out_dir = build.cargo_out(compiler, self.mode, target)
        _execute(build, command, out_dir / f".{self.tool}.stamp")
        if kind != "build":
            return
        executable = out_dir / exe(self.tool, target)
        build.record_tool_artifact(target, self.tool, self.mode.value, executable, self.features)
        if not build.dry_run:
            build.copy_to_folder(executable, build.tools_dir(compiler))


def top_stage(build: "Build") -> int:
    if build.config.stage is not None:
        return build.config.stage
    return 0 if isinstance(build.config.cmd, CheckCmd) else 1


def default_scheduler(build: "Build") -> StepScheduler:
    """Steps bringing the compiler up to the requested stage for every target.

    Each stage below the top builds the standard library and the compiler on
    every host; the top stage gets a standard library for every target.
    """
    scheduler = StepScheduler()
    stage = top_stage(build)
    for current in range(stage):
        compiler = Compiler(current, build.build_triple)
        for host in build.hosts:
            scheduler.register(Std(compiler, host))
            scheduler.register(Rustc(compiler, host))
    top = Compiler(stage, build.build_triple)
    for target in build.targets:
        scheduler.register(Std(top, target))
    for tool in DEFAULT_TOOLS:
        scheduler.register(ToolStep(tool, top, build.build_triple))
    return scheduler


__all__ = [
    "CARGO_COMMANDS",
    "DEFAULT_TOOLS",
    "Rustc",
    "Std",
    "ToolStep",
    "cargo_subcommand",
    "copy_stamped",
    "default_scheduler",
    "rustc_stamp",
    "std_stamp",
    "top_stage",
]
