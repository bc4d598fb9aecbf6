"""The orchestrator: startup probing, shared state and two-pass execution."""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, MutableMapping, Sequence, Tuple
import os
import threading

import psutil

from core.command_runner import CommandResult, CommandRunner, SubprocessCommandRunner, format_command
from core.console import Console

from . import clean as clean_cmd
from . import format as format_cmd
from . import sanity
from . import setup as setup_cmd
from .channel import GitInfo, ReleaseResolver, release_num
from .config import Config, LlvmLibunwind
from .crates import Crate, CrateGraph
from .errors import BootstrapError
from .files import FileSystem
from .layout import Layout, exe, force_use_stage1, libdir
from .scheduler import ExecutionMode, StepScheduler
from .stamp import StampEntry, clear_if_dirty, read_stamp_file
from .steps import default_scheduler
from .subcommands import CleanCmd, FormatCmd, SetupCmd, doc_tests, fail_fast, requested_paths
from .target import Compiler, GitRepo, Mode, TargetSelection
from .toolchains import ToolchainResolver, ToolFamilyRegistry


DRY_RUN_TARGET_LIBDIR = "/dummy/lib/path/to/lib/"
DRY_RUN_SYSROOT = "/dummy"


ToolArtifact = Tuple[str, Path, Tuple[str, ...]]


def _is_sudo(env: Mapping[str, str]) -> bool:
    sudo_user = env.get("SUDO_USER")
    user = env.get("USER")
    if sudo_user is None or user is None:
        return False
    return user != sudo_user


def _major_minor(version: str) -> List[str]:
    return version.strip().split(".")[:2]


class Build:
    """State shared by every step of one orchestrator run.

    Construction performs all startup probing in a fixed order: git
    information, the snapshot compiler's sysroot, ``src/version``, C
    toolchains, sanity checks, local rebuild detection and finally the crate
    graph. :meth:`build` then runs the selected steps, first as a dry run and
    then for real.
    """

    def __init__(
        self,
        config: Config,
        *,
        runner: CommandRunner | None = None,
        console: Console | None = None,
        env: Mapping[str, str] | None = None,
        scheduler: StepScheduler | None = None,
    ) -> None:
        self.config = config
        self.runner = runner or SubprocessCommandRunner()
        self.console = console or Console.for_verbosity(config.verbose, dry_run=config.dry_run)
        self._env = os.environ if env is None else env
        self._scheduler = scheduler
        self._lock = threading.Lock()
        self._pass_mode: ExecutionMode | None = None

        self.src = config.src
        self.out = config.out
        self.is_sudo = _is_sudo(self._env)
        self.rust_info = GitInfo(self.src, ignore_git=config.ignore_git)

        if config.dry_run:
            target_libdir = DRY_RUN_TARGET_LIBDIR
            sysroot = DRY_RUN_SYSROOT
        else:
            target_libdir = self.runner.output(
                [config.initial_rustc, "--target", config.build.rustc_target_arg(), "--print", "target-libdir"]
            )
            sysroot = self.runner.output([config.initial_rustc, "--print", "sysroot"])
        initial_target_dir = Path(target_libdir.strip()).parent
        self.initial_lld = initial_target_dir / "bin" / exe("rust-lld", config.build)
        try:
            self.initial_libdir = initial_target_dir.parent.parent.relative_to(sysroot.strip())
        except ValueError:
            raise BootstrapError(
                f"target libdir {target_libdir.strip()} is not inside the sysroot {sysroot.strip()}"
            ) from None

        version_file = self.src / "src" / "version"
        try:
            self.version = version_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise BootstrapError(f"failed to read {version_file}: {exc}") from exc

        self.initial_rustc = config.initial_rustc
        self.initial_cargo = config.initial_cargo
        self.local_rebuild = config.local_rebuild
        self.fail_fast = fail_fast(config.cmd)
        self.doc_tests = doc_tests(config.cmd)
        self.verbosity = config.verbose
        self.build_triple = config.build
        self.hosts = list(config.hosts)
        self.targets = list(config.targets)
        self.layout = Layout(self.out, config.rust_optimize)
        self.fs = FileSystem(lambda: self.dry_run, self.console)
        self.release_resolver = ReleaseResolver(config.channel, self.rust_info, description=config.description)
        self.delayed_failures: List[str] = []
        self.tool_artifacts: Dict[Tuple[TargetSelection, str], ToolArtifact] = {}
        self.crates = CrateGraph()

        registry = ToolFamilyRegistry.with_builtins()
        registry.merge_from_mapping(config.tool_families)
        self.toolchains = ToolchainResolver(config, initial_lld=self.initial_lld, registry=registry, env=self._env)
        self.verbose("finding compilers")
        self.toolchains.probe()

        self.verbose("running sanity check")
        sanity.check(self)

        if self._detect_local_rebuild():
            self.local_rebuild = True

        self.verbose("learning about cargo")
        self.crates = CrateGraph.load(self)

    def _detect_local_rebuild(self) -> bool:
        if self.config.dry_run:
            return False
        output = self.runner.output([self.initial_rustc, "--version", "--verbose"])
        for line in output.splitlines():
            if line.startswith("release:"):
                local_release = line[len("release:"):].strip()
                if _major_minor(local_release) == _major_minor(self.version):
                    self.verbose(f"auto-detected local-rebuild {local_release}")
                    return True
                return False
        raise BootstrapError(f"`{self.initial_rustc} --version --verbose` did not report a release")

    # Execution

    @property
    def dry_run(self) -> bool:
        if self._pass_mode is not None:
            return self._pass_mode.dry_run
        return self.config.dry_run

    @contextmanager
    def executing(self, mode: ExecutionMode) -> Iterator[None]:
        """Scope in which :attr:`dry_run` reflects ``mode``."""
        previous = self._pass_mode
        self._pass_mode = mode
        try:
            yield
        finally:
            self._pass_mode = previous

    def scheduler(self) -> StepScheduler:
        if self._scheduler is None:
            self._scheduler = default_scheduler(self)
        return self._scheduler

    def build(self) -> int:
        """Run the configured subcommand and return the process exit status."""
        cmd = self.config.cmd
        if isinstance(cmd, FormatCmd):
            format_cmd.format_tree(self, cmd.check)
            return 0
        if isinstance(cmd, CleanCmd):
            clean_cmd.clean(self, cmd.all)
            return 0
        if isinstance(cmd, SetupCmd):
            setup_cmd.setup(self.src, cmd.profile)
            return 0

        paths = requested_paths(cmd)
        scheduler = self.scheduler()
        if not self.config.dry_run:
            scheduler.execute(self, ExecutionMode.DRY_RUN, paths)
            scheduler.execute(self, ExecutionMode.REAL, paths)
        else:
            scheduler.execute(self, ExecutionMode.DRY_RUN, paths)

        if self.delayed_failures:
            print(f"\n{len(self.delayed_failures)} command(s) did not execute successfully:\n")
            for failure in self.delayed_failures:
                print(f"  - {failure}\n")
            return 1
        return 0

    def _announce(self, command: Sequence[object]) -> List[str]:
        argv = [str(part) for part in command]
        self.verbose(f"running: {format_command(argv)}")
        return argv

    def run(self, command: Sequence[object], *, cwd: Path | None = None, env: Mapping[str, str] | None = None) -> None:
        if self.dry_run:
            return
        argv = self._announce(command)
        self._invoke(argv, cwd=cwd, env=env, check=True, stream=True)

    def run_quiet(
        self, command: Sequence[object], *, cwd: Path | None = None, env: Mapping[str, str] | None = None
    ) -> None:
        """Like :meth:`run` but output is only shown when the command fails."""
        if self.dry_run:
            return
        argv = self._announce(command)
        self._invoke(argv, cwd=cwd, env=env, check=True, stream=False)

    def run_capture(
        self, command: Sequence[object], *, cwd: Path | None = None, env: Mapping[str, str] | None = None
    ) -> str:
        if self.dry_run:
            return ""
        argv = self._announce(command)
        return self._invoke(argv, cwd=cwd, env=env, check=True, stream=False).stdout

    def try_run(self, command: Sequence[object], *, cwd: Path | None = None, env: Mapping[str, str] | None = None) -> bool:
        if self.dry_run:
            return True
        argv = self._announce(command)
        return self._invoke(argv, cwd=cwd, env=env, check=False, stream=True).ok

    def run_delaying_failure(
        self, command: Sequence[object], *, cwd: Path | None = None, env: Mapping[str, str] | None = None
    ) -> bool:
        """Run ``command``; without fail-fast a failure is recorded and reported at the end."""
        if self.fail_fast:
            self.run(command, cwd=cwd, env=env)
            return True
        if self.try_run(command, cwd=cwd, env=env):
            return True
        with self._lock:
            self.delayed_failures.append(format_command([str(part) for part in command]))
        return False

    def _invoke(
        self, argv: List[str], *, cwd: Path | None, env: Mapping[str, str] | None, check: bool, stream: bool
    ) -> CommandResult:
        try:
            return self.runner.run(argv, cwd=cwd, env=env, check=check, stream=stream)
        except OSError as exc:
            raise BootstrapError(f"failed to execute {format_command(argv)}: {exc}") from exc

    # Logging

    def is_verbose(self) -> bool:
        return self.verbosity > 0

    def is_verbose_than(self, level: int) -> bool:
        return self.verbosity > level

    def verbose(self, message: str) -> None:
        if self.is_verbose():
            self.console.debug(message)

    def verbose_than(self, level: int, message: str) -> None:
        if self.is_verbose_than(level):
            if level > 0:
                self.console.trace(message)
            else:
                self.console.debug(message)

    def info(self, message: str) -> None:
        if self.dry_run:
            return
        self.console.info(message)

    # Environment and features

    def jobs(self) -> int:
        if self.config.jobs is not None:
            return self.config.jobs
        return psutil.cpu_count(logical=True) or 1

    def add_rust_test_threads(self, env: MutableMapping[str, str]) -> None:
        if "RUST_TEST_THREADS" not in self._env:
            env["RUST_TEST_THREADS"] = str(self.jobs())

    def remote_tested(self, target: TargetSelection) -> bool:
        """Whether tests for ``target`` run on an emulator or a remote device."""
        return (
            self.qemu_rootfs(target) is not None
            or target.contains("android")
            or "TEST_DEVICE_ADDR" in self._env
        )

    def std_features(self, target: TargetSelection) -> str:
        features = ["panic-unwind"]
        if self.config.llvm_libunwind is LlvmLibunwind.IN_TREE:
            features.append("llvm-libunwind")
        elif self.config.llvm_libunwind is LlvmLibunwind.SYSTEM:
            features.append("system-llvm-libunwind")
        if self.config.backtrace:
            features.append("backtrace")
        if self.config.profiler_enabled(target):
            features.append("profiler")
        return " ".join(features)

    def rustc_features(self) -> str:
        features = []
        if self.config.jemalloc:
            features.append("jemalloc")
        if self.config.llvm_enabled():
            features.append("llvm")
        if not self.config.rust_debug_logging:
            features.append("max_level_info")
        return " ".join(features)

    def debuginfo_map_to(self, which: GitRepo) -> str | None:
        if not self.config.rust_remap_debuginfo:
            return None
        if which is GitRepo.RUSTC:
            return f"/rustc/{self.rust_sha() or self.version}"
        return "/rustc/llvm"

    def cargo_dir(self) -> str:
        return "release" if self.config.rust_optimize else "debug"

    def record_tool_artifact(
        self,
        target: TargetSelection,
        tool: str,
        kind: str,
        path: Path,
        features: Sequence[str],
    ) -> None:
        """Remember a built tool; two tools sharing an output path must agree on features."""
        wanted = tuple(sorted(features))
        with self._lock:
            for (other_target, other_tool), (_, other_path, other_features) in self.tool_artifacts.items():
                if other_target != target or other_tool == tool or other_path != path:
                    continue
                if other_features != wanted:
                    raise BootstrapError(
                        f"duplicate artifacts found when compiling a tool: {path} is built by "
                        f"`{other_tool}` with features {list(other_features)} and by `{tool}` "
                        f"with features {list(wanted)}"
                    )
            self.tool_artifacts[(target, tool)] = (kind, path, wanted)

    # Toolchains

    def cc(self, target: TargetSelection) -> Path:
        return self.toolchains.cc(target)

    def cflags(self, target: TargetSelection, which: GitRepo) -> List[str]:
        map_to = self.debuginfo_map_to(which)
        debuginfo_map = f"{self.src}={map_to}" if map_to is not None else None
        return self.toolchains.cflags(target, debuginfo_map=debuginfo_map)

    def ar(self, target: TargetSelection) -> Path | None:
        return self.toolchains.ar(target)

    def ranlib(self, target: TargetSelection) -> Path | None:
        return self.toolchains.ranlib(target)

    def cxx(self, target: TargetSelection) -> Path:
        return self.toolchains.cxx(target)

    def linker(self, target: TargetSelection) -> Path | None:
        return self.toolchains.linker(target)

    def is_fuse_ld_lld(self, target: TargetSelection) -> bool:
        return self.toolchains.is_fuse_ld_lld(target)

    def crt_static(self, target: TargetSelection) -> bool | None:
        return self.toolchains.crt_static(target)

    def musl_root(self, target: TargetSelection) -> Path | None:
        return self.toolchains.musl_root(target)

    def musl_libdir(self, target: TargetSelection) -> Path | None:
        return self.toolchains.musl_libdir(target)

    def wasi_root(self, target: TargetSelection) -> Path | None:
        return self.toolchains.wasi_root(target)

    def no_std(self, target: TargetSelection) -> bool | None:
        return self.toolchains.no_std(target)

    def qemu_rootfs(self, target: TargetSelection) -> Path | None:
        return self.toolchains.qemu_rootfs(target)

    # Layout

    def force_use_stage1(self, compiler: Compiler, target: TargetSelection) -> bool:
        return force_use_stage1(
            compiler,
            target,
            full_bootstrap=self.config.full_bootstrap,
            hosts=self.hosts,
            build=self.build_triple,
        )

    def stage_out(self, compiler: Compiler, mode: Mode) -> Path:
        return self.layout.stage_out(compiler, mode)

    def cargo_out(self, compiler: Compiler, mode: Mode, target: TargetSelection) -> Path:
        return self.layout.cargo_out(compiler, mode, target)

    def tools_dir(self, compiler: Compiler) -> Path:
        return self.layout.tools_dir(compiler)

    def sysroot(self, compiler: Compiler) -> Path:
        return self.layout.sysroot(compiler)

    def sysroot_libdir(self, compiler: Compiler, target: TargetSelection) -> Path:
        return self.layout.sysroot_libdir(compiler, target)

    def rustc_binary(self, compiler: Compiler) -> Path:
        return self.layout.rustc_binary(compiler)

    def rustc_snapshot_sysroot(self) -> Path:
        return self.initial_rustc.parent.parent

    def rustc_snapshot_libdir(self) -> Path:
        return self.rustc_snapshot_sysroot() / libdir(self.build_triple)

    def llvm_out(self, target: TargetSelection) -> Path:
        return self.layout.llvm_out(target)

    def lld_out(self, target: TargetSelection) -> Path:
        return self.layout.lld_out(target)

    def doc_out(self, target: TargetSelection) -> Path:
        return self.layout.doc_out(target)

    def compiler_doc_out(self, target: TargetSelection) -> Path:
        return self.layout.compiler_doc_out(target)

    def md_doc_out(self, target: TargetSelection) -> Path:
        return self.layout.md_doc_out(target)

    def native_dir(self, target: TargetSelection) -> Path:
        return self.layout.native_dir(target)

    def test_helpers_out(self, target: TargetSelection) -> Path:
        return self.layout.test_helpers_out(target)

    def extended_error_dir(self) -> Path:
        return self.layout.extended_error_dir()

    def in_tree_crates(self, root: str, target: TargetSelection | None = None) -> List[Crate]:
        if target is not None:
            profiler = self.config.profiler_enabled(target)
        else:
            profiler = self.config.any_profiler_enabled()
        return self.crates.in_tree_crates(
            root, target, profiler_enabled=profiler, llvm_enabled=self.config.llvm_enabled()
        )

    # Invalidation

    def clear_if_dirty(self, directory: Path, input_path: Path) -> bool:
        if self.dry_run:
            return False
        cleared = clear_if_dirty(directory, input_path)
        if cleared:
            self.verbose(f"Dirty - {directory}")
        return cleared

    def read_stamp_file(self, stamp: Path) -> List[StampEntry]:
        return read_stamp_file(stamp, dry_run=self.dry_run)

    # Versioning

    def release(self, num: str) -> str:
        return self.release_resolver.release(num)

    def package_vers(self, num: str) -> str:
        return self.release_resolver.package_vers(num)

    def rust_release(self) -> str:
        return self.release(self.version)

    def rust_package_vers(self) -> str:
        return self.package_vers(self.version)

    def rust_version(self) -> str:
        return self.release_resolver.rust_version(self.version)

    def rust_sha(self) -> str | None:
        return self.rust_info.sha()

    def release_num(self, package: str) -> str:
        return release_num(self.src, package)

    def unstable_features(self) -> bool:
        return self.release_resolver.unstable_features()

    # Files

    def copy(self, src: Path, dst: Path) -> None:
        self.fs.copy(src, dst)

    def cp_r(self, src: Path, dst: Path) -> None:
        self.fs.cp_r(src, dst)

    def cp_filtered(self, src: Path, dst: Path, keep: Callable[[Path], bool]) -> None:
        self.fs.cp_filtered(src, dst, keep)

    def copy_to_folder(self, src: Path, dest_folder: Path) -> None:
        self.fs.copy_to_folder(src, dest_folder)

    def install(self, src: Path, dstdir: Path, perms: int) -> None:
        self.fs.install(src, dstdir, perms)

    def create(self, path: Path, contents: str) -> None:
        self.fs.create(path, contents)

    def read(self, path: Path) -> str:
        return self.fs.read(path)

    def create_dir(self, directory: Path) -> None:
        self.fs.create_dir(directory)

    def remove_dir(self, directory: Path) -> None:
        self.fs.remove_dir(directory)

    def remove(self, path: Path) -> None:
        self.fs.remove(path)

    def read_dir(self, directory: Path) -> List[Path]:
        return self.fs.read_dir(directory)

    def replace_in_file(self, path: Path, replacements: Sequence[Tuple[str, str]]) -> None:
        self.fs.replace_in_file(path, replacements)


__all__ = ["Build", "DRY_RUN_SYSROOT", "DRY_RUN_TARGET_LIBDIR"]
