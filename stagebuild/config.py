"""Configuration model for the bootstrap orchestrator.

Settings come from a ``config.toml`` (``.json`` and ``.yaml`` work too) laid
out in ``[build]``, ``[rust]``, ``[llvm]`` and ``[target.<triple>]`` tables;
command line flags are applied on top through :meth:`Config.load`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping
import os
import platform

from core.config_loader import (
    load_config_file,
    merge_mappings,
    normalize_keys,
    normalize_string_list,
    reject_unknown_keys,
)

from .layout import exe
from .subcommands import BuildCmd, Subcommand
from .target import TargetSelection


CONFIG_ENV_VAR = "STAGEBUILD_CONFIG"

_TOP_LEVEL_SECTIONS = ("build", "rust", "llvm", "target", "tool_families", "profile", "changelog_seen")

_BUILD_KEYS = (
    "build",
    "host",
    "target",
    "cargo",
    "rustc",
    "build_dir",
    "full_bootstrap",
    "local_rebuild",
    "jobs",
    "verbose",
    "ignore_git",
    "vendor",
    "profiler",
    "python",
    "dry_run",
    "low_priority",
)

_RUST_KEYS = (
    "channel",
    "optimize",
    "use_lld",
    "remap_debuginfo",
    "description",
    "jemalloc",
    "debug_logging",
    "backtrace",
    "llvm_libunwind",
    "codegen_backends",
    "musl_root",
)

_LLVM_KEYS = ("ninja", "optimize", "release_debuginfo", "download_ci_llvm")

_TARGET_KEYS = (
    "cc",
    "cxx",
    "ar",
    "ranlib",
    "linker",
    "llvm_config",
    "llvm_filecheck",
    "crt_static",
    "musl_root",
    "musl_libdir",
    "wasi_root",
    "qemu_rootfs",
    "no_std",
    "profiler",
)


# Settings implied by `profile = "<name>"`; values written in the file win.
PROFILE_DEFAULTS: Dict[str, Mapping[str, Any]] = {
    "compiler": {"rust": {"debug-logging": True}, "llvm": {"download-ci-llvm": True}},
    "codegen": {"rust": {"debug-logging": True}, "llvm": {"release-debuginfo": True}},
    "library": {"llvm": {"download-ci-llvm": True}},
    "user": {"llvm": {"download-ci-llvm": True}},
}


class LlvmLibunwind(str, Enum):
    NO = "no"
    IN_TREE = "in-tree"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: Any) -> "LlvmLibunwind":
        if value is None or value is False:
            return cls.NO
        if value is True:
            return cls.IN_TREE
        try:
            return cls(str(value))
        except ValueError:
            raise ValueError(f"rust.llvm-libunwind must be one of no, in-tree, system (got {value!r})")


def _optional_path(value: Any) -> Path | None:
    if value is None:
        return None
    text = str(value).strip()
    return Path(text).expanduser() if text else None


def _optional_bool(value: Any, *, field_name: str) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raise TypeError(f"{field_name} must be a boolean if specified")


def default_build_triple() -> str:
    """Best effort guess of the triple of the machine running the orchestrator."""
    machine = platform.machine().lower() or "x86_64"
    machine = {"amd64": "x86_64", "arm64": "aarch64"}.get(machine, machine)
    system = platform.system().lower()
    if system == "darwin":
        return f"{machine}-apple-darwin"
    if system == "windows":
        return f"{machine}-pc-windows-msvc"
    if system == "freebsd":
        return f"{machine}-unknown-freebsd"
    return f"{machine}-unknown-linux-gnu"


@dataclass(slots=True)
class TargetConfig:
    """Per-target overrides from a ``[target.<triple>]`` table."""

    cc: Path | None = None
    cxx: Path | None = None
    ar: Path | None = None
    ranlib: Path | None = None
    linker: Path | None = None
    llvm_config: Path | None = None
    llvm_filecheck: Path | None = None
    crt_static: bool | None = None
    musl_root: Path | None = None
    musl_libdir: Path | None = None
    wasi_root: Path | None = None
    qemu_rootfs: Path | None = None
    no_std: bool = False
    profiler: bool | None = None

    @classmethod
    def from_mapping(cls, triple: str, data: Mapping[str, Any]) -> "TargetConfig":
        if not isinstance(data, Mapping):
            raise TypeError(f"[target.{triple}] must be a table")
        section = normalize_keys(data)
        reject_unknown_keys(section, _TARGET_KEYS, section=f"target.{triple}")
        return cls(
            cc=_optional_path(section.get("cc")),
            cxx=_optional_path(section.get("cxx")),
            ar=_optional_path(section.get("ar")),
            ranlib=_optional_path(section.get("ranlib")),
            linker=_optional_path(section.get("linker")),
            llvm_config=_optional_path(section.get("llvm_config")),
            llvm_filecheck=_optional_path(section.get("llvm_filecheck")),
            crt_static=_optional_bool(section.get("crt_static"), field_name=f"target.{triple}.crt-static"),
            musl_root=_optional_path(section.get("musl_root")),
            musl_libdir=_optional_path(section.get("musl_libdir")),
            wasi_root=_optional_path(section.get("wasi_root")),
            qemu_rootfs=_optional_path(section.get("qemu_rootfs")),
            no_std=bool(section.get("no_std", False)),
            profiler=_optional_bool(section.get("profiler"), field_name=f"target.{triple}.profiler"),
        )


@dataclass(slots=True)
class Config:
    src: Path
    out: Path
    build: TargetSelection
    hosts: List[TargetSelection]
    targets: List[TargetSelection]
    initial_rustc: Path
    initial_cargo: Path
    cmd: Subcommand = field(default_factory=BuildCmd)
    stage: int | None = None
    full_bootstrap: bool = False
    # None means "detect from the stage0 compiler version".
    local_rebuild: bool = False
    jobs: int | None = None
    verbose: int = 0
    dry_run: bool = False
    ignore_git: bool = False
    vendor: bool = False
    low_priority: bool = False
    profiler: bool = False
    python: Path | None = None
    channel: str = "dev"
    rust_optimize: bool = True
    use_lld: bool = False
    rust_remap_debuginfo: bool = False
    description: str | None = None
    jemalloc: bool = False
    rust_debug_logging: bool = False
    backtrace: bool = True
    llvm_libunwind: LlvmLibunwind = LlvmLibunwind.NO
    codegen_backends: List[str] = field(default_factory=lambda: ["llvm"])
    musl_root: Path | None = None
    ninja_in_file: bool = True
    llvm_optimize: bool = True
    llvm_release_debuginfo: bool = False
    llvm_from_ci: bool = False
    target_config: Dict[TargetSelection, TargetConfig] = field(default_factory=dict)
    # Raw `[tool-families.<name>]` tables layered over the builtin families.
    tool_families: Dict[str, Mapping[str, Any]] = field(default_factory=dict)
    profile: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, src: Path) -> "Config":
        root = normalize_keys(data)
        profile = root.get("profile")
        if profile:
            defaults = PROFILE_DEFAULTS.get(str(profile))
            if defaults is None:
                raise ValueError(f"unknown profile '{profile}'")
            root = merge_mappings(defaults, root)
        reject_unknown_keys(root, _TOP_LEVEL_SECTIONS, section="config")

        build_section = normalize_keys(root.get("build") or {})
        reject_unknown_keys(build_section, _BUILD_KEYS, section="build")
        rust_section = normalize_keys(root.get("rust") or {})
        reject_unknown_keys(rust_section, _RUST_KEYS, section="rust")
        llvm_section = normalize_keys(root.get("llvm") or {})
        reject_unknown_keys(llvm_section, _LLVM_KEYS, section="llvm")

        build = TargetSelection.from_user(str(build_section.get("build") or default_build_triple()))
        hosts = _selections(build_section.get("host"), default=[build], field_name="build.host")
        targets = _selections(build_section.get("target"), default=list(hosts), field_name="build.target")

        out = _optional_path(build_section.get("build_dir")) or Path("build")
        if not out.is_absolute():
            out = src / out

        stage0 = out / build.triple / "stage0" / "bin"
        initial_rustc = _optional_path(build_section.get("rustc")) or stage0 / exe("rustc", build)
        initial_cargo = _optional_path(build_section.get("cargo")) or stage0 / exe("cargo", build)

        target_config: Dict[TargetSelection, TargetConfig] = {}
        target_section = root.get("target") or {}
        if not isinstance(target_section, Mapping):
            raise TypeError("[target] must be a table of per-triple tables")
        for triple, value in target_section.items():
            target_config[TargetSelection.from_user(str(triple))] = TargetConfig.from_mapping(str(triple), value)

        tool_families = root.get("tool_families") or {}
        if not isinstance(tool_families, Mapping):
            raise TypeError("[tool-families] must be a table of per-family tables")

        jobs = build_section.get("jobs")
        if jobs is not None and (not isinstance(jobs, int) or jobs <= 0):
            raise ValueError("build.jobs must be a positive integer")

        backends = normalize_string_list(rust_section.get("codegen_backends", ["llvm"]), field_name="rust.codegen-backends")

        return cls(
            src=src,
            out=out,
            build=build,
            hosts=hosts,
            targets=targets,
            initial_rustc=initial_rustc,
            initial_cargo=initial_cargo,
            full_bootstrap=bool(build_section.get("full_bootstrap", False)),
            local_rebuild=bool(
                _optional_bool(build_section.get("local_rebuild"), field_name="build.local-rebuild")
            ),
            jobs=jobs,
            verbose=int(build_section.get("verbose", 0)),
            dry_run=bool(build_section.get("dry_run", False)),
            ignore_git=bool(build_section.get("ignore_git", False)),
            vendor=bool(build_section.get("vendor", False)),
            low_priority=bool(build_section.get("low_priority", False)),
            profiler=bool(build_section.get("profiler", False)),
            python=_optional_path(build_section.get("python")),
            channel=str(rust_section.get("channel", "dev")),
            rust_optimize=bool(rust_section.get("optimize", True)),
            use_lld=bool(rust_section.get("use_lld", False)),
            rust_remap_debuginfo=bool(rust_section.get("remap_debuginfo", False)),
            description=str(rust_section["description"]) if rust_section.get("description") else None,
            jemalloc=bool(rust_section.get("jemalloc", False)),
            rust_debug_logging=bool(rust_section.get("debug_logging", False)),
            backtrace=bool(rust_section.get("backtrace", True)),
            llvm_libunwind=LlvmLibunwind.parse(rust_section.get("llvm_libunwind")),
            codegen_backends=backends,
            musl_root=_optional_path(rust_section.get("musl_root")),
            ninja_in_file=bool(llvm_section.get("ninja", True)),
            llvm_optimize=bool(llvm_section.get("optimize", True)),
            llvm_release_debuginfo=bool(llvm_section.get("release_debuginfo", False)),
            llvm_from_ci=bool(llvm_section.get("download_ci_llvm", False)),
            target_config=target_config,
            tool_families=dict(tool_families),
            profile=str(root["profile"]) if root.get("profile") else None,
        )

    @classmethod
    def load(
        cls,
        path: Path | None = None,
        *,
        src: Path,
        cmd: Subcommand | None = None,
        build: str | None = None,
        hosts: Iterable[str] = (),
        targets: Iterable[str] = (),
        out: Path | None = None,
        stage: int | None = None,
        jobs: int | None = None,
        verbose: int = 0,
        dry_run: bool = False,
    ) -> "Config":
        """Read ``path`` (or the file named by ``STAGEBUILD_CONFIG``) and apply flags.

        Without a config file every setting takes its default value.
        """
        if path is None:
            env_value = os.environ.get(CONFIG_ENV_VAR)
            if env_value:
                path = Path(env_value)
            elif (src / "config.toml").exists():
                path = src / "config.toml"

        data: Mapping[str, Any] = {}
        if path is not None:
            if not path.exists():
                raise ValueError(f"configuration file '{path}' does not exist")
            data = load_config_file(path)

        config = cls.from_mapping(data, src=src)
        if cmd is not None:
            config.cmd = cmd
        if build:
            config.build = TargetSelection.from_user(build)
            if not data.get("build", {}).get("host"):
                config.hosts = [config.build]
            if not data.get("build", {}).get("target"):
                config.targets = list(config.hosts)
        hosts = list(hosts)
        targets = list(targets)
        if hosts:
            config.hosts = [TargetSelection.from_user(host) for host in hosts]
            if not targets:
                config.targets = list(config.hosts)
        if targets:
            config.targets = [TargetSelection.from_user(target) for target in targets]
        if out is not None:
            config.out = out if out.is_absolute() else src / out
        if stage is not None:
            config.stage = stage
        if jobs is not None:
            config.jobs = jobs
        config.verbose = max(config.verbose, verbose)
        config.dry_run = config.dry_run or dry_run
        return config

    def target(self, target: TargetSelection) -> TargetConfig | None:
        return self.target_config.get(target)

    def profiler_enabled(self, target: TargetSelection) -> bool:
        target_config = self.target_config.get(target)
        if target_config is not None and target_config.profiler is not None:
            return target_config.profiler
        return self.profiler

    def any_profiler_enabled(self) -> bool:
        if self.profiler:
            return True
        return any(t.profiler for t in self.target_config.values())

    def llvm_enabled(self) -> bool:
        return "llvm" in self.codegen_backends


def _selections(value: Any, *, default: List[TargetSelection], field_name: str) -> List[TargetSelection]:
    triples = normalize_string_list(value, field_name=field_name)
    if not triples:
        return list(default)
    return [TargetSelection.from_user(triple) for triple in triples]


__all__ = ["CONFIG_ENV_VAR", "PROFILE_DEFAULTS", "Config", "LlvmLibunwind", "TargetConfig", "default_build_triple"]
