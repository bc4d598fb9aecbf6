"""C toolchain families and per-target compiler, archiver and linker lookup."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping
import os

from core.config_loader import reject_unknown_keys

from .config import Config
from .errors import NotConfiguredAsHost
from .target import TargetSelection


_FAMILY_KEYS = ("cc", "cxx", "ar", "ranlib", "description")

# Targets that link through something other than a regular host style C driver.
_NON_HOST_LINKER_FRAGMENTS = ("emscripten", "wasm32", "nvptx", "fortanix", "fuchsia", "bpf")


@dataclass(slots=True)
class ToolFamily:
    name: str
    cc: str
    cxx: str
    ar: str | None = None
    ranlib: str | None = None
    description: str | None = None

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "ToolFamily":
        if not isinstance(data, Mapping):
            raise TypeError(f"Tool family '{name}' definition must be a mapping")
        reject_unknown_keys(data, _FAMILY_KEYS, section=f"tool family '{name}'")
        cc = data.get("cc")
        cxx = data.get("cxx")
        if not cc or not cxx:
            raise ValueError(f"Tool family '{name}' must specify both cc and cxx")
        ar = data.get("ar")
        ranlib = data.get("ranlib")
        description = data.get("description")
        return cls(
            name=name,
            cc=str(cc),
            cxx=str(cxx),
            ar=str(ar) if ar else None,
            ranlib=str(ranlib) if ranlib else None,
            description=str(description) if description is not None else None,
        )


def _build_builtin_families() -> Dict[str, ToolFamily]:
    raw: Dict[str, Mapping[str, Any]] = {
        "gcc": {
            "description": "GNU Compiler Collection",
            "cc": "gcc",
            "cxx": "g++",
            "ar": "ar",
            "ranlib": "ranlib",
        },
        "clang": {
            "description": "LLVM Clang toolchain",
            "cc": "clang",
            "cxx": "clang++",
            "ar": "ar",
            "ranlib": "ranlib",
        },
        "msvc": {
            "description": "Microsoft Visual C++",
            "cc": "cl.exe",
            "cxx": "cl.exe",
            "ar": "lib.exe",
        },
        "clang-cl": {
            "description": "Clang with the MSVC compatible driver",
            "cc": "clang-cl.exe",
            "cxx": "clang-cl.exe",
            "ar": "llvm-lib.exe",
        },
    }
    return {name: ToolFamily.from_mapping(name, data) for name, data in raw.items()}


class ToolFamilyRegistry:
    def __init__(self, families: Mapping[str, ToolFamily] | None = None) -> None:
        self._families: Dict[str, ToolFamily] = dict(families or {})

    @classmethod
    def with_builtins(cls) -> "ToolFamilyRegistry":
        return cls(_build_builtin_families())

    def merge_from_mapping(self, mapping: Mapping[str, Any]) -> None:
        for raw_name, raw_value in mapping.items():
            name = str(raw_name).strip().lower()
            if name:
                self._families[name] = ToolFamily.from_mapping(name, raw_value)

    def get(self, name: str) -> ToolFamily:
        try:
            return self._families[name.lower()]
        except KeyError:
            raise KeyError(f"Unknown tool family '{name}'") from None

    def available(self) -> Iterable[str]:
        return self._families.keys()

    def default_for(self, target: TargetSelection) -> ToolFamily:
        """Family whose compiler is used for ``target`` when nothing is configured."""
        if target.is_msvc:
            return self.get("msvc")
        if any(target.contains(os_name) for os_name in ("apple", "freebsd", "openbsd")):
            return self.get("clang")
        return self.get("gcc")

    def family_of(self, compiler: Path, target: TargetSelection) -> ToolFamily:
        """Guess the family of an explicitly chosen compiler from its file name."""
        name = compiler.name.lower()
        if name.startswith("clang-cl"):
            return self.get("clang-cl")
        if name in ("cl", "cl.exe"):
            return self.get("msvc")
        if "clang" in name:
            return self.get("clang")
        if "gcc" in name or "g++" in name or name in ("cc", "c++"):
            return self.get("gcc")
        return self.default_for(target)


@dataclass(slots=True)
class CcTool:
    """A resolved C or C++ compiler and the flags it was configured with."""

    path: Path
    family: ToolFamily
    args: List[str] = field(default_factory=list)


def use_host_linker(target: TargetSelection) -> bool:
    """Whether ``target`` links with a regular C driver like host binaries do."""
    return not any(target.contains(fragment) for fragment in _NON_HOST_LINKER_FRAGMENTS)


def _env_names(prefix: str, target: TargetSelection) -> List[str]:
    triple = target.triple
    return [f"{prefix}_{triple}", f"{prefix}_{triple.replace('-', '_')}", f"TARGET_{prefix}", prefix]


def _cross_sibling(compiler: Path, suffix: str, replacement: str) -> Path | None:
    # aarch64-linux-gnu-gcc -> aarch64-linux-gnu-ar
    name = compiler.name
    if name.endswith(f"-{suffix}"):
        return compiler.with_name(name[: -len(suffix)] + replacement)
    return None


class ToolchainResolver:
    """Chooses C/C++ compilers, archivers and linkers for every configured target.

    :meth:`probe` fills the lookup tables once at startup; afterwards every
    query is a plain lookup.
    """

    def __init__(
        self,
        config: Config,
        *,
        initial_lld: Path,
        registry: ToolFamilyRegistry | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.initial_lld = initial_lld
        self.registry = registry or ToolFamilyRegistry.with_builtins()
        self._env = os.environ if env is None else env
        self._cc: Dict[TargetSelection, CcTool] = {}
        self._cxx: Dict[TargetSelection, CcTool] = {}
        self._ar: Dict[TargetSelection, Path] = {}
        self._ranlib: Dict[TargetSelection, Path] = {}

    def _lookup_env(self, prefix: str, target: TargetSelection) -> str | None:
        for name in _env_names(prefix, target):
            value = self._env.get(name)
            if value:
                return value
        return None

    def probe(self) -> None:
        targets: List[TargetSelection] = []
        for target in [*self.config.targets, *self.config.hosts]:
            if target not in targets:
                targets.append(target)
        for target in targets:
            self._probe_target(target)
        for host in self.config.hosts:
            self._probe_host(host)

    def _probe_target(self, target: TargetSelection) -> None:
        target_config = self.config.target(target)
        if target_config is not None and target_config.cc is not None:
            cc_path = target_config.cc
            family = self.registry.family_of(cc_path, target)
        else:
            from_env = self._lookup_env("CC", target)
            if from_env:
                cc_path = Path(from_env)
                family = self.registry.family_of(cc_path, target)
            else:
                family = self.registry.default_for(target)
                cc_path = Path(family.cc)
        cflags = self._lookup_env("CFLAGS", target)
        self._cc[target] = CcTool(path=cc_path, family=family, args=cflags.split() if cflags else [])

        ar = target_config.ar if target_config is not None else None
        if ar is None:
            from_env = self._env.get(f"AR_{target.triple}")
            ar = Path(from_env) if from_env else None
        if ar is None:
            ar = _cross_sibling(cc_path, "gcc", "ar") or (Path(family.ar) if family.ar else None)
        if ar is not None:
            self._ar[target] = ar

        ranlib = target_config.ranlib if target_config is not None else None
        if ranlib is None:
            from_env = self._env.get(f"RANLIB_{target.triple}")
            ranlib = Path(from_env) if from_env else None
        if ranlib is None and family.ranlib:
            ranlib = _cross_sibling(cc_path, "gcc", "ranlib") or Path(family.ranlib)
        if ranlib is not None:
            self._ranlib[target] = ranlib

    def _probe_host(self, host: TargetSelection) -> None:
        target_config = self.config.target(host)
        cc = self._cc[host]
        if target_config is not None and target_config.cxx is not None:
            cxx_path = target_config.cxx
        else:
            from_env = self._env.get(f"CXX_{host.triple}") or self._env.get("CXX")
            if from_env:
                cxx_path = Path(from_env)
            else:
                cxx_path = _cross_sibling(cc.path, "gcc", "g++") or Path(cc.family.cxx)
        self._cxx[host] = CcTool(path=cxx_path, family=cc.family, args=list(cc.args))

    def targets(self) -> List[TargetSelection]:
        return list(self._cc)

    def cc(self, target: TargetSelection) -> Path:
        return self._cc[target].path

    def cflags(self, target: TargetSelection, *, debuginfo_map: str | None = None) -> List[str]:
        """Flags for the C compiler of ``target``.

        ``debuginfo_map`` is a ``<source>=<mapped>`` pair to remap in debug info.
        """
        base = [arg for arg in self._cc[target].args if not arg.startswith(("-O", "/O"))]
        if target.contains("apple-darwin"):
            base.append("-stdlib=libc++")
        if target.triple == "i686-pc-windows-gnu":
            base.append("-fno-omit-frame-pointer")
        if debuginfo_map is not None:
            cc = str(self.cc(target))
            if cc.endswith(("clang", "gcc")):
                base.append(f"-fdebug-prefix-map={debuginfo_map}")
            elif cc.endswith("clang-cl.exe"):
                base.extend(["-Xclang", f"-fdebug-prefix-map={debuginfo_map}"])
        return base

    def ar(self, target: TargetSelection) -> Path | None:
        return self._ar.get(target)

    def ranlib(self, target: TargetSelection) -> Path | None:
        return self._ranlib.get(target)

    def cxx(self, target: TargetSelection) -> Path:
        tool = self._cxx.get(target)
        if tool is None:
            raise NotConfiguredAsHost(target)
        return tool.path

    def is_fuse_ld_lld(self, target: TargetSelection) -> bool:
        # lld is passed through `-fuse-ld=lld`; only msvc targets invoke it directly.
        return self.config.use_lld and not target.is_msvc

    def linker(self, target: TargetSelection) -> Path | None:
        """The linker to force for ``target``, or ``None`` to keep the compiler default."""
        target_config = self.config.target(target)
        if target_config is not None and target_config.linker is not None:
            return target_config.linker
        if target.contains("vxworks"):
            return self.cxx(target)
        if target != self.config.build and use_host_linker(target) and not target.is_msvc:
            return self.cc(target)
        if self.config.use_lld and not self.is_fuse_ld_lld(target) and target == self.config.build:
            return self.initial_lld
        return None

    def crt_static(self, target: TargetSelection) -> bool | None:
        if target.contains("pc-windows-msvc"):
            return True
        target_config = self.config.target(target)
        return target_config.crt_static if target_config is not None else None

    def musl_root(self, target: TargetSelection) -> Path | None:
        target_config = self.config.target(target)
        if target_config is not None and target_config.musl_root is not None:
            return target_config.musl_root
        return self.config.musl_root

    def musl_libdir(self, target: TargetSelection) -> Path | None:
        target_config = self.config.target(target)
        if target_config is None:
            return None
        if target_config.musl_libdir is not None:
            return target_config.musl_libdir
        root = self.musl_root(target)
        return root / "lib" if root is not None else None

    def wasi_root(self, target: TargetSelection) -> Path | None:
        target_config = self.config.target(target)
        return target_config.wasi_root if target_config is not None else None

    def no_std(self, target: TargetSelection) -> bool | None:
        target_config = self.config.target(target)
        return target_config.no_std if target_config is not None else None

    def qemu_rootfs(self, target: TargetSelection) -> Path | None:
        target_config = self.config.target(target)
        return target_config.qemu_rootfs if target_config is not None else None


__all__ = [
    "CcTool",
    "ToolFamily",
    "ToolFamilyRegistry",
    "ToolchainResolver",
    "use_host_linker",
]
