"""The in-tree crate graph, read from ``cargo metadata``."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping
import json

from .errors import BootstrapError
from .target import TargetSelection

if TYPE_CHECKING:
    from .build import Build


# Workspaces whose manifests describe the crates the orchestrator knows about.
WORKSPACE_MANIFESTS = ("Cargo.toml", "src/tools/cargo/Cargo.toml")


@dataclass(frozen=True, slots=True)
class Crate:
    name: str
    deps: frozenset[str]
    id: str
    path: Path

    def local_path(self, src: Path) -> Path:
        """Path of the crate relative to the source root."""
        try:
            return self.path.relative_to(src)
        except ValueError:
            return self.path


def _normalize(name: str) -> str:
    return name.replace("-", "_")


class CrateGraph:
    def __init__(self, crates: Mapping[str, Crate] | None = None) -> None:
        self._crates: Dict[str, Crate] = dict(crates or {})

    @classmethod
    def from_metadata(cls, metadata: Mapping[str, Any]) -> "CrateGraph":
        """Build a graph from ``cargo metadata --format-version 1 --no-deps`` output.

        Only local packages are kept; registry and git sources are skipped.
        """
        crates: Dict[str, Crate] = {}
        for package in metadata.get("packages", []):
            if package.get("source") is not None:
                continue
            name = _normalize(str(package["name"]))
            deps = frozenset(
                _normalize(str(dep["name"]))
                for dep in package.get("dependencies", [])
                if dep.get("source") is None
            )
            manifest = Path(package["manifest_path"])
            crates[name] = Crate(name=name, deps=deps, id=str(package["id"]), path=manifest.parent)
        return cls(crates)

    @classmethod
    def load(cls, build: "Build") -> "CrateGraph":
        graph = cls()
        if build.dry_run:
            return graph
        for manifest in WORKSPACE_MANIFESTS:
            manifest_path = build.src / manifest
            command = [
                build.initial_cargo,
                "metadata",
                "--format-version",
                "1",
                "--no-deps",
                "--manifest-path",
                manifest_path,
            ]
            output = build.runner.output(command, cwd=build.src)
            try:
                metadata = json.loads(output)
            except json.JSONDecodeError as exc:
                raise BootstrapError(f"cargo metadata for {manifest_path} is not valid JSON: {exc}") from exc
            graph.merge(cls.from_metadata(metadata))
        return graph

    def merge(self, other: "CrateGraph") -> None:
        self._crates.update(other._crates)

    def __contains__(self, name: str) -> bool:
        return name in self._crates

    def __len__(self) -> int:
        return len(self._crates)

    def get(self, name: str) -> Crate:
        try:
            return self._crates[name]
        except KeyError:
            raise BootstrapError(f"crate `{name}` is not part of the source tree") from None

    def names(self) -> Iterable[str]:
        return self._crates.keys()

    def in_tree_crates(
        self,
        root: str,
        target: TargetSelection | None = None,
        *,
        profiler_enabled: bool = False,
        llvm_enabled: bool = True,
    ) -> List[Crate]:
        """Local crates reachable from ``root``, root first.

        ``build_helper`` is never descended into, ``profiler_builtins`` needs
        ``profiler_enabled`` and ``rustc_codegen_llvm`` needs ``llvm_enabled``.
        ``target`` is only used in error messages.
        """
        if root not in self._crates:
            where = f" for {target}" if target is not None else ""
            raise BootstrapError(f"crate `{root}`{where} is not part of the source tree")
        result: List[Crate] = []
        visited = {root}
        pending = [root]
        while pending:
            crate = self._crates[pending.pop()]
            result.append(crate)
            for dep in sorted(crate.deps):
                if dep in visited or dep not in self._crates:
                    continue
                if dep == "build_helper":
                    continue
                if dep == "profiler_builtins" and not profiler_enabled:
                    continue
                if dep == "rustc_codegen_llvm" and not llvm_enabled:
                    continue
                visited.add(dep)
                pending.append(dep)
        return result


__all__ = ["Crate", "CrateGraph", "WORKSPACE_MANIFESTS"]
