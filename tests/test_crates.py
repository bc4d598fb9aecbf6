from __future__ import annotations

from pathlib import Path
import unittest

from stagebuild.crates import Crate, CrateGraph
from stagebuild.errors import BootstrapError
from stagebuild.target import TargetSelection


def _package(name: str, *deps: str, source: str | None = None) -> dict:
    return {
        "name": name,
        "id": f"{name} 0.0.0 (path+file:///src/{name})",
        "source": source,
        "manifest_path": f"/src/library/{name}/Cargo.toml",
        "dependencies": [{"name": dep, "source": None} for dep in deps],
    }


class CrateGraphTests(unittest.TestCase):
    def test_from_metadata_keeps_local_packages_and_normalizes_names(self) -> None:
        metadata = {
            "packages": [
                _package("std", "alloc", "build-helper"),
                _package("alloc"),
                _package("build-helper"),
                _package("libc", source="registry+https://github.com/rust-lang/crates.io-index"),
            ]
        }
        graph = CrateGraph.from_metadata(metadata)
        self.assertEqual(sorted(graph.names()), ["alloc", "build_helper", "std"])
        std = graph.get("std")
        self.assertEqual(std.deps, frozenset({"alloc", "build_helper"}))
        self.assertEqual(std.path, Path("/src/library/std"))
        self.assertEqual(std.local_path(Path("/src")), Path("library/std"))

    def _graph(self, **crates: tuple[str, ...]) -> CrateGraph:
        return CrateGraph(
            {name: Crate(name=name, deps=frozenset(deps), id=name, path=Path("/src") / name) for name, deps in crates.items()}
        )

    def test_in_tree_crates_follows_dependencies_root_first(self) -> None:
        graph = self._graph(a=("b", "build_helper"), b=("c",), c=(), build_helper=("c",))
        names = [crate.name for crate in graph.in_tree_crates("a")]
        self.assertEqual(names[0], "a")
        self.assertEqual(sorted(names), ["a", "b", "c"])

    def test_missing_dependencies_are_ignored(self) -> None:
        graph = self._graph(a=("b", "registry_only"), b=())
        self.assertEqual(sorted(crate.name for crate in graph.in_tree_crates("a")), ["a", "b"])

    def test_each_crate_is_listed_once(self) -> None:
        graph = self._graph(a=("b", "c"), b=("c",), c=("a",))
        names = [crate.name for crate in graph.in_tree_crates("a")]
        self.assertEqual(len(names), len(set(names)))

    def test_optional_crates_follow_configuration(self) -> None:
        graph = self._graph(std=("profiler_builtins",), profiler_builtins=(), rustc=("rustc_codegen_llvm",), rustc_codegen_llvm=())
        target = TargetSelection("x86_64-unknown-linux-gnu")
        without = [crate.name for crate in graph.in_tree_crates("std", target)]
        with_profiler = [crate.name for crate in graph.in_tree_crates("std", target, profiler_enabled=True)]
        self.assertEqual(without, ["std"])
        self.assertEqual(with_profiler, ["std", "profiler_builtins"])
        self.assertEqual(
            [crate.name for crate in graph.in_tree_crates("rustc", llvm_enabled=False)],
            ["rustc"],
        )

    def test_unknown_root_is_fatal(self) -> None:
        with self.assertRaises(BootstrapError):
            self._graph(a=()).in_tree_crates("missing")


if __name__ == "__main__":
    unittest.main()
