from __future__ import annotations

from types import SimpleNamespace
import unittest

from stagebuild.target import Compiler, DependencyType, Mode, TargetSelection


class TargetSelectionTests(unittest.TestCase):
    def test_from_user_interns_equal_selections(self) -> None:
        first = TargetSelection.from_user("x86_64-unknown-linux-gnu")
        second = TargetSelection.from_user(" x86_64-unknown-linux-gnu ")
        self.assertIs(first, second)
        self.assertEqual(str(first), "x86_64-unknown-linux-gnu")
        self.assertEqual(first.rustc_target_arg(), "x86_64-unknown-linux-gnu")

    def test_custom_target_file_uses_stem_as_triple(self) -> None:
        target = TargetSelection.from_user("specs/my-board.json")
        self.assertEqual(target.triple, "my-board")
        self.assertEqual(target.rustc_target_arg(), "specs/my-board.json")

    def test_empty_selection_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            TargetSelection.from_user("  ")

    def test_substring_queries(self) -> None:
        target = TargetSelection("x86_64-pc-windows-msvc")
        self.assertTrue(target.contains("windows"))
        self.assertTrue(target.starts_with("x86_64"))
        self.assertTrue(target.ends_with("msvc"))
        self.assertTrue(target.is_windows)
        self.assertTrue(target.is_msvc)
        self.assertFalse(TargetSelection("aarch64-apple-darwin").is_windows)


class CompilerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.host = TargetSelection("x86_64-unknown-linux-gnu")

    def test_negative_stage_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Compiler(-1, self.host)

    def test_ordering_and_with_stage(self) -> None:
        stage1 = Compiler(1, self.host)
        stage2 = stage1.with_stage(2)
        self.assertLess(stage1, stage2)
        self.assertEqual(stage2, Compiler(2, self.host))
        self.assertEqual(stage1.stage, 1)

    def test_snapshot_only_for_stage0_on_build_platform(self) -> None:
        build = SimpleNamespace(build_triple=self.host)
        self.assertTrue(Compiler(0, self.host).is_snapshot(build))
        self.assertFalse(Compiler(1, self.host).is_snapshot(build))
        self.assertFalse(Compiler(0, TargetSelection("aarch64-unknown-linux-gnu")).is_snapshot(build))

    def test_final_stage_depends_on_full_bootstrap(self) -> None:
        regular = SimpleNamespace(config=SimpleNamespace(full_bootstrap=False))
        full = SimpleNamespace(config=SimpleNamespace(full_bootstrap=True))
        self.assertTrue(Compiler(1, self.host).is_final_stage(regular))
        self.assertFalse(Compiler(1, self.host).is_final_stage(full))
        self.assertTrue(Compiler(2, self.host).is_final_stage(full))


class ModeTests(unittest.TestCase):
    def test_tool_modes(self) -> None:
        tools = {mode for mode in Mode if mode.is_tool()}
        self.assertEqual(tools, {Mode.TOOL_BOOTSTRAP, Mode.TOOL_STD, Mode.TOOL_RUSTC})

    def test_dlopen_modes(self) -> None:
        self.assertEqual({mode for mode in Mode if mode.must_support_dlopen()}, {Mode.STD, Mode.CODEGEN})

    def test_dependency_tags(self) -> None:
        self.assertEqual([member.value for member in DependencyType], ["h", "t", "s"])


if __name__ == "__main__":
    unittest.main()
