"""Command line interface for the bootstrap orchestrator."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from core.command_runner import CommandError

from .build import Build
from .config import Config
from .errors import BootstrapError, NotConfiguredAsHost
from .setup import PROFILES
from .subcommands import (
    BuildCmd,
    CheckCmd,
    CleanCmd,
    DistCmd,
    DocCmd,
    DocTests,
    FormatCmd,
    InstallCmd,
    SetupCmd,
    Subcommand,
    TestCmd,
)


_PATH_COMMANDS = {
    "build": (BuildCmd, "Compile the compiler, standard library and tools"),
    "check": (CheckCmd, "Type check without producing artifacts"),
    "doc": (DocCmd, "Build documentation"),
    "dist": (DistCmd, "Build distribution artifacts"),
    "install": (InstallCmd, "Install distribution artifacts"),
}


def _common_options() -> ArgumentParser:
    common = ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Configuration file (defaults to $STAGEBUILD_CONFIG or config.toml)")
    common.add_argument("--build", help="Triple of the machine running the build")
    common.add_argument("--host", action="append", default=[], help="Host triple to produce compilers for (repeatable)")
    common.add_argument("--target", action="append", default=[], help="Target triple to produce libraries for (repeatable)")
    common.add_argument("--stage", type=int, help="Stage to build up to")
    common.add_argument("-j", "--jobs", type=int, help="Number of parallel jobs")
    common.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (repeatable)")
    common.add_argument("-n", "--dry-run", action="store_true", help="Plan every step without running commands")
    common.add_argument("--src", type=Path, default=None, help="Root of the source tree (defaults to the current directory)")
    common.add_argument("--out", type=Path, default=None, help="Build output directory")
    return common


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    common = _common_options()
    parser = ArgumentParser(prog="stagebuild", description="Staged bootstrap orchestrator for a self-hosting compiler")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, (_, help_text) in _PATH_COMMANDS.items():
        sub = subparsers.add_parser(name, parents=[common], help=help_text)
        sub.add_argument("paths", nargs="*", help="Restrict the run to these source paths")

    test_parser = subparsers.add_parser("test", parents=[common], help="Build and run tests")
    test_parser.add_argument("paths", nargs="*", help="Restrict the run to these source paths")
    test_parser.add_argument("--no-fail-fast", action="store_true", help="Keep going after a test command fails")
    doc_group = test_parser.add_mutually_exclusive_group()
    doc_group.add_argument("--doc", action="store_true", help="Only run documentation tests")
    doc_group.add_argument("--no-doc", action="store_true", help="Skip documentation tests")
    test_parser.add_argument("--test-args", action="append", default=[], help="Extra arguments for the test harness")

    fmt_parser = subparsers.add_parser("fmt", parents=[common], help="Format the source tree")
    fmt_parser.add_argument("--check", action="store_true", help="Only verify formatting")

    clean_parser = subparsers.add_parser("clean", parents=[common], help="Remove build output")
    clean_parser.add_argument("--all", action="store_true", help="Remove the entire build directory")

    setup_parser = subparsers.add_parser("setup", parents=[common], help="Write a starter config.toml")
    setup_parser.add_argument("profile", nargs="?", default="user", choices=sorted(PROFILES), help="Configuration profile")

    return parser.parse_args(list(argv))


def _subcommand(args: Namespace) -> Subcommand:
    if args.command in _PATH_COMMANDS:
        command_type, _ = _PATH_COMMANDS[args.command]
        return command_type(paths=tuple(args.paths))
    if args.command == "test":
        doc_tests = DocTests.YES
        if args.doc:
            doc_tests = DocTests.ONLY
        elif args.no_doc:
            doc_tests = DocTests.NO
        return TestCmd(
            paths=tuple(args.paths),
            fail_fast=not args.no_fail_fast,
            doc_tests=doc_tests,
            test_args=tuple(arg for value in args.test_args for arg in value.split()),
        )
    if args.command == "fmt":
        return FormatCmd(check=args.check)
    if args.command == "clean":
        return CleanCmd(all=args.all)
    if args.command == "setup":
        return SetupCmd(profile=args.profile)
    raise ValueError(f"Unknown command: {args.command}")


def load_config(args: Namespace) -> Config:
    src = (args.src or Path.cwd()).resolve()
    return Config.load(
        args.config,
        src=src,
        cmd=_subcommand(args),
        build=args.build,
        hosts=args.host,
        targets=args.target,
        out=args.out,
        stage=args.stage,
        jobs=args.jobs,
        verbose=args.verbose,
        dry_run=args.dry_run,
    )


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    try:
        config = load_config(args)
        build = Build(config)
        return build.build()
    except (BootstrapError, NotConfiguredAsHost, CommandError, ValueError, TypeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


__all__ = ["load_config", "main"]
