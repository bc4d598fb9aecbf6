"""The ``fmt`` subcommand."""
from __future__ import annotations

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .build import Build


def format_command(build: "Build", check: bool) -> List[str]:
    command = [str(build.initial_cargo), "fmt", "--all"]
    if check:
        command.extend(["--", "--check"])
    return command


def format_tree(build: "Build", check: bool = False) -> None:
    """Run rustfmt over the workspace, or only verify formatting with ``check``."""
    build.run(format_command(build, check), cwd=build.src)


__all__ = ["format_command", "format_tree"]
