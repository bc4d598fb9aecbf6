"""Utilities for executing external commands with optional dry-run support."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Sequence
import os
import shlex
import subprocess


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str
    streamed: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandError(RuntimeError):
    """Raised when a command fails."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {format_command(result.command)}"
        if result.streamed:
            message = f"{message}\nstdout/stderr already streamed above."
        else:
            message = (
                f"{message}\n"
                f"stdout: {result.stdout}\n"
                f"stderr: {result.stderr}"
            )
        super().__init__(message)
        self.result = result


def format_command(command: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in command)


class CommandRunner:
    """Abstract command runner interface."""

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        raise NotImplementedError

    def output(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Run ``command`` and return its captured stdout, failing on a non-zero exit."""
        return self.run(command, cwd=cwd, env=env, check=True).stdout


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`."""

    @staticmethod
    def _merge_environment(env: Mapping[str, str] | None) -> Dict[str, str] | None:
        if env is None:
            return None
        merged = os.environ.copy()
        merged.update(env)
        return merged

    def _finalize(self, result: CommandResult, *, check: bool) -> CommandResult:
        if check and result.returncode != 0:
            raise CommandError(result)
        return result

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        argv = [str(part) for part in command]
        merged_env = self._merge_environment(env)
        if not stream:
            process = subprocess.run(
                argv,
                cwd=str(cwd) if cwd else None,
                env=merged_env,
                capture_output=True,
                text=True,
                check=False,
            )
            return self._finalize(
                CommandResult(
                    command=argv,
                    returncode=process.returncode,
                    stdout=process.stdout,
                    stderr=process.stderr,
                ),
                check=check,
            )

        process = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            check=False,
        )

        return self._finalize(
            CommandResult(
                command=argv,
                returncode=process.returncode,
                stdout="",
                stderr="",
                streamed=True,
            ),
            check=check,
        )


@dataclass(slots=True)
class RecordedCommand:
    command: List[str]
    cwd: str | None
    env: Dict[str, str]
    note: str | None
    stream: bool


@dataclass(slots=True)
class ScriptedResponse:
    prefix: List[str]
    stdout: str = ""
    returncode: int = 0
    stderr: str = ""


class RecordingCommandRunner(CommandRunner):
    """Command runner that records commands instead of executing them.

    Canned results can be registered with :meth:`respond`; the most recently
    registered response whose prefix matches the command wins. Unmatched
    commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.commands: List[RecordedCommand] = []
        self._responses: List[ScriptedResponse] = []

    def respond(
        self,
        prefix: Sequence[str],
        stdout: str = "",
        *,
        returncode: int = 0,
        stderr: str = "",
    ) -> None:
        self._responses.append(
            ScriptedResponse(prefix=[str(part) for part in prefix], stdout=stdout, returncode=returncode, stderr=stderr)
        )

    def _lookup(self, command: Sequence[str]) -> ScriptedResponse | None:
        for response in reversed(self._responses):
            if list(command[: len(response.prefix)]) == response.prefix:
                return response
        return None

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
        note: str | None = None,
        stream: bool = False,
    ) -> CommandResult:
        argv = [str(part) for part in command]
        self.commands.append(
            RecordedCommand(
                command=argv,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env else {},
                note=note,
                stream=stream,
            )
        )
        response = self._lookup(argv)
        if response is None:
            return CommandResult(command=argv, returncode=0, stdout="", stderr="")
        result = CommandResult(
            command=argv,
            returncode=response.returncode,
            stdout=response.stdout,
            stderr=response.stderr,
            streamed=stream,
        )
        if check and result.returncode != 0:
            raise CommandError(result)
        return result


__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordedCommand",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "format_command",
]
