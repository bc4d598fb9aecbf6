"""Step selection and execution for one pass over the build."""
from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, List, Protocol, Sequence, Tuple

from .errors import BootstrapError

if TYPE_CHECKING:
    from .build import Build


class ExecutionMode(str, Enum):
    DRY_RUN = "dry-run"
    REAL = "real"

    @property
    def dry_run(self) -> bool:
        return self is ExecutionMode.DRY_RUN


class Step(Protocol):
    name: str
    paths: Tuple[str, ...]
    # Selected when no paths are requested on the command line.
    default: bool

    def run(self, build: "Build", mode: ExecutionMode) -> None:
        ...


def _parts(path: str) -> Tuple[str, ...]:
    return tuple(part for part in PurePosixPath(path.replace("\\", "/")).parts if part not in ("/", "."))


def path_matches(step_path: str, requested: str) -> bool:
    """Whether ``requested`` names ``step_path``.

    A request matches when one path ends with the other component-wise
    (``std`` matches ``library/std``) or when it names a parent directory of
    the step (``library`` matches ``library/std``).
    """
    step_parts = _parts(step_path)
    wanted = _parts(requested)
    if not step_parts or not wanted:
        return False
    if step_parts[-len(wanted):] == wanted or wanted[-len(step_parts):] == step_parts:
        return True
    return step_parts[: len(wanted)] == wanted


class StepScheduler:
    def __init__(self) -> None:
        self._steps: List[Step] = []

    def register(self, step: Step) -> None:
        self._steps.append(step)

    def steps(self) -> List[Step]:
        return list(self._steps)

    def select(self, paths: Sequence[str]) -> List[Step]:
        if not paths:
            return [step for step in self._steps if step.default]
        return [
            step
            for step in self._steps
            if any(path_matches(step_path, requested) for step_path in step.paths for requested in paths)
        ]

    def execute(self, build: "Build", mode: ExecutionMode, paths: Sequence[str]) -> List[Step]:
        """Run every step selected by ``paths`` in registration order."""
        selected = self.select(paths)
        if not selected:
            requested = ", ".join(paths) if paths else "<default>"
            raise BootstrapError(f"no build step matches the requested paths: {requested}")
        with build.executing(mode):
            for step in selected:
                build.verbose(f"[{mode.value}] {step.name}")
                step.run(build, mode)
        return selected


__all__ = ["ExecutionMode", "Step", "StepScheduler", "path_matches"]
