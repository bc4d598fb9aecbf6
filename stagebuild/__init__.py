"""Staged bootstrap orchestrator for a self-hosting compiler toolchain."""

from .build import Build
from .config import Config, TargetConfig
from .errors import BootstrapError, NotConfiguredAsHost, StampFormatError
from .scheduler import ExecutionMode, StepScheduler
from .target import Compiler, DependencyType, GitRepo, Mode, TargetSelection

__all__ = [
    "BootstrapError",
    "Build",
    "Compiler",
    "Config",
    "DependencyType",
    "ExecutionMode",
    "GitRepo",
    "Mode",
    "NotConfiguredAsHost",
    "StampFormatError",
    "StepScheduler",
    "TargetConfig",
    "TargetSelection",
]
