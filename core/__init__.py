"""Shared core utilities for build orchestration."""

from .command_runner import (
    CommandError,
    CommandResult,
    CommandRunner,
    RecordingCommandRunner,
    SubprocessCommandRunner,
    format_command,
)
from .config_loader import (
    ConfigLoader,
    FILE_LOADERS,
    load_config_file,
    merge_mappings,
    normalize_keys,
    normalize_string_list,
    reject_unknown_keys,
)
from .console import Console
from .git_api import GitCommit, GitRepository

__all__ = [
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "RecordingCommandRunner",
    "SubprocessCommandRunner",
    "format_command",
    "ConfigLoader",
    "FILE_LOADERS",
    "load_config_file",
    "merge_mappings",
    "normalize_keys",
    "normalize_string_list",
    "reject_unknown_keys",
    "Console",
    "GitCommit",
    "GitRepository",
]
