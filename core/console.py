"""Leveled console output shared by the command line tools."""
from __future__ import annotations

import sys


class Console:
    """Simple console output handler with configurable log level.

    Levels: none < error < info < debug < trace
    Default: 'info'
    """

    LEVELS = {
        "none": 0,
        "error": 1,
        "info": 2,
        "debug": 3,
        "trace": 4,
    }

    def __init__(self, level: str = "info", dry_run: bool = False):
        self.level_name = level
        self.level = self.LEVELS.get(level, self.LEVELS["info"])
        self.dry_run = dry_run

    @classmethod
    def for_verbosity(cls, verbosity: int, dry_run: bool = False) -> "Console":
        """Map a ``-v`` count onto a console level."""
        if verbosity <= 0:
            return cls("info", dry_run=dry_run)
        if verbosity == 1:
            return cls("debug", dry_run=dry_run)
        return cls("trace", dry_run=dry_run)

    def enabled(self, level: str) -> bool:
        return self.level >= self.LEVELS[level]

    def info(self, message: str) -> None:
        if self.enabled("info"):
            print(f"[INFO] {message}")

    def warn(self, message: str) -> None:
        if self.enabled("error"):
            print(f"[WARN] {message}", file=sys.stderr)

    def error(self, message: str) -> None:
        if self.enabled("error"):
            print(f"[ERROR] {message}", file=sys.stderr)

    def dry(self, message: str) -> None:
        if self.dry_run:
            print(f"[DRY] {message}")

    def debug(self, message: str) -> None:
        if self.enabled("debug"):
            print(f"[DEBUG] {message}")

    def trace(self, message: str) -> None:
        if self.enabled("trace"):
            print(f"[TRACE] {message}")


__all__ = ["Console"]
