"""Exception types raised by the bootstrap orchestrator."""
from __future__ import annotations


class BootstrapError(RuntimeError):
    """Unrecoverable environment or configuration problem; aborts the run."""


class StampFormatError(BootstrapError):
    """A stamp file contains a record with an unknown dependency tag."""


class NotConfiguredAsHost(LookupError):
    """A host-only tool was requested for a target that is only a build target."""

    def __init__(self, target: object) -> None:
        super().__init__(f"target `{target}` is not configured as a host, only as a target")
        self.target = target


__all__ = ["BootstrapError", "NotConfiguredAsHost", "StampFormatError"]
