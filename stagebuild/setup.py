"""The ``setup`` subcommand: write a starter ``config.toml``."""
from __future__ import annotations

from pathlib import Path

from .errors import BootstrapError


PROFILES = {
    "compiler": "Contribute to the compiler itself",
    "codegen": "Contribute to the compiler, and also modify LLVM or codegen",
    "library": "Contribute to the standard library",
    "user": "Install Rust from source",
}

CHANGELOG_SEEN = 2


def render_config(profile: str) -> str:
    return f'profile = "{profile}"\nchangelog-seen = {CHANGELOG_SEEN}\n'


def setup(src: Path, profile: str) -> Path:
    """Write ``src/config.toml`` selecting ``profile``; an existing file is never replaced."""
    if profile not in PROFILES:
        choices = ", ".join(sorted(PROFILES))
        raise BootstrapError(f"unknown profile '{profile}', expected one of: {choices}")
    path = src / "config.toml"
    if path.exists():
        raise BootstrapError(f"{path} already exists; remove it to run setup again")
    try:
        path.write_text(render_config(profile), encoding="utf-8")
    except OSError as exc:
        raise BootstrapError(f"failed to write {path}: {exc}") from exc
    print(f"`{profile}` profile written to {path}: {PROFILES[profile]}")
    return path


__all__ = ["CHANGELOG_SEEN", "PROFILES", "render_config", "setup"]
