"""Building cargo invocations and recording what they produced."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Sequence
import json

from .errors import BootstrapError, NotConfiguredAsHost
from .stamp import StampEntry, write_stamp_file
from .target import Compiler, DependencyType, GitRepo, Mode, TargetSelection

if TYPE_CHECKING:
    from .build import Build


MESSAGE_FORMAT = "json-render-diagnostics"

_LIBRARY_KINDS = frozenset({"lib", "rlib", "dylib", "cdylib", "staticlib", "proc-macro"})


@dataclass(slots=True)
class CargoCommand:
    description: str
    command: List[str]
    cwd: Path
    env: Dict[str, str] = field(default_factory=dict)

    def arg(self, *args: str) -> "CargoCommand":
        self.command.extend(str(value) for value in args)
        return self


def rustc_for(build: "Build", compiler: Compiler) -> Path:
    if compiler.is_snapshot(build):
        return build.initial_rustc
    return build.rustc_binary(compiler)


def cargo(
    build: "Build",
    compiler: Compiler,
    mode: Mode,
    target: TargetSelection,
    cmd: str,
    *,
    manifest: Path | None = None,
    packages: Sequence[str] = (),
    features: str = "",
) -> CargoCommand:
    """Prepare ``cargo <cmd>`` for ``compiler`` building ``mode`` artifacts for ``target``."""
    command: List[str] = [
        str(build.initial_cargo),
        cmd,
        "--target",
        target.rustc_target_arg(),
        "--target-dir",
        str(build.stage_out(compiler, mode)),
        "-j",
        str(build.jobs()),
    ]
    if build.config.rust_optimize:
        command.append("--release")
    if manifest is not None:
        command.extend(["--manifest-path", str(manifest)])
    for package in packages:
        command.extend(["-p", package])
    if features:
        command.extend(["--features", features])

    triple = target.triple
    env: Dict[str, str] = {
        "RUSTC": str(rustc_for(build, compiler)),
        "RUSTC_STAGE": str(compiler.stage),
        f"CC_{triple}": str(build.cc(target)),
        f"CFLAGS_{triple}": " ".join(build.cflags(target, GitRepo.RUSTC)),
    }
    ar = build.ar(target)
    if ar is not None:
        env[f"AR_{triple}"] = str(ar)
    ranlib = build.ranlib(target)
    if ranlib is not None:
        env[f"RANLIB_{triple}"] = str(ranlib)
    try:
        env[f"CXX_{triple}"] = str(build.cxx(target))
    except NotConfiguredAsHost:
        pass
    try:
        linker = build.linker(target)
    except NotConfiguredAsHost as exc:
        raise BootstrapError(f"cannot pick a linker for `{target}`: {exc}") from exc
    if linker is not None:
        env["RUSTFLAGS"] = f"-Clinker={linker}"
    build.add_rust_test_threads(env)
    return CargoCommand(
        description=f"{cmd} {mode.value} artifacts ({compiler} -> {target})",
        command=command,
        cwd=build.src,
        env=env,
    )


def parse_artifacts(output: str) -> List[StampEntry]:
    """Library outputs listed in cargo's JSON messages.

    Proc macros run on the build machine, so they are recorded as host
    dependencies; everything else belongs to the target.
    """
    deps: List[StampEntry] = []
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            continue
        if message.get("reason") != "compiler-artifact":
            continue
        kinds = set(message.get("target", {}).get("kind", []))
        if not kinds & _LIBRARY_KINDS:
            continue
        dependency_type = DependencyType.HOST if "proc-macro" in kinds else DependencyType.TARGET
        for filename in message.get("filenames", []):
            deps.append((Path(filename), dependency_type))
    return deps


def run_cargo(build: "Build", command: CargoCommand, stamp: Path) -> List[StampEntry]:
    """Run ``command`` and record the libraries it produced in ``stamp``."""
    if build.dry_run:
        return []
    command.arg("--message-format", MESSAGE_FORMAT)
    output = build.run_capture(command.command, cwd=command.cwd, env=command.env)
    deps = parse_artifacts(output)
    write_stamp_file(stamp, deps)
    return deps


__all__ = ["CargoCommand", "MESSAGE_FORMAT", "cargo", "parse_artifacts", "run_cargo", "rustc_for"]
