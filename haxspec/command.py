"""Locating, building and invoking the ``cargo-hax`` command line."""

from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

CARGO_HAX = "cargo-hax"
DRIVER = "driver-hax-frontend-exporter"
JSON_SCHEMA_EXPORTER = "hax-export-json-schemas"
ENGINE_NAMES_EXTRACT = "hax-engine-names-extract"

_TRUTHY = frozenset({"yes", "y", "true", "1"})
# Set by cargo when it runs tests; they break binaries built without rustup.
_DYNAMIC_LIBRARY_VARIABLES = ("DYLD_FALLBACK_LIBRARY_PATH", "LD_LIBRARY_PATH")

PathLike = Union[str, "os.PathLike[str]"]


@dataclass
class HaxCommand:
    """A ready-to-run ``cargo-hax`` invocation."""

    program: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)

    def __str__(self) -> str:
        return shlex.join([self.program, *self.args])

    def run(self) -> subprocess.CompletedProcess:
        """Run the command, capturing its standard output and error."""
        return subprocess.run(
            [self.program, *self.args],
            env=self.env,
            capture_output=True,
            check=False,
        )


@dataclass(frozen=True)
class _BinaryPaths:
    driver: Path
    engine: Path
    cargo_hax: Path


_BUILT: dict[Path, _BinaryPaths] = {}


def _environ(environ: Optional[Mapping[str, str]]) -> dict[str, str]:
    return dict(os.environ if environ is None else environ)


def dune_jobs_args(environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Arguments setting dune's parallel jobs from ``DUNEJOBS``, if set."""
    env = _environ(environ)
    jobs = env.get("DUNEJOBS")
    return [] if jobs is None else ["-j", jobs]


def assume_built(environ: Optional[Mapping[str, str]] = None) -> bool:
    """Whether ``CARGO_TESTS_ASSUME_BUILT`` says the binaries are already built."""
    env = _environ(environ)
    return env.get("CARGO_TESTS_ASSUME_BUILT", "").lower() in _TRUTHY


def _cargo_bin(root: Path, name: str, env: Mapping[str, str]) -> Path:
    target = Path(env["CARGO_TARGET_DIR"]) if "CARGO_TARGET_DIR" in env else root / "target"
    suffix = ".exe" if os.name == "nt" else ""
    return target / "debug" / f"{name}{suffix}"


def _check(result: subprocess.CompletedProcess, what: str) -> None:
    if result.returncode != 0:
        raise RuntimeError(f"{what} failed with exit code {result.returncode}")


def build_binaries(
    root: PathLike, environ: Optional[Mapping[str, str]] = None
) -> _BinaryPaths:
    """Build the cargo workspace and the engine under ``root``; return binary paths.

    Raises RuntimeError when a build fails.
    """
    env = _environ(environ)
    root = Path(root)
    engine_dir = root / "engine"
    _check(
        subprocess.run(["cargo", "build", "--workspace", "--bins"], env=env, check=False),
        "cargo build",
    )
    dune_env = {
        **env,
        "HAX_JSON_SCHEMA_EXPORTER_BINARY": str(_cargo_bin(root, JSON_SCHEMA_EXPORTER, env)),
        "HAX_ENGINE_NAMES_EXTRACT_BINARY": str(_cargo_bin(root, ENGINE_NAMES_EXTRACT, env)),
    }
    _check(
        subprocess.run(
            ["dune", "build", *dune_jobs_args(env)],
            env=dune_env,
            cwd=engine_dir,
            check=False,
        ),
        "dune build",
    )
    return _BinaryPaths(
        driver=_cargo_bin(root, DRIVER, env),
        engine=engine_dir / "_build" / "install" / "default" / "bin" / "hax-engine",
        cargo_hax=_cargo_bin(root, CARGO_HAX, env),
    )


def hax_command(
    args: Iterable[PathLike], environ: Optional[Mapping[str, str]] = None
) -> HaxCommand:
    """A ``cargo-hax`` command with ``args``.

    Unless the binaries are assumed built, the workspace above the current
    directory is built once and the freshly built binaries are used.
    """
    env = _environ(environ)
    if assume_built(env):
        program = CARGO_HAX
    else:
        root = Path.cwd().parent
        paths = _BUILT.get(root)
        if paths is None:
            paths = build_binaries(root, env)
            _BUILT[root] = paths
        program = str(paths.cargo_hax)
        env["HAX_RUSTC_DRIVER_BINARY"] = str(paths.driver)
        env["HAX_ENGINE_BINARY"] = str(paths.engine)
    for name in _DYNAMIC_LIBRARY_VARIABLES:
        env.pop(name, None)
    return HaxCommand(program, [os.fspath(arg) for arg in args], env)