import subprocess
from pathlib import Path
from unittest import mock

import pytest

from haxspec.command import (
    HaxCommand,
    assume_built,
    build_binaries,
    dune_jobs_args,
    hax_command,
)


def _ok(*args, **kwargs):
    return subprocess.CompletedProcess(args[0] if args else kwargs.get("args"), 0)


def test_dune_jobs_args_from_environment():
    assert dune_jobs_args({"DUNEJOBS": "4"}) == ["-j", "4"]


def test_dune_jobs_args_without_variable():
    assert dune_jobs_args({}) == []


@pytest.mark.parametrize(
    "value, expected",
    [("yes", True), ("Y", True), ("TRUE", True), ("1", True), ("no", False), ("", False)],
)
def test_assume_built(value, expected):
    assert assume_built({"CARGO_TESTS_ASSUME_BUILT": value}) is expected


def test_assume_built_unset():
    assert assume_built({}) is False


def test_hax_command_assumed_built_strips_library_paths():
    environ = {
        "CARGO_TESTS_ASSUME_BUILT": "1",
        "LD_LIBRARY_PATH": "/lib",
        "DYLD_FALLBACK_LIBRARY_PATH": "/lib",
        "PATH": "/bin",
    }
    command = hax_command(["-C", Path("Cargo.toml")], environ)
    assert command.program == "cargo-hax"
    assert command.args == ["-C", "Cargo.toml"]
    assert "LD_LIBRARY_PATH" not in command.env
    assert "DYLD_FALLBACK_LIBRARY_PATH" not in command.env
    assert command.env["PATH"] == "/bin"


def test_build_binaries_runs_cargo_then_dune(tmp_path):
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        paths = build_binaries(tmp_path, {"DUNEJOBS": "2"})
    assert run.call_count == 2
    assert run.call_args_list[0].args[0] == ["cargo", "build", "--workspace", "--bins"]
    dune_call = run.call_args_list[1]
    assert dune_call.args[0] == ["dune", "build", "-j", "2"]
    assert dune_call.kwargs["cwd"] == tmp_path / "engine"
    assert "HAX_JSON_SCHEMA_EXPORTER_BINARY" in dune_call.kwargs["env"]
    assert "HAX_ENGINE_NAMES_EXTRACT_BINARY" in dune_call.kwargs["env"]
    assert paths.engine == tmp_path / "engine" / "_build" / "install" / "default" / "bin" / "hax-engine"
    assert paths.cargo_hax.parent == tmp_path / "target" / "debug"


def test_build_binaries_failure_raises(tmp_path):
    failed = subprocess.CompletedProcess(["cargo"], 1)
    with mock.patch("subprocess.run", return_value=failed):
        with pytest.raises(RuntimeError, match="cargo build"):
            build_binaries(tmp_path, {})


def test_hax_command_builds_once(tmp_path, monkeypatch):
    root = tmp_path.resolve()
    (root / "harness").mkdir()
    monkeypatch.chdir(root / "harness")
    with mock.patch("subprocess.run", side_effect=_ok) as run:
        first = hax_command(["lint"], {"LD_LIBRARY_PATH": "/lib"})
        second = hax_command(["lint"], {})
    assert run.call_count == 2
    assert first.program == second.program
    assert Path(first.program).parent == root / "target" / "debug"
    assert Path(first.program).name.startswith("cargo-hax")
    assert first.env["HAX_ENGINE_BINARY"].endswith("hax-engine")
    assert "LD_LIBRARY_PATH" not in first.env


def test_hax_command_run_passes_arguments():
    command = HaxCommand("cargo-hax", ["into", "--dry-run", "fstar"], {"PATH": "/bin"})
    done = subprocess.CompletedProcess(["cargo-hax"], 0, stdout=b"out", stderr=b"")
    with mock.patch("subprocess.run", return_value=done) as run:
        result = command.run()
    assert result is done
    assert run.call_args.args[0] == ["cargo-hax", "into", "--dry-run", "fstar"]
    assert run.call_args.kwargs["env"] == {"PATH": "/bin"}
    assert run.call_args.kwargs["capture_output"] is True
    assert str(command) == "cargo-hax into --dry-run fstar"