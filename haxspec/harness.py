"""Snapshot test harness driven by the ``hax-tests`` package metadata."""

from __future__ import annotations

import argparse
import json
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from haxspec.command import hax_command

TRANSLATE = "into"
LINT = "lint"
I32_MAX = 2**31 - 1

_TIME = re.compile(r"\bin \d+(\.\d+)?s\b")
_LOCK = re.compile(
    r"Blocking waiting for \w+ lock on (the registry index|build directory|package cache)"
)
_SNAPSHOT_CHOICES = ("stdout", "stderr", "both", "none")


class HarnessFailure(Exception):
    """A test case did not behave as its specification says."""


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class CaseKind:
    """A translation into a backend, or a run of a linter."""

    action: str
    target: str

    def __post_init__(self) -> None:
        if self.action not in (TRANSLATE, LINT):
            raise ValueError(f"unknown test action {self.action!r}")

    def as_name(self) -> str:
        """The kind as ``<action>-<target>``."""
        return f"{self.action}-{self.target}"

    def _debug(self) -> str:
        if self.action == TRANSLATE:
            return f"Translate {{ backend: {json.dumps(self.target)} }}"
        return f"Lint {{ linter: {json.dumps(self.target)} }}"

    def _data(self) -> dict[str, Any]:
        if self.action == TRANSLATE:
            return {"Translate": {"backend": self.target}}
        return {"Lint": {"linter": self.target}}


@dataclass(frozen=True)
class SnapshotSpec:
    """Which outputs of a case are kept in its snapshot."""

    stderr: bool = True
    stdout: bool = True


def _field(value: Any, key: str) -> Any:
    return value.get(key) if isinstance(value, dict) else None


def _opt_bool(value: Any, default: bool) -> Optional[bool]:
    if value is None:
        return default
    return value if isinstance(value, bool) else None


def _as_bool(value: Any, key: str, default: bool) -> bool:
    raw = _field(value, key)
    result = _opt_bool(raw, default)
    if result is None:
        raise ValueError(f"[{key}] was expected to be a boolean, got {_compact(raw)}")
    return result


def _snapshot_from_json(raw: Any) -> SnapshotSpec:
    both = _opt_bool(raw, True)
    if both is not None:
        return SnapshotSpec(stderr=both, stdout=both)
    if isinstance(raw, str):
        if raw not in _SNAPSHOT_CHOICES:
            raise ValueError(
                f'[snapshot] is "{raw}" but was expected to be '
                '"stderr", "stdout" or "both"'
            )
        return SnapshotSpec(
            stderr=raw in ("stderr", "both"), stdout=raw in ("stdout", "both")
        )
    return SnapshotSpec(
        stderr=_as_bool(raw, "stderr", True), stdout=_as_bool(raw, "stdout", True)
    )


@dataclass(frozen=True)
class CaseSpec:
    """How a case is run and what outcome it expects."""

    optional: bool = False
    broken: bool = False
    issue_id: Optional[int] = None
    positive: bool = True
    snapshot: SnapshotSpec = field(default_factory=SnapshotSpec)
    include_flag: Optional[str] = None
    backend_options: Optional[tuple[str, ...]] = None

    @classmethod
    def from_json(cls, value: Any) -> CaseSpec:
        """Parse a specification; raise ValueError on ill-typed fields."""
        optional = _as_bool(value, "optional", False)
        broken = _as_bool(value, "broken", False)
        positive = _as_bool(value, "positive", True)
        issue = _field(value, "issue_id")
        issue_id = (
            issue
            if isinstance(issue, int) and not isinstance(issue, bool) and issue >= 0
            else None
        )
        flag = _field(value, "include-flag")
        options = _field(value, "backend-options")
        if options is not None:
            if not isinstance(options, list) or not all(
                isinstance(o, str) for o in options
            ):
                raise ValueError(
                    f"[backend-options] was expected to be a list of strings, "
                    f"got {_compact(options)}"
                )
            options = tuple(options)
        return cls(
            optional=optional,
            broken=broken,
            issue_id=issue_id,
            positive=positive,
            snapshot=_snapshot_from_json(_field(value, "snapshot")),
            include_flag=flag if isinstance(flag, str) else None,
            backend_options=options,
        )


@dataclass(frozen=True)
class CaseInfo:
    """The package a case belongs to, as reported by ``cargo metadata``."""

    name: str
    manifest: Path
    description: Optional[str] = None


@dataclass(frozen=True)
class Case:
    """One test: a kind, the package it runs on, and its specification."""

    kind: CaseKind
    info: CaseInfo
    spec: CaseSpec

    def __str__(self) -> str:
        text = f"{self.info.name} - {self.kind._debug()}"
        if self.spec.issue_id is not None:
            text += f" #{self.spec.issue_id}"
        return text

    def as_args(self) -> list[str]:
        """The ``cargo-hax`` arguments that run this case."""
        if self.kind.action == LINT:
            return ["lint", self.kind.target]
        args = ["into"]
        if self.spec.include_flag is not None:
            args += ["-i", self.spec.include_flag]
        args += ["--dry-run", self.kind.target]
        args += list(self.spec.backend_options or ())
        return args

    def _data(self, workspace: str) -> dict[str, Any]:
        manifest = Path(self.info.manifest).relative_to(workspace)
        return {
            "kind": self.kind._data(),
            "info": {
                "name": self.info.name,
                "manifest": manifest.as_posix(),
                "description": self.info.description,
            },
            "spec": {
                "optional": self.spec.optional,
                "broken": self.spec.broken,
                "issue_id": self.spec.issue_id,
                "positive": self.spec.positive,
                "snapshot": {
                    "stderr": self.spec.snapshot.stderr,
                    "stdout": self.spec.snapshot.stdout,
                },
                "include_flag": self.spec.include_flag,
                "backend_options": (
                    None
                    if self.spec.backend_options is None
                    else list(self.spec.backend_options)
                ),
            },
        }

    def run(self, workspace: Union[str, "os.PathLike[str]"]) -> None:
        """Run the case in ``workspace``; raise HarnessFailure when it misbehaves.

        The command runs twice so that dependency build messages stay out
        of the recorded output.
        """
        workspace = os.fspath(workspace)
        command = hax_command(
            ["-C", "--manifest-path", os.fspath(self.info.manifest), ";", *self.as_args()]
        )
        command.run()
        out = command.run()
        successful = out.returncode == 0
        serr = cleanup_output((out.stderr or b"").decode("utf-8", "replace"), workspace)
        sout = (out.stdout or b"").decode("utf-8", "replace")
        stdout_text = sout if _engine_output(sout) is not None else cleanup_output(sout, workspace)
        exit_code = out.returncode if out.returncode >= 0 else None
        snapshot = build_snapshot(self, stdout_text, serr, exit_code)
        if snapshot:
            name = f"{self.info.name} {self.kind.as_name()}"
            _check_snapshot(name, self._data(workspace), snapshot, workspace)
        message = judge_outcome(successful, self.spec.positive, self.spec.broken)
        if message is not None:
            detail = "" if successful else f"\nSTDOUT:\n{sout}\nSTDERR:\n{serr}"
            raise HarnessFailure(f"Command {message}.\nThe command was: {command}{detail}")


def _snapshot_path(name: str, workspace: str) -> Path:
    directory = Path(workspace).parent / "test-harness" / "src" / "snapshots"
    return directory / f"{name.replace('/', '_')}.json"


def _check_snapshot(
    name: str, info: dict[str, Any], snapshot: dict[str, Any], workspace: str
) -> None:
    path = _snapshot_path(name, workspace)
    text = json.dumps({"info": info, "snapshot": snapshot}, indent=2, sort_keys=True,
                      ensure_ascii=False) + "\n"
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return
    stored = json.loads(path.read_text(encoding="utf-8"))
    if stored.get("snapshot") != snapshot:
        pending = path.with_name(path.name + ".new")
        pending.write_text(text, encoding="utf-8")
        raise HarnessFailure(
            f"snapshot {name!r} does not match {path}; the new one is in {pending}"
        )


def judge_outcome(successful: bool, positive: bool, broken: bool) -> Optional[str]:
    """None when the outcome is as expected, else what went wrong."""
    if successful == (positive != broken):
        return None
    if not successful:
        return (
            "failed, but this is a negative test marked broken"
            if broken
            else "failed"
        )
    if positive:
        return "succeeded, but this is a positive test marked broken"
    return "succeeded, but this is a negative test"


def cleanup_output(text: str, workspace: str) -> str:
    """Normalise paths, drop lock messages and blur timings in ``text``."""
    text = text.replace("\\", "/").replace(workspace, "WORKSPACE_ROOT")
    text = _LOCK.sub("", text)
    return _TIME.sub("in XXs", text).strip()


def _engine_output(text: str) -> Optional[dict[str, Any]]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    diagnostics, files = data.get("diagnostics"), data.get("files")
    if not isinstance(diagnostics, list) or not isinstance(files, list):
        return None
    if not all(isinstance(d, dict) for d in diagnostics):
        return None
    if not all(
        isinstance(f, dict)
        and isinstance(f.get("path"), str)
        and isinstance(f.get("contents"), str)
        for f in files
    ):
        return None
    return data


def _summarise(output: dict[str, Any]) -> dict[str, Any]:
    diagnostics = []
    for diag in output["diagnostics"]:
        spans = diag.get("span") or []
        message = diag.get("message")
        diagnostics.append(
            {
                "spans": [_compact(span) for span in spans],
                "message": message if isinstance(message, str) else _compact(diag),
            }
        )
    return {
        "diagnostics": diagnostics,
        "files": {f["path"]: f["contents"] for f in output["files"]},
    }


def build_snapshot(
    case: Case, stdout: str, stderr: str, exit_code: Optional[int]
) -> dict[str, Any]:
    """The snapshot recorded for a run; empty when the case keeps none."""
    snapshot: dict[str, Any] = {}
    if case.spec.snapshot.stderr:
        snapshot["stderr"] = stderr
    if case.spec.snapshot.stdout:
        output = _engine_output(stdout)
        snapshot["stdout"] = stdout if output is None else _summarise(output)
    if snapshot:
        snapshot["exit"] = I32_MAX if exit_code is None else exit_code
    return snapshot


def parse_hax_tests_metadata(info: CaseInfo, metadata: Any) -> list[Case]:
    """The cases declared by a package's ``hax-tests`` metadata table."""
    if metadata is None:
        return []
    if not isinstance(metadata, dict):
        raise ValueError(
            f"Expected value at key [hax-tests] to be a dictionary for package {info!r}"
        )
    cases = []
    for action, table in metadata.items():
        if not isinstance(table, dict):
            raise ValueError(
                f"Expected value at key [{action}] be a dictionary for package {info!r}"
            )
        for key, value in table.items():
            for target in (part.strip() for part in key.split("+")):
                spec = CaseSpec.from_json(value)
                if action not in (TRANSLATE, LINT):
                    raise ValueError(
                        f"unexpected metadata [hax-tests.{action}.{target}] "
                        f"for package {info!r}"
                    )
                cases.append(Case(CaseKind(action, target), info, spec))
    return cases


def load_cases(manifest_path: Union[str, "os.PathLike[str]"]) -> tuple[str, list[Case]]:
    """Ask cargo for the workspace of ``manifest_path``; return its root and cases."""
    result = subprocess.run(
        ["cargo", "metadata", "--format-version", "1",
         "--manifest-path", os.fspath(manifest_path)],
        capture_output=True,
        check=False,
    )
    if result.returncode != 0:
        error = (result.stderr or b"").decode("utf-8", "replace")
        raise RuntimeError(f"cargo metadata failed: {error}")
    data = json.loads(result.stdout)
    cases = []
    for package in data["packages"]:
        info = CaseInfo(
            name=package["name"],
            manifest=Path(package["manifest_path"]),
            description=package.get("description"),
        )
        cases.extend(parse_hax_tests_metadata(info, _field(package.get("metadata"), "hax-tests")))
    return str(data["workspace_root"]), cases


def _label(case: Case) -> str:
    kind = "positive" if case.spec.positive else "negative"
    return f"[{kind}] {case}"


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run, or list, the cases of the tests workspace."""
    parser = argparse.ArgumentParser(prog="hax-test-harness")
    parser.add_argument("filter", nargs="?", help="run only cases whose name contains this")
    parser.add_argument("--exact", action="store_true", help="match the filter exactly")
    parser.add_argument("--ignored", action="store_true", help="run only optional cases")
    parser.add_argument("--include-ignored", action="store_true", help="run optional cases too")
    parser.add_argument("--list", action="store_true", help="list the cases")
    parser.add_argument("--manifest-path", default="../tests/Cargo.toml")
    args = parser.parse_args(argv)

    workspace, cases = load_cases(args.manifest_path)
    if args.filter is not None:
        cases = [
            c for c in cases
            if (str(c) == args.filter if args.exact else args.filter in str(c))
        ]
    if args.list:
        for case in cases:
            print(f"{_label(case)}: test")
        return 0

    passed = failed = ignored = 0
    failures: list[tuple[Case, str]] = []
    for case in cases:
        runs = case.spec.optional if args.ignored else (
            args.include_ignored or not case.spec.optional
        )
        if not runs:
            ignored += 1
            print(f"test {_label(case)} ... ignored")
            continue
        try:
            case.run(workspace)
        except HarnessFailure as failure:
            failed += 1
            failures.append((case, str(failure)))
            print(f"test {_label(case)} ... FAILED")
        else:
            passed += 1
            print(f"test {_label(case)} ... ok")
    for case, message in failures:
        print(f"\n---- {case} ----\n{message}")
    status = "FAILED" if failed else "ok"
    print(f"\ntest result: {status}. {passed} passed; {failed} failed; {ignored} ignored")
    return 101 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())