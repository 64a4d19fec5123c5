"""
commit-gate: CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Enforce end-to-end CLI behavior for ``python -m commit_gate`` against real check
  processes: exit codes, output formats, and SIGINT handling.
"""

from __future__ import annotations

import json
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest
import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"


def _env() -> dict[str, str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    env["NO_COLOR"] = "1"
    for name in list(env):
        if name.startswith("COMMIT_GATE_"):
            del env[name]
    return env


def _run_cli(repo_root: Path, *args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "commit_gate", *args],
        cwd=repo_root,
        text=True,
        capture_output=True,
        check=False,
        env=_env(),
        timeout=120,
    )


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def _write_checks(repo_root: Path, entries: list[dict[str, object]]) -> Path:
    path = repo_root / "commit-gate.checks.yaml"
    path.write_text(yaml.safe_dump(entries, sort_keys=False), encoding="utf-8")
    return path


def _standard_checks(repo_root: Path, *, tests_output: str) -> None:
    _write_checks(
        repo_root,
        [
            {"id": "typecheck", "name": "Type check", "command": _py("print('Success')")},
            {
                "id": "lint",
                "name": "Lint",
                "command": _py("print('All checks passed!')"),
                "classifier": "warning_tier",
                "fix_hint": "lint --fix",
            },
            {
                "id": "tests",
                "name": "Tests",
                "command": _py(f"print({tests_output!r})"),
                "classifier": "test_counts",
            },
            {"id": "build", "name": "Build", "command": _py("pass")},
        ],
    )


def test_all_green_repo_exits_zero(tmp_path: Path) -> None:
    _standard_checks(tmp_path, tests_output="Tests: 45 passed, 45 total")

    completed = _run_cli(tmp_path)

    assert completed.returncode == 0, completed.stderr
    assert completed.stdout.startswith("commit-gate: 4 checks | 4 pass, 0 warn, 0 fail, 0 error")
    assert completed.stdout.rstrip().endswith("Overall: PASS")
    assert completed.stderr == ""


def test_failing_tests_with_zero_exit_fail_the_gate(tmp_path: Path) -> None:
    _standard_checks(tmp_path, tests_output="Tests: 3 failed, 42 passed, 45 total")

    completed = _run_cli(tmp_path, "--json")

    assert completed.returncode == 1, completed.stderr
    payload = json.loads(completed.stdout)
    verdicts = {item["spec"]["id"]: item["verdict"] for item in payload["outcomes"]}
    assert verdicts == {"typecheck": "pass", "lint": "pass", "tests": "fail", "build": "pass"}
    assert payload["overall_verdict"] == "fail"
    assert payload["counts"] == {"pass": 3, "warn": 0, "fail": 1, "error": 0}


def test_missing_tool_is_reported_not_crashed(tmp_path: Path) -> None:
    _write_checks(
        tmp_path,
        [
            {"id": "ok", "command": _py("pass")},
            {"id": "ghost", "command": "commit-gate-no-such-tool --check"},
        ],
    )

    completed = _run_cli(tmp_path)

    assert completed.returncode == 1
    assert "[ERR]  ghost (ghost)" in completed.stdout
    assert "program not found: commit-gate-no-such-tool" in completed.stdout
    assert "ghost: check that the command is installed and runnable" in completed.stdout
    assert "[PASS] ok (ok)" in completed.stdout


def test_configuration_errors_exit_two(tmp_path: Path) -> None:
    _write_checks(tmp_path, [{"id": "a", "command": "x"}, {"id": "a", "command": "y"}])

    duplicate = _run_cli(tmp_path)
    unknown = _run_cli(tmp_path, "--checks-file", "missing.yaml")

    assert duplicate.returncode == 2
    assert "duplicate check id(s): a" in duplicate.stderr
    assert duplicate.stdout == ""
    assert unknown.returncode == 2
    assert "cannot read checks file" in unknown.stderr


def test_list_and_version(tmp_path: Path) -> None:
    _standard_checks(tmp_path, tests_output="1 passed")

    listed = _run_cli(tmp_path, "--list")
    version = _run_cli(tmp_path, "--version")

    assert listed.returncode == 0
    headers = [line for line in listed.stdout.splitlines() if not line.startswith(" ")]
    assert [line.split()[0] for line in headers] == ["typecheck", "lint", "tests", "build"]
    assert version.returncode == 0
    assert version.stdout.strip() == "commit-gate 0.1.0"


@pytest.mark.skipif(os.name != "posix", reason="SIGINT delivery is POSIX-specific")
def test_sigint_cancels_run_and_still_prints_report(tmp_path: Path) -> None:
    marker = tmp_path / "started.txt"
    _write_checks(
        tmp_path,
        [
            {"id": "quick", "command": _py("print('done')")},
            {
                "id": "hang",
                "command": _py(
                    f"import time; open({str(marker)!r}, 'w').close(); time.sleep(60)"
                ),
            },
        ],
    )
    process = subprocess.Popen(
        [sys.executable, "-m", "commit_gate", "--json"],
        cwd=tmp_path,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=_env(),
    )
    try:
        deadline = time.monotonic() + 30
        while not marker.exists() and time.monotonic() < deadline:
            time.sleep(0.05)
        assert marker.exists(), "hanging check never started"
        process.send_signal(signal.SIGINT)
        stdout, stderr = process.communicate(timeout=30)
    finally:
        if process.poll() is None:
            process.kill()
            process.communicate()

    assert process.returncode == 1, stderr
    payload = json.loads(stdout)
    assert payload["cancelled"] is True
    verdicts = {item["spec"]["id"]: item["verdict"] for item in payload["outcomes"]}
    assert verdicts == {"quick": "pass", "hang": "error"}
    assert payload["outcomes"][1]["raw"]["cancelled"] is True
