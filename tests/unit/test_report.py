"""
commit-gate: unit tests for report rendering

File: tests/unit/test_report.py

Purpose
- Pin the plain-text layout and canonical JSON form of a Report.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from commit_gate.checks.base import CheckOutcome, CheckSpec, CommandSpec, RawResult
from commit_gate.checks.classifiers import (
    AdvisoryClassifier,
    BinaryClassifier,
    WarningTierClassifier,
    classify,
)
from commit_gate.orchestrator import Report
from commit_gate.report import describe_status, render_report, report_to_json

_STAMP = datetime(2026, 5, 4, 9, 30, tzinfo=UTC)


def _spec(
    check_id: str,
    name: str,
    command: str,
    classifier: object | None = None,
    *,
    fix_hint: str | None = None,
) -> CheckSpec:
    return CheckSpec(
        id=check_id,
        display_name=name,
        command=CommandSpec.from_value(command),
        timeout_seconds=5,
        classifier=classifier or BinaryClassifier(),  # type: ignore[arg-type]
        fix_hint=fix_hint,
    )


def _mixed_report() -> Report:
    typecheck = _spec("typecheck", "Type check", "mypy .")
    lint = _spec(
        "lint", "Lint", "ruff check .", WarningTierClassifier(), fix_hint="ruff check --fix ."
    )
    tests = _spec("tests", "Tests", "pytest -q")
    audit = _spec("audit", "Audit", "audit --json", AdvisoryClassifier(BinaryClassifier()))
    outcomes = [
        classify(typecheck, RawResult("typecheck", 0, "Success", "", 1234)),
        classify(lint, RawResult("lint", 1, "src/a.py:1:1: F401 unused import\n", "", 80)),
        classify(tests, RawResult.execution_failure("tests", "program not found: pytest")),
        classify(audit, RawResult("audit", 1, "", "", 2000)),
    ]
    return Report.from_outcomes(outcomes, generated_at=_STAMP)


def test_render_failed_report_with_remediation() -> None:
    text = render_report(_mixed_report())

    assert text == (
        "commit-gate: 4 checks | 1 pass, 1 warn, 1 fail, 1 error\n"
        "\n"
        "[PASS] Type check (typecheck) 1.2s exit 0\n"
        "[FAIL] Lint (lint) 80ms exit 1\n"
        "      exited with code 1\n"
        "      src/a.py:1:1: F401 unused import\n"
        "[ERR]  Tests (tests) 0ms not run\n"
        "      program not found: pytest\n"
        "[WARN] Audit (audit) 2.0s exit 1\n"
        "      exited with code 1\n"
        "      advisory check: fail downgraded to warn\n"
        "\n"
        "Remediation:\n"
        "  1. [FAIL] lint: run `ruff check --fix .`\n"
        "  2. [ERR] tests: check that the command is installed and runnable\n"
        "  3. [WARN] audit: inspect `audit --json`\n"
        "\n"
        "Overall: FAIL\n"
    )


def test_render_is_idempotent() -> None:
    report = _mixed_report()

    first = render_report(report)

    assert render_report(report) == first
    assert render_report(_mixed_report()) == first
    assert render_report(report, max_summary_lines=1) == render_report(
        report, max_summary_lines=1
    )
    assert report_to_json(report) == report_to_json(report)


def test_render_passing_report_has_no_remediation() -> None:
    spec = _spec("build", "Build", "make")
    report = Report.from_outcomes([classify(spec, RawResult("build", 0, "", "", 5))])

    text = render_report(report)

    assert text == (
        "commit-gate: 1 check | 1 pass, 0 warn, 0 fail, 0 error\n"
        "\n"
        "[PASS] Build (build) 5ms exit 0\n"
        "\n"
        "Overall: PASS\n"
    )


def test_render_empty_report() -> None:
    text = render_report(Report.from_outcomes([]))

    assert text.startswith("commit-gate: 0 checks | 0 pass, 0 warn, 0 fail, 0 error\n")
    assert text.endswith("Overall: PASS\n")


def test_render_limits_summary_lines() -> None:
    spec = _spec("lint", "Lint", "lint")
    output = "\n".join(f"src/m{index}.py:1:1: E1 bad" for index in range(5))
    report = Report.from_outcomes([classify(spec, RawResult("lint", 1, output, "", 5))])

    lines = render_report(report, max_summary_lines=2).splitlines()

    header = lines.index("[FAIL] Lint (lint) 5ms exit 1")
    assert lines[header + 1 : header + 4] == [
        "      exited with code 1",
        "      src/m0.py:1:1: E1 bad",
        "      ... 4 more line(s) omitted",
    ]
    with pytest.raises(ValueError, match="max_summary_lines"):
        render_report(report, max_summary_lines=0)


def test_render_cancelled_report() -> None:
    spec = _spec("tests", "Tests", "pytest")
    raw = RawResult.execution_failure("tests", "stopped", duration_ms=1500, cancelled=True)
    report = Report.from_outcomes([classify(spec, raw)], cancelled=True)

    text = render_report(report)

    assert text.splitlines()[1] == "run cancelled: unfinished checks were terminated"
    assert "[ERR]  Tests (tests) 1.5s cancelled\n      cancelled before completion\n" in text
    assert "  1. [ERR] tests: inspect `pytest`\n" in text


def test_describe_status_for_timeout() -> None:
    spec = _spec("tests", "Tests", "pytest")
    outcome = classify(spec, RawResult("tests", None, "", "", 5000, timed_out=True))

    assert isinstance(outcome, CheckOutcome)
    assert describe_status(outcome) == "timed out after 5s"


def test_report_json_is_canonical() -> None:
    report = _mixed_report()

    compact = report_to_json(report)
    pretty = report_to_json(report, indent=2)

    assert "\n" not in compact
    assert compact == json.dumps(report.to_dict(), sort_keys=True, separators=(",", ":"))
    assert json.loads(pretty) == json.loads(compact)
    payload = json.loads(compact)
    assert payload["counts"] == {"pass": 1, "warn": 1, "fail": 1, "error": 1}
    assert payload["generated_at"] == "2026-05-04T09:30:00+00:00"
    assert [item["verdict"] for item in payload["outcomes"]] == ["pass", "fail", "error", "warn"]
