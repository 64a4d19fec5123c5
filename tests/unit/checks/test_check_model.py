"""
commit-gate: unit tests for the check data model

File: tests/unit/checks/test_check_model.py

Purpose
- Validate construction-time invariants of CommandSpec, CheckSpec, RawResult and
  CheckOutcome, and their JSON-safe exports.
"""

from __future__ import annotations

import json

import pytest

from commit_gate.checks.base import (
    CheckOutcome,
    CheckSpec,
    Classifier,
    CommandSpec,
    RawResult,
    Verdict,
)
from commit_gate.checks.classifiers import BinaryClassifier


def _spec(check_id: str = "lint", **overrides: object) -> CheckSpec:
    fields: dict[str, object] = {
        "id": check_id,
        "display_name": "Lint",
        "command": CommandSpec.from_value("ruff check ."),
        "timeout_seconds": 30,
        "classifier": BinaryClassifier(),
    }
    fields.update(overrides)
    return CheckSpec(**fields)  # type: ignore[arg-type]


def test_command_from_string_uses_shell_style_splitting() -> None:
    command = CommandSpec.from_value("pytest -q -k 'slow and not flaky'")

    assert command.program == "pytest"
    assert command.args == ("-q", "-k", "slow and not flaky")
    assert command.argv == ("pytest", "-q", "-k", "slow and not flaky")
    assert command.display == "pytest -q -k 'slow and not flaky'"


def test_command_from_list_keeps_arguments_verbatim() -> None:
    command = CommandSpec.from_value(["npm", "run", "build --prod"])

    assert command.argv == ("npm", "run", "build --prod")


@pytest.mark.parametrize("value", ["", "   ", []])
def test_command_rejects_empty_values(value: object) -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        CommandSpec.from_value(value)  # type: ignore[arg-type]


def test_command_env_is_sorted_and_build_env_respects_inheritance(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("COMMIT_GATE_TEST_INHERITED", "yes")
    inherited = CommandSpec.from_value("tool", env={"B": "2", "A": "1"})
    isolated = CommandSpec.from_value("tool", env={"ONLY": "1"}, inherit_env=False)
    plain = CommandSpec.from_value("tool")

    assert list(inherited.env) == ["A", "B"]
    merged = inherited.build_env()
    assert merged is not None
    assert merged["A"] == "1"
    assert merged["COMMIT_GATE_TEST_INHERITED"] == "yes"
    assert isolated.build_env() == {"ONLY": "1"}
    assert plain.build_env() is None


def test_command_rejects_non_string_arguments() -> None:
    with pytest.raises(ValueError, match=r"CommandSpec.args\[0\]"):
        CommandSpec(program="tool", args=(1,))  # type: ignore[arg-type]


def test_check_spec_normalizes_and_validates_fields() -> None:
    spec = _spec(check_id="  lint  ", timeout_seconds=5)

    assert spec.id == "lint"
    assert spec.timeout_seconds == 5.0
    assert isinstance(spec.classifier, Classifier)

    with pytest.raises(ValueError, match="must implement Classifier"):
        _spec(classifier=object())
    with pytest.raises(ValueError, match="must be finite"):
        _spec(timeout_seconds=float("inf"))
    with pytest.raises(ValueError, match="expected number"):
        _spec(timeout_seconds=True)
    with pytest.raises(ValueError, match="must not be empty"):
        _spec(check_id="")


def test_raw_result_flag_consistency_is_enforced() -> None:
    with pytest.raises(ValueError, match="must be None when timed_out"):
        RawResult("lint", 0, "", "", 10, timed_out=True)
    with pytest.raises(ValueError, match="must be None when execution_error"):
        RawResult("lint", 1, "", "", 10, execution_error=True)
    with pytest.raises(ValueError, match="requires execution_error"):
        RawResult("lint", 0, "", "", 10, cancelled=True)
    with pytest.raises(ValueError, match="must be >= 0"):
        RawResult("lint", 0, "", "", -1)


def test_execution_failure_sentinel_carries_message_in_stderr() -> None:
    raw = RawResult.execution_failure("tests", "program not found: pytest", duration_ms=3)

    assert raw.exit_code is None
    assert raw.execution_error
    assert not raw.timed_out
    assert not raw.cancelled
    assert raw.stderr == "program not found: pytest"
    assert raw.duration_ms == 3


def test_raw_output_joins_both_streams() -> None:
    assert RawResult("x", 0, "out", "err", 1).output == "out\nerr"
    assert RawResult("x", 0, "", "err", 1).output == "err"
    assert RawResult("x", 0, "out", "", 1).output == "out"


def test_outcome_rejects_mismatched_check_id() -> None:
    with pytest.raises(ValueError, match="does not match spec"):
        CheckOutcome(spec=_spec("lint"), raw=RawResult("tests", 0, "", "", 1), verdict=Verdict.PASS)


def test_outcome_export_is_json_serializable() -> None:
    outcome = CheckOutcome(
        spec=_spec(fix_hint="ruff check --fix ."),
        raw=RawResult("lint", 1, "a.py:1:1: F401 unused", "", 12),
        verdict="fail",  # type: ignore[arg-type]
        summary_lines=["exited with code 1"],  # type: ignore[arg-type]
    )

    payload = outcome.to_dict()

    assert outcome.verdict is Verdict.FAIL
    assert outcome.summary_lines == ("exited with code 1",)
    assert payload["verdict"] == "fail"
    assert json.loads(json.dumps(payload)) == payload
