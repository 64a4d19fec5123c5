"""
commit-gate: unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and CLI overrides.

What this test file should cover
- Precedence: CLI > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Path normalization relative to the config file.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from commit_gate.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    env_name_for_path,
    load_config,
)
from commit_gate.config.schema import ConfigValidationError, default_config


def _write_config(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text.strip() + "\n", encoding="utf-8")
    return path


def test_defaults_apply_without_a_config_file(tmp_path: Path) -> None:
    config = load_config(working_dir=tmp_path, environ={})

    assert config == default_config()


def test_default_config_file_in_working_dir_is_used(tmp_path: Path) -> None:
    _write_config(tmp_path / "commit-gate.toml", "[runner]\nmax_concurrency = 3\n")

    config = load_config(working_dir=tmp_path, environ={})

    assert config["runner"]["max_concurrency"] == 3
    assert config["runner"]["timeout_verdict"] == "fail"


def test_loader_precedence_default_file_env_cli(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "gate.toml",
        """
[runner]
max_concurrency = 2

[report]
format = "json"
""",
    )
    env = {"COMMIT_GATE_RUNNER_MAX_CONCURRENCY": "3"}

    from_file = load_config(config_path, environ={}, working_dir=tmp_path)
    from_env = load_config(config_path, environ=env, working_dir=tmp_path)
    from_cli = load_config(
        config_path,
        environ=env,
        working_dir=tmp_path,
        cli_overrides={"runner.max_concurrency": 4, "report.format": None},
    )

    assert from_file["runner"]["max_concurrency"] == 2
    assert from_env["runner"]["max_concurrency"] == 3
    assert from_cli["runner"]["max_concurrency"] == 4
    assert from_cli["report"]["format"] == "json"


def test_env_overrides_are_coerced_by_field_type(tmp_path: Path) -> None:
    env = {
        "COMMIT_GATE_REPORT_COLOR": "off",
        "COMMIT_GATE_CHECKS_SKIP": "lint, tests,,",
        "COMMIT_GATE_RUNNER_DEFAULT_TIMEOUT_SECONDS": "12.5",
        "COMMIT_GATE_OBSERVABILITY_LOG_LEVEL": "DEBUG",
        "COMMIT_GATE_UNRELATED": "ignored",
    }

    config = load_config(working_dir=tmp_path, environ=env)

    assert config["report"]["color"] is False
    assert config["checks"]["skip"] == ["lint", "tests"]
    assert config["runner"]["default_timeout_seconds"] == 12.5
    assert config["observability"]["log_level"] == "DEBUG"


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("COMMIT_GATE_RUNNER_MAX_CONCURRENCY", "many", "runner.max_concurrency must be an integer"),
        ("COMMIT_GATE_RUNNER_DEFAULT_TIMEOUT_SECONDS", "soon", "must be a number"),
        ("COMMIT_GATE_REPORT_COLOR", "perhaps", "report.color must be a boolean"),
    ],
)
def test_env_coercion_errors_name_variable_and_path(
    tmp_path: Path, name: str, value: str, message: str
) -> None:
    with pytest.raises(ConfigLoadError, match=message) as info:
        load_config(working_dir=tmp_path, environ={name: value})

    assert str(info.value).startswith(f"{name} -> ")


def test_env_values_are_still_validated(tmp_path: Path) -> None:
    with pytest.raises(ConfigValidationError, match="runner.max_concurrency: must be >= 0"):
        load_config(working_dir=tmp_path, environ={"COMMIT_GATE_RUNNER_MAX_CONCURRENCY": "-2"})


def test_paths_resolve_relative_to_config_file_and_working_dir(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "conf" / "gate.toml",
        """
[checks]
file = "checks/gate.yaml"

[observability]
log_file = ""
""",
    )

    from_file = load_config(config_path, environ={}, working_dir=tmp_path)
    from_cli = load_config(
        config_path,
        environ={},
        working_dir=tmp_path,
        cli_overrides={"observability.log_file": "logs/run.jsonl"},
    )

    expected_checks = (tmp_path.resolve() / "conf" / "checks" / "gate.yaml").as_posix()
    assert from_file["checks"]["file"] == expected_checks
    assert from_file["observability"]["log_file"] == ""
    assert from_cli["observability"]["log_file"] == (tmp_path / "logs" / "run.jsonl").as_posix()


def test_missing_explicit_config_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={}, working_dir=tmp_path)


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path / "gate.toml", "[runner\nmax_concurrency = 1")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={}, working_dir=tmp_path)


def test_invalid_file_values_raise_validation_error(tmp_path: Path) -> None:
    config_path = _write_config(
        tmp_path / "gate.toml",
        """
[runner]
max_concurrency = -1
colour = "red"
""",
    )

    with pytest.raises(ConfigValidationError) as info:
        load_config(config_path, environ={}, working_dir=tmp_path)

    assert {issue.path for issue in info.value.issues} == {
        "runner.max_concurrency",
        "runner.colour",
    }


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"runner.max.concurrency": 1}, "invalid CLI override key"),
        ({"runner": 3}, "must be a section mapping"),
    ],
)
def test_malformed_cli_overrides(
    tmp_path: Path, overrides: dict[str, object], message: str
) -> None:
    with pytest.raises(ConfigLoadError, match=message):
        load_config(working_dir=tmp_path, environ={}, cli_overrides=overrides)


def test_section_mapping_cli_override(tmp_path: Path) -> None:
    config = load_config(
        working_dir=tmp_path, environ={}, cli_overrides={"checks": {"only": ["lint"]}}
    )

    assert config["checks"]["only"] == ["lint"]
    assert config["checks"]["preset"] == "python"


def test_env_name_mapping_and_dump_are_deterministic(tmp_path: Path) -> None:
    first = dump_effective_config(load_config(working_dir=tmp_path, environ={}))
    second = dump_effective_config(load_config(working_dir=tmp_path, environ={}))

    assert env_name_for_path(("runner", "max_concurrency")) == "COMMIT_GATE_RUNNER_MAX_CONCURRENCY"
    assert first == second
    assert list(json.loads(first)) == sorted(json.loads(first))
