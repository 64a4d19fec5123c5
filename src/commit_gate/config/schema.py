"""
commit-gate: configuration schema and validation.

File: src/commit_gate/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

What should be included in this file
- Schema versioning and migration guidance.
- Validation rules for types, enums and numeric constraints, reported with dotted
  field paths.
- Deterministic deep-merge helpers used by the loader.

Functional requirements
- Validate config payloads and report every issue at once (field path + message).
"""

from __future__ import annotations

import copy
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from commit_gate.constants import (
    CONFIG_SCHEMA_VERSION,
    LOG_LEVELS,
    REPORT_FORMATS,
    TIMEOUT_VERDICTS,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_MAX_CONCURRENCY_LIMIT: Final[int] = 1024


class MetaConfig(TypedDict):
    schema_version: int


class RunnerConfig(TypedDict):
    max_concurrency: int
    default_timeout_seconds: float
    max_output_chars: int
    timeout_verdict: str


class ChecksConfig(TypedDict):
    preset: str
    file: str
    include_advisory: bool
    only: list[str]
    skip: list[str]


class ReportConfig(TypedDict):
    format: str
    max_summary_lines: int
    color: bool


class ObservabilityConfig(TypedDict):
    log_level: str
    log_file: str
    redact_secrets: bool


class CommitGateConfig(TypedDict):
    meta: MetaConfig
    runner: RunnerConfig
    checks: ChecksConfig
    report: ReportConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[CommitGateConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "runner": {
        "max_concurrency": 0,
        "default_timeout_seconds": 300.0,
        "max_output_chars": 200_000,
        "timeout_verdict": "fail",
    },
    "checks": {
        "preset": "python",
        "file": "",
        "include_advisory": False,
        "only": [],
        "skip": [],
    },
    "report": {
        "format": "text",
        "max_summary_lines": 10,
        "color": True,
    },
    "observability": {
        "log_level": "WARNING",
        "log_file": "",
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


_SectionValidator = Callable[[Mapping[str, object], str, _IssueCollector], dict[str, Any]]


def default_config() -> dict[str, Any]:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(dict(DEFAULT_CONFIG))


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade commit-gate.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade commit-gate"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``."""

    merged = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> tuple[ConfigValidationIssue, ...]:
    """Return every validation issue in ``config``; empty when valid."""

    _, issues = _validate(config)
    return issues


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate a complete config and return a normalized copy."""

    normalized, issues = _validate(config)
    if issues:
        raise ConfigValidationError(issues)
    return normalized


def _validate(
    config: Mapping[str, object] | object,
) -> tuple[dict[str, Any], tuple[ConfigValidationIssue, ...]]:
    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return {}, issues.items()
    normalized = _validate_root(config, issues)
    return normalized, issues.items()


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    validators: dict[str, _SectionValidator] = {
        "meta": _validate_meta,
        "runner": _validate_runner,
        "checks": _validate_checks,
        "report": _validate_report,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(payload, set(validators), "", issues)
    out: dict[str, Any] = {}
    for key in sorted(validators):
        if key not in payload:
            issues.add(key, "missing required section")
            continue
        section = payload[key]
        if not isinstance(section, Mapping):
            issues.add(key, f"expected object, got {type(section).__name__}")
            continue
        out[key] = validators[key](section, key, issues)
    return out


def _validate_meta(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(
            payload["schema_version"], _join(path, "schema_version"), issues, minimum=1
        )
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_runner(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"max_concurrency", "default_timeout_seconds", "max_output_chars", "timeout_verdict"}
    _reject_unknown_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    if "max_concurrency" in payload:
        parsed_concurrency = _as_int(
            payload["max_concurrency"], _join(path, "max_concurrency"), issues, minimum=0
        )
        if parsed_concurrency is not None and parsed_concurrency > _MAX_CONCURRENCY_LIMIT:
            issues.add(_join(path, "max_concurrency"), f"must be <= {_MAX_CONCURRENCY_LIMIT}")
        elif parsed_concurrency is not None:
            out["max_concurrency"] = parsed_concurrency
    if "default_timeout_seconds" in payload:
        parsed_timeout = _as_float(
            payload["default_timeout_seconds"], _join(path, "default_timeout_seconds"), issues
        )
        if parsed_timeout is not None and parsed_timeout <= 0:
            issues.add(_join(path, "default_timeout_seconds"), "must be > 0")
        elif parsed_timeout is not None:
            out["default_timeout_seconds"] = parsed_timeout
    if "max_output_chars" in payload:
        parsed_chars = _as_int(
            payload["max_output_chars"], _join(path, "max_output_chars"), issues, minimum=1
        )
        if parsed_chars is not None:
            out["max_output_chars"] = parsed_chars
    if "timeout_verdict" in payload:
        parsed_verdict = _as_enum(
            payload["timeout_verdict"],
            _join(path, "timeout_verdict"),
            issues,
            allowed_values=TIMEOUT_VERDICTS,
        )
        if parsed_verdict is not None:
            out["timeout_verdict"] = parsed_verdict
    return out


def _validate_checks(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"preset", "file", "include_advisory", "only", "skip"}
    _reject_unknown_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    if "preset" in payload:
        parsed_preset = _as_str(payload["preset"], _join(path, "preset"), issues)
        if parsed_preset is not None:
            out["preset"] = parsed_preset
    if "file" in payload:
        parsed_file = _as_path_text(payload["file"], _join(path, "file"), issues)
        if parsed_file is not None:
            out["file"] = parsed_file
    if "include_advisory" in payload:
        parsed_advisory = _as_bool(
            payload["include_advisory"], _join(path, "include_advisory"), issues
        )
        if parsed_advisory is not None:
            out["include_advisory"] = parsed_advisory
    for key in ("only", "skip"):
        if key in payload:
            parsed_ids = _as_str_list(payload[key], _join(path, key), issues)
            if parsed_ids is not None:
                out[key] = parsed_ids
    return out


def _validate_report(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"format", "max_summary_lines", "color"}, path, issues)
    out: dict[str, Any] = {}
    if "format" in payload:
        parsed_format = _as_enum(
            payload["format"], _join(path, "format"), issues, allowed_values=REPORT_FORMATS
        )
        if parsed_format is not None:
            out["format"] = parsed_format
    if "max_summary_lines" in payload:
        parsed_lines = _as_int(
            payload["max_summary_lines"], _join(path, "max_summary_lines"), issues, minimum=1
        )
        if parsed_lines is not None:
            out["max_summary_lines"] = parsed_lines
    if "color" in payload:
        parsed_color = _as_bool(payload["color"], _join(path, "color"), issues)
        if parsed_color is not None:
            out["color"] = parsed_color
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"log_level", "log_file", "redact_secrets"}, path, issues)
    out: dict[str, Any] = {}
    if "log_level" in payload:
        parsed_level = _as_enum(
            payload["log_level"], _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if parsed_level is not None:
            out["log_level"] = parsed_level
    if "log_file" in payload:
        parsed_log_file = _as_path_text(payload["log_file"], _join(path, "log_file"), issues)
        if parsed_log_file is not None:
            out["log_file"] = parsed_log_file
    if "redact_secrets" in payload:
        parsed_redact = _as_bool(payload["redact_secrets"], _join(path, "redact_secrets"), issues)
        if parsed_redact is not None:
            out["redact_secrets"] = parsed_redact
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    # Empty means "not set" for optional paths.
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    if "\x00" in value:
        issues.add(path, "must not contain NUL bytes")
        return None
    return value.strip()


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, list):
        issues.add(path, f"expected list of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_str(item, f"{path}[{index}]", issues)
        if parsed is not None:
            out.append(parsed)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(str(item) for item in payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _merge_into(existing, value)
        elif isinstance(value, Mapping):
            nested: dict[str, Any] = {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "ChecksConfig",
    "CommitGateConfig",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG",
    "ObservabilityConfig",
    "ReportConfig",
    "RunnerConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
