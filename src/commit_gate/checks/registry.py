"""
commit-gate: check registry, YAML check files and built-in presets.

File: src/commit_gate/checks/registry.py

Purpose
- Hold the ordered, validated set of ``CheckSpec`` objects for one invocation.
- Load check definitions from YAML and provide the built-in ``python`` / ``node``
  pre-commit checklists.

Functional requirements
- Registration order is fixed at construction and preserved by ``select``.
- Duplicate ids and non-positive timeouts are rejected up front, listing every
  offending id.
- Every structural problem in a check file names the entry index or id.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Any, Final

import yaml

from commit_gate.checks.base import CheckSpec, CommandSpec, Verdict
from commit_gate.checks.classifiers import build_classifier

DEFAULT_CHECKS_FILE: Final[str] = "commit-gate.checks.yaml"
DEFAULT_TIMEOUT_SECONDS: Final[float] = 300.0

_ENTRY_KEYS: Final[frozenset[str]] = frozenset(
    {
        "id",
        "name",
        "command",
        "cwd",
        "env",
        "inherit_env",
        "timeout_seconds",
        "classifier",
        "fix_hint",
        "description",
        "advisory",
    }
)


class ConfigurationError(ValueError):
    """Invalid check set; raised before any check runs."""

    def __init__(self, message: str, *, check_ids: Iterable[str] = ()) -> None:
        super().__init__(message)
        self.check_ids: tuple[str, ...] = tuple(check_ids)


class CheckRegistry:
    """Ordered, immutable collection of check definitions."""

    def __init__(self, specs: Iterable[CheckSpec]) -> None:
        ordered = tuple(specs)
        for index, spec in enumerate(ordered):
            if not isinstance(spec, CheckSpec):
                raise ConfigurationError(
                    f"checks[{index}] must be a CheckSpec, got {type(spec).__name__}"
                )

        seen: set[str] = set()
        duplicates: list[str] = []
        for spec in ordered:
            if spec.id in seen and spec.id not in duplicates:
                duplicates.append(spec.id)
            seen.add(spec.id)
        if duplicates:
            raise ConfigurationError(
                f"duplicate check id(s): {', '.join(duplicates)}", check_ids=duplicates
            )

        bad_timeouts = [spec.id for spec in ordered if not spec.timeout_seconds > 0]
        if bad_timeouts:
            raise ConfigurationError(
                f"timeout_seconds must be > 0 for check(s): {', '.join(bad_timeouts)}",
                check_ids=bad_timeouts,
            )

        self._specs = ordered
        self._by_id = {spec.id: spec for spec in ordered}

    @property
    def specs(self) -> tuple[CheckSpec, ...]:
        return self._specs

    def ids(self) -> tuple[str, ...]:
        return tuple(spec.id for spec in self._specs)

    def get(self, check_id: str) -> CheckSpec:
        try:
            return self._by_id[check_id]
        except KeyError:
            raise ConfigurationError(
                f"unknown check id: {check_id}", check_ids=(check_id,)
            ) from None

    def select(
        self,
        *,
        only: Iterable[str] | None = None,
        skip: Iterable[str] | None = None,
    ) -> CheckRegistry:
        """Return a registry restricted to ``only`` minus ``skip``, in registration order."""

        only_ids = _dedupe(only or ())
        skip_ids = _dedupe(skip or ())
        unknown = [item for item in (*only_ids, *skip_ids) if item not in self._by_id]
        if unknown:
            unknown = _dedupe(unknown)
            raise ConfigurationError(
                f"unknown check id(s): {', '.join(unknown)}; "
                f"known: {', '.join(self.ids()) or '<none>'}",
                check_ids=unknown,
            )

        wanted = set(only_ids) if only_ids else set(self._by_id)
        wanted.difference_update(skip_ids)
        return CheckRegistry(spec for spec in self._specs if spec.id in wanted)

    def __iter__(self) -> Iterator[CheckSpec]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, check_id: object) -> bool:
        return check_id in self._by_id

    def __repr__(self) -> str:
        return f"CheckRegistry(ids={list(self.ids())!r})"


def load_check_file(
    path: str | Path,
    *,
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    timeout_verdict: Verdict | str = Verdict.FAIL,
) -> CheckRegistry:
    """Load a YAML list of check definitions.

    Relative ``cwd`` entries resolve against the file's directory.
    """

    file_path = Path(path).expanduser()
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"cannot read checks file {file_path}: {exc}") from exc
    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in checks file {file_path}: {exc}") from exc

    if isinstance(payload, Mapping) and "checks" in payload:
        payload = payload["checks"]
    if payload is None:
        payload = []
    if not isinstance(payload, list):
        raise ConfigurationError(
            f"checks file {file_path} must contain a list of checks, "
            f"got {type(payload).__name__}"
        )

    specs = [
        parse_check_entry(
            entry,
            index=index,
            base_dir=file_path.parent,
            default_timeout=default_timeout,
            timeout_verdict=timeout_verdict,
        )
        for index, entry in enumerate(payload)
    ]
    return CheckRegistry(specs)


def parse_check_entry(
    entry: object,
    *,
    index: int,
    base_dir: Path | None = None,
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    timeout_verdict: Verdict | str = Verdict.FAIL,
) -> CheckSpec:
    """Build one ``CheckSpec`` from a YAML mapping."""

    if not isinstance(entry, Mapping):
        raise ConfigurationError(f"checks[{index}] must be a mapping")
    raw_id = entry.get("id")
    label = f"checks[{index}]" if not isinstance(raw_id, str) else f"checks[{index}] ({raw_id})"
    check_ids = (raw_id,) if isinstance(raw_id, str) else ()

    unknown = sorted(str(key) for key in entry if key not in _ENTRY_KEYS)
    if unknown:
        raise ConfigurationError(
            f"{label}: unknown key(s): {', '.join(unknown)}", check_ids=check_ids
        )

    try:
        cwd = entry.get("cwd")
        if cwd is not None:
            cwd_path = Path(str(cwd)).expanduser()
            if base_dir is not None and not cwd_path.is_absolute():
                cwd_path = base_dir / cwd_path
            cwd = str(cwd_path)
        env = entry.get("env") or {}
        if not isinstance(env, Mapping):
            raise ValueError("env must be a mapping")
        command_value = entry.get("command")
        if command_value is None:
            raise ValueError("command is required")
        command = CommandSpec.from_value(
            command_value,  # type: ignore[arg-type]
            cwd=cwd,
            env={str(key): str(value) for key, value in env.items()},
            inherit_env=_as_bool(entry.get("inherit_env", True), "inherit_env"),
        )

        timeout = entry.get("timeout_seconds", default_timeout)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
            raise ValueError("timeout_seconds must be a number")
        if not math.isfinite(timeout) or timeout <= 0:
            raise ValueError("timeout_seconds must be > 0")

        classifier_payload = entry.get("classifier")
        if isinstance(classifier_payload, str):
            classifier_payload = {"kind": classifier_payload}
        if classifier_payload is not None and not isinstance(classifier_payload, Mapping):
            raise ValueError("classifier must be a mapping or a kind name")
        classifier = build_classifier(
            classifier_payload,
            timeout_verdict=timeout_verdict,
            advisory=_as_bool(entry.get("advisory", False), "advisory"),
        )

        check_id = entry.get("id")
        name = entry.get("name", check_id)
        return CheckSpec(
            id=check_id,  # type: ignore[arg-type]
            display_name=name,  # type: ignore[arg-type]
            command=command,
            timeout_seconds=float(timeout),
            classifier=classifier,
            fix_hint=_optional_str(entry.get("fix_hint"), "fix_hint"),
            description=_optional_str(entry.get("description"), "description"),
        )
    except ValueError as exc:
        if isinstance(exc, ConfigurationError):
            raise
        raise ConfigurationError(f"{label}: {exc}", check_ids=check_ids) from exc


# Built-in presets. Entries use the same shape as a YAML check file.
_PRESETS: Final[dict[str, tuple[dict[str, Any], ...]]] = {
    "python": (
        {
            "id": "typecheck",
            "name": "Type check (mypy)",
            "command": "mypy .",
            "classifier": {"kind": "binary"},
            "description": "Static type check of the project.",
        },
        {
            "id": "lint",
            "name": "Lint (ruff)",
            "command": "ruff check .",
            "classifier": {"kind": "warning_tier"},
            "fix_hint": "ruff check --fix .",
        },
        {
            "id": "format",
            "name": "Format check (ruff format)",
            "command": "ruff format --check .",
            "classifier": {"kind": "binary"},
            "fix_hint": "ruff format .",
        },
        {
            "id": "tests",
            "name": "Unit tests (pytest)",
            "command": "pytest -q",
            "classifier": {"kind": "test_counts"},
        },
        {
            "id": "build",
            "name": "Build (compileall)",
            "command": (
                r"python -m compileall -q "
                r"-x '(^|/)(\.git|\.venv|venv|node_modules|build|dist)(/|$)' ."
            ),
            "classifier": {"kind": "binary"},
            "description": "Byte-compile every module under the project root.",
        },
    ),
    "node": (
        {
            "id": "typecheck",
            "name": "Type check (tsc)",
            "command": "npx tsc --noEmit",
            "classifier": {"kind": "binary"},
        },
        {
            "id": "lint",
            "name": "Lint (eslint)",
            "command": "npx eslint .",
            "classifier": {"kind": "warning_tier"},
            "fix_hint": "npx eslint . --fix",
        },
        {
            "id": "format",
            "name": "Format check (prettier)",
            "command": "npx prettier --check .",
            "classifier": {"kind": "binary"},
            "fix_hint": "npx prettier --write .",
        },
        {
            "id": "tests",
            "name": "Unit tests (npm test)",
            "command": "npm test",
            "classifier": {"kind": "test_counts"},
        },
        {
            "id": "build",
            "name": "Build (npm run build)",
            "command": "npm run build",
            "classifier": {"kind": "binary"},
        },
    ),
}

_ADVISORY_CHECKS: Final[dict[str, tuple[dict[str, Any], ...]]] = {
    "python": (
        {
            "id": "git_status",
            "name": "Working tree status",
            "command": "git status --porcelain",
            "classifier": {"kind": "warning_tier", "warning_markers": [r"^\?\? "]},
            "advisory": True,
            "description": "Reports untracked files that may belong in the commit.",
        },
        {
            "id": "dependency_audit",
            "name": "Dependency audit (pip-audit)",
            "command": "pip-audit",
            "classifier": {"kind": "binary"},
            "advisory": True,
        },
    ),
    "node": (
        {
            "id": "git_status",
            "name": "Working tree status",
            "command": "git status --porcelain",
            "classifier": {"kind": "warning_tier", "warning_markers": [r"^\?\? "]},
            "advisory": True,
            "description": "Reports untracked files that may belong in the commit.",
        },
        {
            "id": "dependency_audit",
            "name": "Dependency audit (npm audit)",
            "command": "npm audit --audit-level=high",
            "classifier": {"kind": "binary"},
            "advisory": True,
        },
    ),
}

PRESET_NAMES: Final[tuple[str, ...]] = tuple(sorted(_PRESETS))


def preset_registry(
    name: str,
    *,
    include_advisory: bool = False,
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
    timeout_verdict: Verdict | str = Verdict.FAIL,
) -> CheckRegistry:
    """Registry for one of the built-in checklists."""

    key = name.strip().lower()
    if key not in _PRESETS:
        raise ConfigurationError(
            f"unknown preset {name!r}; expected one of: {', '.join(PRESET_NAMES)}"
        )
    entries: list[Mapping[str, Any]] = list(_PRESETS[key])
    if include_advisory:
        entries.extend(_ADVISORY_CHECKS[key])
    return CheckRegistry(
        parse_check_entry(
            entry,
            index=index,
            default_timeout=default_timeout,
            timeout_verdict=timeout_verdict,
        )
        for index, entry in enumerate(entries)
    )


def build_registry(
    config: Mapping[str, Any],
    *,
    working_dir: str | Path | None = None,
) -> CheckRegistry:
    """Resolve the effective registry for a loaded config.

    Source precedence: ``checks.file``, then ``commit-gate.checks.yaml`` in
    ``working_dir``, then ``checks.preset``. ``checks.only`` / ``checks.skip``
    are applied last.
    """

    checks_section: Mapping[str, Any] = config.get("checks", {})
    runner_section: Mapping[str, Any] = config.get("runner", {})
    default_timeout = float(runner_section.get("default_timeout_seconds", DEFAULT_TIMEOUT_SECONDS))
    timeout_verdict = runner_section.get("timeout_verdict", Verdict.FAIL.value)

    base = Path.cwd() if working_dir is None else Path(working_dir)
    explicit_file = str(checks_section.get("file") or "").strip()
    implicit_file = base / DEFAULT_CHECKS_FILE

    if explicit_file:
        registry = load_check_file(
            explicit_file, default_timeout=default_timeout, timeout_verdict=timeout_verdict
        )
    elif implicit_file.is_file():
        registry = load_check_file(
            implicit_file, default_timeout=default_timeout, timeout_verdict=timeout_verdict
        )
    else:
        registry = preset_registry(
            str(checks_section.get("preset", "python")),
            include_advisory=bool(checks_section.get("include_advisory", False)),
            default_timeout=default_timeout,
            timeout_verdict=timeout_verdict,
        )

    only = checks_section.get("only") or ()
    skip = checks_section.get("skip") or ()
    if only or skip:
        registry = registry.select(only=only, skip=skip)
    return registry


def _dedupe(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for item in items:
        value = str(item).strip()
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def _as_bool(value: object, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be a boolean")
    return value


def _optional_str(value: object, name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value.strip() or None


__all__ = [
    "CheckRegistry",
    "ConfigurationError",
    "DEFAULT_CHECKS_FILE",
    "DEFAULT_TIMEOUT_SECONDS",
    "PRESET_NAMES",
    "build_registry",
    "load_check_file",
    "parse_check_entry",
    "preset_registry",
]
