"""
commit-gate: check data model

File: src/commit_gate/checks/base.py

Purpose
- Defines the immutable records exchanged between registry, runner, classifier and
  orchestrator: ``CommandSpec``, ``CheckSpec``, ``RawResult``, ``Verdict`` and
  ``CheckOutcome``.

Functional requirements
- Records validate themselves at construction and export stable-key JSON-safe dicts.
- A ``RawResult`` is either an executed command, a timeout, or an execution error;
  the flags are mutually consistent.
"""

from __future__ import annotations

import math
import os
import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import NoReturn, Protocol, runtime_checkable

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MAX_ID_LENGTH = 128
_MAX_ENV_ENTRIES = 256


class Verdict(StrEnum):
    """Classified outcome of one check."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Classification:
    """Verdict plus the best-effort lines explaining it."""

    verdict: Verdict
    summary_lines: tuple[str, ...] = ()


@runtime_checkable
class Classifier(Protocol):
    """Strategy mapping one raw command result to a verdict."""

    kind: str

    def evaluate(self, raw: RawResult) -> Classification: ...


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Portable command invocation: program, arguments, working directory, env."""

    program: str
    args: tuple[str, ...] = ()
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    inherit_env: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "program", _as_str(self.program, "CommandSpec.program"))
        if not isinstance(self.args, Sequence) or isinstance(self.args, (str, bytes)):
            _fail("CommandSpec.args", f"expected sequence, got {type(self.args).__name__}")
        args = tuple(
            _as_text(item, f"CommandSpec.args[{index}]") for index, item in enumerate(self.args)
        )
        object.__setattr__(self, "args", args)
        if self.cwd is not None:
            object.__setattr__(self, "cwd", _as_str(self.cwd, "CommandSpec.cwd"))
        if not isinstance(self.env, Mapping):
            _fail("CommandSpec.env", f"expected mapping, got {type(self.env).__name__}")
        if len(self.env) > _MAX_ENV_ENTRIES:
            _fail("CommandSpec.env", f"contains too many entries (>{_MAX_ENV_ENTRIES})")
        env = {
            _as_str(key, "CommandSpec.env.<key>"): _as_text(value, f"CommandSpec.env.{key}")
            for key, value in self.env.items()
        }
        object.__setattr__(self, "env", {key: env[key] for key in sorted(env)})
        if not isinstance(self.inherit_env, bool):
            _fail("CommandSpec.inherit_env", "expected boolean")

    @classmethod
    def from_value(
        cls,
        value: str | Sequence[str],
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        inherit_env: bool = True,
    ) -> CommandSpec:
        """Build from a shell-style string or an argv list."""

        if isinstance(value, str):
            parts = shlex.split(value)
        elif isinstance(value, Sequence):
            parts = [str(item) for item in value]
        else:
            _fail("command", f"expected string or list, got {type(value).__name__}")
        if not parts:
            _fail("command", "must not be empty")
        return cls(
            program=parts[0],
            args=tuple(parts[1:]),
            cwd=cwd,
            env=dict(env or {}),
            inherit_env=inherit_env,
        )

    @property
    def argv(self) -> tuple[str, ...]:
        return (self.program, *self.args)

    @property
    def display(self) -> str:
        return shlex.join(self.argv)

    def build_env(self) -> dict[str, str] | None:
        if self.inherit_env:
            if not self.env:
                return None
            merged = dict(os.environ)
            merged.update(self.env)
            return merged
        return dict(self.env)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "argv": list(self.argv),
            "cwd": self.cwd,
            "env": dict(self.env),
            "inherit_env": self.inherit_env,
        }


@dataclass(frozen=True, slots=True)
class CheckSpec:
    """Immutable definition of one verification to run."""

    id: str
    display_name: str
    command: CommandSpec
    timeout_seconds: float
    classifier: Classifier
    fix_hint: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_str(self.id, "CheckSpec.id", max_len=_MAX_ID_LENGTH))
        object.__setattr__(
            self, "display_name", _as_str(self.display_name, f"CheckSpec[{self.id}].display_name")
        )
        if not isinstance(self.command, CommandSpec):
            _fail(f"CheckSpec[{self.id}].command", "must be a CommandSpec")
        if isinstance(self.timeout_seconds, bool) or not isinstance(
            self.timeout_seconds, (int, float)
        ):
            _fail(f"CheckSpec[{self.id}].timeout_seconds", "expected number")
        if not math.isfinite(self.timeout_seconds):
            _fail(f"CheckSpec[{self.id}].timeout_seconds", "must be finite")
        object.__setattr__(self, "timeout_seconds", float(self.timeout_seconds))
        if not isinstance(self.classifier, Classifier):
            _fail(f"CheckSpec[{self.id}].classifier", "must implement Classifier")
        if self.fix_hint is not None:
            object.__setattr__(
                self, "fix_hint", _as_str(self.fix_hint, f"CheckSpec[{self.id}].fix_hint")
            )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "command": self.command.to_dict(),
            "timeout_seconds": self.timeout_seconds,
            "classifier": self.classifier.kind,
            "fix_hint": self.fix_hint,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class RawResult:
    """Output of one executed check."""

    check_id: str
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    execution_error: bool = False
    cancelled: bool = False

    def __post_init__(self) -> None:
        _as_str(self.check_id, "RawResult.check_id", max_len=_MAX_ID_LENGTH)
        if self.exit_code is not None and (
            isinstance(self.exit_code, bool) or not isinstance(self.exit_code, int)
        ):
            _fail("RawResult.exit_code", "expected integer or None")
        _as_text(self.stdout, "RawResult.stdout")
        _as_text(self.stderr, "RawResult.stderr")
        if isinstance(self.duration_ms, bool) or not isinstance(self.duration_ms, int):
            _fail("RawResult.duration_ms", "expected integer")
        if self.duration_ms < 0:
            _fail("RawResult.duration_ms", "must be >= 0")
        if self.timed_out and self.exit_code is not None:
            _fail("RawResult.exit_code", "must be None when timed_out is true")
        if self.execution_error and self.exit_code is not None:
            _fail("RawResult.exit_code", "must be None when execution_error is true")
        if self.timed_out and self.execution_error:
            _fail("RawResult.timed_out", "cannot be combined with execution_error")
        if self.cancelled and not self.execution_error:
            _fail("RawResult.cancelled", "requires execution_error")

    @classmethod
    def execution_failure(
        cls,
        check_id: str,
        message: str,
        *,
        duration_ms: int = 0,
        cancelled: bool = False,
        stdout: str = "",
    ) -> RawResult:
        """Sentinel result for a check that could not execute."""

        return cls(
            check_id=check_id,
            exit_code=None,
            stdout=stdout,
            stderr=message,
            duration_ms=duration_ms,
            timed_out=False,
            execution_error=True,
            cancelled=cancelled,
        )

    @property
    def output(self) -> str:
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "check_id": self.check_id,
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "execution_error": self.execution_error,
            "cancelled": self.cancelled,
        }


@dataclass(frozen=True, slots=True)
class CheckOutcome:
    """A CheckSpec paired with its classified result for one run."""

    spec: CheckSpec
    raw: RawResult
    verdict: Verdict
    summary_lines: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.raw.check_id != self.spec.id:
            _fail(
                "CheckOutcome.raw",
                f"check id {self.raw.check_id!r} does not match spec {self.spec.id!r}",
            )
        object.__setattr__(self, "verdict", Verdict(self.verdict))
        object.__setattr__(self, "summary_lines", tuple(self.summary_lines))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "spec": self.spec.to_dict(),
            "raw": self.raw.to_dict(),
            "verdict": self.verdict.value,
            "summary_lines": list(self.summary_lines),
        }


def _as_str(value: object, path: str, *, max_len: int = 4096) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    parsed = value.strip()
    if not parsed:
        _fail(path, "must not be empty")
    if len(parsed) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return parsed


def _as_text(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    return value


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "CheckOutcome",
    "CheckSpec",
    "Classification",
    "Classifier",
    "CommandSpec",
    "JSONScalar",
    "JSONValue",
    "RawResult",
    "Verdict",
]
