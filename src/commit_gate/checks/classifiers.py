"""
commit-gate: result classification strategies

File: src/commit_gate/checks/classifiers.py

Purpose
- Map one ``RawResult`` to a ``Verdict`` with check-specific rules, and pair it with
  its ``CheckSpec`` as a ``CheckOutcome``.

Strategies
- ``binary``: exit code 0 passes, anything else fails (type check, build).
- ``warning_tier``: marker counting over output lines (lint).
- ``test_counts``: "X passed, Y failed, Z total" summary parsing (tests).
- ``AdvisoryClassifier`` caps any wrapped strategy at ``warn``.

Functional requirements
- ``classify`` never raises. A strategy failure or unparsable output falls back to
  exit-code-only classification with a caveat appended to the summary lines.
- Timeouts map to the strategy's ``timeout_verdict``; execution errors and
  cancellations map to ``error``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final

from commit_gate.checks.base import (
    CheckOutcome,
    CheckSpec,
    Classification,
    Classifier,
    RawResult,
    Verdict,
)

DEFAULT_MAX_SUMMARY_LINES: Final[int] = 20

DEFAULT_WARNING_MARKERS: Final[tuple[str, ...]] = (
    r"(?i)\bwarning:",
    r"^\s*\d+:\d+\s+warning\b",
)
DEFAULT_ERROR_MARKERS: Final[tuple[str, ...]] = (
    r"(?i)\berror:",
    r"^\s*\d+:\d+\s+error\b",
)

_PATH_LINE_RE: Final[re.Pattern[str]] = re.compile(r"^[^:\s][^:]*?:\d+(?::\d+)?:\s*\S")
_COUNT_RE: Final[re.Pattern[str]] = re.compile(
    r"(?P<count>\d+)\s+(?P<label>passed|passing|failed|failing|errors?|skipped|pending|"
    r"todo|xfailed|xpassed|deselected|total)\b",
    re.IGNORECASE,
)
_FAILED_LABELS: Final[frozenset[str]] = frozenset({"failed", "failing", "error", "errors"})
_PASSED_LABELS: Final[frozenset[str]] = frozenset({"passed", "passing", "xpassed"})
_NOT_RUN_LABELS: Final[frozenset[str]] = frozenset({"skipped", "pending", "todo", "xfailed"})


@dataclass(frozen=True, slots=True)
class TestCounts:
    """Parsed test-runner summary counts."""

    __test__ = False

    passed: int
    failed: int
    total: int
    total_reported: bool
    line: str

    @property
    def not_passed(self) -> int:
        return max(self.total - self.passed - self.failed, 0)


@dataclass(frozen=True, slots=True)
class _BaseClassifier:
    timeout_verdict: Verdict = Verdict.FAIL
    max_summary_lines: int = DEFAULT_MAX_SUMMARY_LINES

    def evaluate(self, raw: RawResult) -> Classification:
        pre = self._pre_classify(raw)
        if pre is not None:
            return pre
        return self._classify_completed(raw)

    def _pre_classify(self, raw: RawResult) -> Classification | None:
        if raw.cancelled:
            return Classification(Verdict.ERROR, ("cancelled before completion",))
        if raw.execution_error:
            message = raw.stderr.strip() or "check could not be executed"
            return Classification(Verdict.ERROR, _cap(message.splitlines(), self.max_summary_lines))
        if raw.timed_out:
            lines = [f"timed out after {raw.duration_ms / 1000:.1f}s; process terminated"]
            lines.extend(tail_lines(raw.output, self.max_summary_lines - 1))
            return Classification(self.timeout_verdict, _cap(lines, self.max_summary_lines))
        return None

    def _classify_completed(self, raw: RawResult) -> Classification:
        return exit_code_classification(raw, max_lines=self.max_summary_lines)


@dataclass(frozen=True, slots=True)
class BinaryClassifier(_BaseClassifier):
    """Exit code 0 passes; any non-zero exit fails."""

    kind: str = "binary"

    def _classify_completed(self, raw: RawResult) -> Classification:
        if raw.exit_code == 0:
            return Classification(Verdict.PASS)
        return Classification(Verdict.FAIL, failure_lines(raw, self.max_summary_lines))


@dataclass(frozen=True, slots=True)
class WarningTierClassifier(_BaseClassifier):
    """Lint-style classification with a warning tier between pass and fail."""

    kind: str = "warning_tier"
    warning_markers: tuple[str, ...] = DEFAULT_WARNING_MARKERS
    error_markers: tuple[str, ...] = DEFAULT_ERROR_MARKERS
    _warning_res: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)
    _error_res: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_warning_res", _compile_markers(self.warning_markers))
        object.__setattr__(self, "_error_res", _compile_markers(self.error_markers))

    def _classify_completed(self, raw: RawResult) -> Classification:
        warnings: list[str] = []
        errors: list[str] = []
        for line in _nonblank_lines(raw.output):
            if any(pattern.search(line) for pattern in self._error_res):
                errors.append(line)
            elif any(pattern.search(line) for pattern in self._warning_res):
                warnings.append(line)

        if raw.exit_code != 0 or errors:
            lines = errors + warnings
            if not lines:
                lines = list(failure_lines(raw, self.max_summary_lines))
            elif raw.exit_code != 0:
                lines.insert(0, f"exited with code {raw.exit_code}")
            return Classification(Verdict.FAIL, _cap(lines, self.max_summary_lines))
        if warnings:
            header = f"{len(warnings)} warning(s)"
            return Classification(Verdict.WARN, _cap([header, *warnings], self.max_summary_lines))
        return Classification(Verdict.PASS)


@dataclass(frozen=True, slots=True)
class TestCountClassifier(_BaseClassifier):
    """Classify from the test runner's pass/fail summary line."""

    __test__ = False

    kind: str = "test_counts"
    exit_code_authoritative: bool = False

    def _classify_completed(self, raw: RawResult) -> Classification:
        counts = parse_test_counts(raw.output)
        if counts is None:
            fallback = exit_code_classification(raw, max_lines=self.max_summary_lines)
            caveat = "could not parse a test summary; classified by exit code only"
            return Classification(
                fallback.verdict, _cap([*fallback.summary_lines, caveat], self.max_summary_lines)
            )

        summary = f"{counts.passed} passed, {counts.failed} failed, {counts.total} total"
        if counts.failed > 0:
            lines = [summary, *_failed_test_lines(raw.output)]
            return Classification(Verdict.FAIL, _cap(lines, self.max_summary_lines))
        if raw.exit_code != 0 and self.exit_code_authoritative:
            lines = [summary, f"exited with code {raw.exit_code}"]
            return Classification(Verdict.FAIL, _cap(lines, self.max_summary_lines))
        if counts.passed < counts.total:
            lines = [summary, f"{counts.not_passed} test(s) neither passed nor failed"]
            return Classification(Verdict.WARN, _cap(lines, self.max_summary_lines))
        lines = [summary]
        if raw.exit_code != 0:
            lines.append(f"exit code {raw.exit_code} ignored: summary reports no failures")
        return Classification(Verdict.PASS, tuple(lines))


@dataclass(frozen=True, slots=True)
class AdvisoryClassifier:
    """Wrap a strategy so it can warn but never block."""

    inner: Classifier

    @property
    def kind(self) -> str:
        return f"advisory:{self.inner.kind}"

    def evaluate(self, raw: RawResult) -> Classification:
        result = self.inner.evaluate(raw)
        if result.verdict in (Verdict.FAIL, Verdict.ERROR):
            note = f"advisory check: {result.verdict.value} downgraded to warn"
            return Classification(Verdict.WARN, (*result.summary_lines, note))
        return result


def classify(spec: CheckSpec, raw: RawResult) -> CheckOutcome:
    """Classify ``raw`` with the strategy owned by ``spec``."""

    try:
        classification = spec.classifier.evaluate(raw)
        verdict = Verdict(classification.verdict)
        summary_lines = tuple(str(line) for line in classification.summary_lines)
    except Exception as exc:  # noqa: BLE001
        fallback = exit_code_classification(raw)
        verdict = fallback.verdict
        summary_lines = (
            *fallback.summary_lines,
            f"classifier {spec.classifier.kind!r} raised {type(exc).__name__}: {exc}; "
            "classified by exit code only",
        )
    return CheckOutcome(spec=spec, raw=raw, verdict=verdict, summary_lines=summary_lines)


def exit_code_classification(
    raw: RawResult,
    *,
    max_lines: int = DEFAULT_MAX_SUMMARY_LINES,
) -> Classification:
    """Classification that looks at nothing but the process status."""

    if raw.execution_error:
        return Classification(Verdict.ERROR, _cap(raw.stderr.strip().splitlines(), max_lines))
    if raw.timed_out:
        return Classification(Verdict.FAIL, ("timed out; process terminated",))
    if raw.exit_code == 0:
        return Classification(Verdict.PASS)
    return Classification(Verdict.FAIL, failure_lines(raw, max_lines))


def build_classifier(
    payload: Mapping[str, object] | None,
    *,
    timeout_verdict: Verdict | str = Verdict.FAIL,
    advisory: bool = False,
) -> Classifier:
    """Construct a strategy from a ``{"kind": ..., **options}`` mapping."""

    options = dict(payload or {})
    kind_raw = options.pop("kind", "binary")
    if not isinstance(kind_raw, str):
        raise ValueError("classifier.kind must be a string")
    kind = kind_raw.strip().lower()

    resolved_timeout = _as_timeout_verdict(options.pop("timeout_verdict", timeout_verdict))
    max_lines = options.pop("max_summary_lines", DEFAULT_MAX_SUMMARY_LINES)
    if isinstance(max_lines, bool) or not isinstance(max_lines, int) or max_lines <= 0:
        raise ValueError("classifier.max_summary_lines must be a positive integer")

    classifier: Classifier
    if kind == "binary":
        classifier = BinaryClassifier(timeout_verdict=resolved_timeout, max_summary_lines=max_lines)
    elif kind == "warning_tier":
        warning_markers = _as_patterns(
            options.pop("warning_markers", DEFAULT_WARNING_MARKERS), "warning_markers"
        )
        error_markers = _as_patterns(
            options.pop("error_markers", DEFAULT_ERROR_MARKERS), "error_markers"
        )
        classifier = WarningTierClassifier(
            warning_markers=warning_markers,
            error_markers=error_markers,
            timeout_verdict=resolved_timeout,
            max_summary_lines=max_lines,
        )
    elif kind == "test_counts":
        authoritative = options.pop("exit_code_authoritative", False)
        if not isinstance(authoritative, bool):
            raise ValueError("classifier.exit_code_authoritative must be a boolean")
        classifier = TestCountClassifier(
            exit_code_authoritative=authoritative,
            timeout_verdict=resolved_timeout,
            max_summary_lines=max_lines,
        )
    else:
        raise ValueError(
            f"unknown classifier kind {kind!r}; expected one of: binary, test_counts, warning_tier"
        )

    if options:
        raise ValueError(f"unexpected classifier options for {kind!r}: {sorted(options)}")
    if advisory:
        return AdvisoryClassifier(classifier)
    return classifier


def parse_test_counts(output: str) -> TestCounts | None:
    """Parse the last summary line carrying passed/failed counts, if any."""

    for line in reversed(_nonblank_lines(output)):
        matches = list(_COUNT_RE.finditer(line))
        labels = {match.group("label").lower() for match in matches}
        if not labels & (_FAILED_LABELS | _PASSED_LABELS):
            continue

        passed = failed = not_run = 0
        total: int | None = None
        for match in matches:
            count = int(match.group("count"))
            label = match.group("label").lower()
            if label in _PASSED_LABELS:
                passed += count
            elif label in _FAILED_LABELS:
                failed += count
            elif label in _NOT_RUN_LABELS:
                not_run += count
            elif label == "total":
                total = count

        if total is None:
            return TestCounts(
                passed=passed,
                failed=failed,
                total=passed + failed + not_run,
                total_reported=False,
                line=line,
            )
        return TestCounts(
            passed=passed,
            failed=failed,
            total=max(total, passed + failed),
            total_reported=True,
            line=line,
        )
    return None


def failure_lines(raw: RawResult, max_lines: int = DEFAULT_MAX_SUMMARY_LINES) -> tuple[str, ...]:
    """Best-effort diagnostic lines for a failed command."""

    located = [line for line in _nonblank_lines(raw.output) if _PATH_LINE_RE.match(line)]
    lines = [f"exited with code {raw.exit_code}"]
    if located:
        lines.extend(located)
    else:
        lines.extend(tail_lines(raw.output, max_lines - 1))
    return _cap(lines, max_lines)


def tail_lines(text: str, count: int) -> tuple[str, ...]:
    if count <= 0:
        return ()
    lines = _nonblank_lines(text)
    return tuple(lines[-count:])


def _failed_test_lines(output: str) -> list[str]:
    return [
        line
        for line in _nonblank_lines(output)
        if line.startswith(("FAILED", "FAIL ", "ERROR ", "✕", "●"))
    ]


def _nonblank_lines(text: str) -> list[str]:
    return [line.rstrip() for line in text.splitlines() if line.strip()]


def _cap(lines: Iterable[str], max_lines: int) -> tuple[str, ...]:
    materialized = list(lines)
    if len(materialized) <= max_lines:
        return tuple(materialized)
    omitted = len(materialized) - max_lines + 1
    return (*materialized[: max_lines - 1], f"... {omitted} more line(s)")


def _compile_markers(patterns: Sequence[str]) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(pattern) for pattern in patterns)


def _as_patterns(value: object, name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        value = (value,)
    if not isinstance(value, Sequence):
        raise ValueError(f"classifier.{name} must be a list of regular expressions")
    patterns: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not item:
            raise ValueError(f"classifier.{name}[{index}] must be a non-empty string")
        try:
            re.compile(item)
        except re.error as exc:
            raise ValueError(f"classifier.{name}[{index}]: invalid pattern ({exc})") from exc
        patterns.append(item)
    return tuple(patterns)


def _as_timeout_verdict(value: object) -> Verdict:
    try:
        verdict = Verdict(value)
    except ValueError:
        verdict = None
    if verdict not in (Verdict.FAIL, Verdict.WARN):
        raise ValueError(f"timeout_verdict must be 'fail' or 'warn', got {value!r}")
    return verdict


__all__ = [
    "AdvisoryClassifier",
    "BinaryClassifier",
    "DEFAULT_ERROR_MARKERS",
    "DEFAULT_MAX_SUMMARY_LINES",
    "DEFAULT_WARNING_MARKERS",
    "TestCountClassifier",
    "TestCounts",
    "WarningTierClassifier",
    "build_classifier",
    "classify",
    "exit_code_classification",
    "failure_lines",
    "parse_test_counts",
    "tail_lines",
]
