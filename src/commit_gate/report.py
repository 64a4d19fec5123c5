"""
commit-gate: report rendering

File: src/commit_gate/report.py

Purpose
- Turn a ``Report`` into human-readable text or canonical JSON.

Functional requirements
- Rendering is pure: the same ``Report`` always yields the same text.
- When the overall verdict is ``fail`` a remediation list follows the per-check
  sections: failing and erroring checks first (registration order), then warning
  checks, each with its fix hint when one exists.
"""

from __future__ import annotations

import json
from typing import Final

from commit_gate.checks.base import CheckOutcome, JSONValue, Verdict
from commit_gate.orchestrator import VERDICT_ORDER, Report

VERDICT_LABELS: Final[dict[Verdict, str]] = {
    Verdict.PASS: "[PASS]",
    Verdict.WARN: "[WARN]",
    Verdict.FAIL: "[FAIL]",
    Verdict.ERROR: "[ERR] ",
}

_INDENT: Final[str] = "      "


def render_report(report: Report, *, max_summary_lines: int | None = None) -> str:
    """Render ``report`` as plain text."""

    if max_summary_lines is not None and max_summary_lines <= 0:
        raise ValueError("max_summary_lines must be > 0")

    lines: list[str] = [_summary_line(report)]
    if report.cancelled:
        lines.append("run cancelled: unfinished checks were terminated")
    lines.append("")

    for outcome in report.outcomes:
        lines.append(_outcome_header(outcome))
        if outcome.verdict is not Verdict.PASS:
            lines.extend(f"{_INDENT}{line}" for line in _limited(outcome, max_summary_lines))

    if report.overall_verdict is Verdict.FAIL:
        lines.append("")
        lines.append("Remediation:")
        lines.extend(_remediation_lines(report))

    lines.append("")
    lines.append(f"Overall: {report.overall_verdict.value.upper()}")
    return "\n".join(lines) + "\n"


def report_to_dict(report: Report) -> dict[str, JSONValue]:
    return report.to_dict()


def report_to_json(report: Report, *, indent: int | None = None) -> str:
    """Canonical JSON: sorted keys, compact separators unless ``indent`` is set."""

    if indent is None:
        return json.dumps(
            report_to_dict(report), sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
    return json.dumps(report_to_dict(report), sort_keys=True, indent=indent, ensure_ascii=False)


def describe_status(outcome: CheckOutcome) -> str:
    raw = outcome.raw
    if raw.cancelled:
        return "cancelled"
    if raw.execution_error:
        return "not run"
    if raw.timed_out:
        return f"timed out after {outcome.spec.timeout_seconds:g}s"
    return f"exit {raw.exit_code}"


def _summary_line(report: Report) -> str:
    counts = report.counts()
    total = len(report.outcomes)
    noun = "check" if total == 1 else "checks"
    parts = ", ".join(f"{counts[verdict.value]} {verdict.value}" for verdict in VERDICT_ORDER)
    return f"commit-gate: {total} {noun} | {parts}"


def _outcome_header(outcome: CheckOutcome) -> str:
    label = VERDICT_LABELS[outcome.verdict]
    duration = _format_duration(outcome.raw.duration_ms)
    return (
        f"{label} {outcome.spec.display_name} ({outcome.spec.id}) "
        f"{duration} {describe_status(outcome)}"
    )


def _limited(outcome: CheckOutcome, max_lines: int | None) -> list[str]:
    lines = list(outcome.summary_lines)
    if max_lines is None or len(lines) <= max_lines:
        return lines
    hidden = len(lines) - max_lines
    return [*lines[:max_lines], f"... {hidden} more line(s) omitted"]


def _remediation_lines(report: Report) -> list[str]:
    blocking = [
        outcome
        for outcome in report.outcomes
        if outcome.verdict in (Verdict.FAIL, Verdict.ERROR)
    ]
    warnings = [outcome for outcome in report.outcomes if outcome.verdict is Verdict.WARN]
    lines: list[str] = []
    for index, outcome in enumerate([*blocking, *warnings], start=1):
        entry = f"  {index}. {VERDICT_LABELS[outcome.verdict].strip()} {outcome.spec.id}"
        if outcome.spec.fix_hint:
            entry += f": run `{outcome.spec.fix_hint}`"
        elif outcome.raw.execution_error and not outcome.raw.cancelled:
            entry += ": check that the command is installed and runnable"
        else:
            entry += f": inspect `{outcome.spec.command.display}`"
        lines.append(entry)
    return lines


def _format_duration(duration_ms: int) -> str:
    if duration_ms < 1000:
        return f"{duration_ms}ms"
    return f"{duration_ms / 1000:.1f}s"


__all__ = [
    "VERDICT_LABELS",
    "describe_status",
    "render_report",
    "report_to_dict",
    "report_to_json",
]
