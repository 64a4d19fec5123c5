"""Renderer tests: styling must never change the rendered text."""

from __future__ import annotations

import io

from commit_gate.checks.base import CheckSpec, CommandSpec, RawResult
from commit_gate.checks.classifiers import BinaryClassifier, classify
from commit_gate.checks.registry import CheckRegistry
from commit_gate.orchestrator import Report
from commit_gate.report import render_report
from commit_gate.ui.render import CLIRenderer


def _report() -> Report:
    spec = CheckSpec(
        id="build",
        display_name="Build",
        command=CommandSpec.from_value("make build"),
        timeout_seconds=10,
        classifier=BinaryClassifier(),
        fix_hint="make clean build",
    )
    return Report.from_outcomes([classify(spec, RawResult("build", 2, "", "[x] broke", 40))])


def test_plain_report_matches_render_report() -> None:
    out = io.StringIO()
    renderer = CLIRenderer(no_color=True, stdout=out, stderr=io.StringIO())
    report = _report()

    renderer.report(report, max_summary_lines=5)

    assert out.getvalue() == render_report(report, max_summary_lines=5)


def test_json_is_written_verbatim() -> None:
    out = io.StringIO()
    renderer = CLIRenderer(no_color=True, stdout=out)

    renderer.json('{"a":"[bold]x[/bold]"}')

    assert out.getvalue() == '{"a":"[bold]x[/bold]"}\n'


def test_error_goes_to_stderr() -> None:
    out = io.StringIO()
    err = io.StringIO()
    renderer = CLIRenderer(no_color=True, stdout=out, stderr=err)

    renderer.error("duplicate check id(s): a")

    assert out.getvalue() == ""
    assert err.getvalue() == "error: duplicate check id(s): a\n"


def test_empty_check_list() -> None:
    out = io.StringIO()

    CLIRenderer(no_color=True, stdout=out).check_list(CheckRegistry([]))

    assert out.getvalue() == "no checks registered\n"
