"""Output rendering for the commit-gate CLI.

File: src/commit_gate/ui/render.py

Purpose
- Print reports, check listings and errors with ``rich`` styling.
- Respect the NO_COLOR environment variable and the --no-color CLI flag.

Functional requirements
- Styling never changes the text: what is printed is exactly ``render_report``.
- JSON output is written verbatim, without markup, highlighting or wrapping.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

from rich.console import Console
from rich.style import Style
from rich.text import Text

from commit_gate.checks.base import Verdict
from commit_gate.report import VERDICT_LABELS, render_report

if TYPE_CHECKING:
    from commit_gate.checks.registry import CheckRegistry
    from commit_gate.orchestrator import Report

_S_VERDICT: Final[dict[Verdict, Style]] = {
    Verdict.PASS: Style(color="green", bold=True),
    Verdict.WARN: Style(color="yellow", bold=True),
    Verdict.FAIL: Style(color="red", bold=True),
    Verdict.ERROR: Style(color="magenta", bold=True),
}
_S_HEADER: Final[Style] = Style(bold=True)
_S_DIM: Final[Style] = Style(dim=True)
_S_ERROR: Final[Style] = Style(color="red")


def _color_allowed(no_color_flag: bool) -> bool:
    if no_color_flag:
        return False
    return not os.environ.get("NO_COLOR", "")


class CLIRenderer:
    """Thin rich-backed renderer; plain text when color is disabled or not a TTY."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        color = _color_allowed(no_color)
        self._out = Console(
            file=stdout if stdout is not None else sys.stdout,
            no_color=not color,
            color_system="auto" if color else None,
            highlight=False,
        )
        self._err = Console(
            file=stderr if stderr is not None else sys.stderr,
            no_color=not color,
            color_system="auto" if color else None,
            highlight=False,
        )

    def report(self, report: Report, *, max_summary_lines: int | None = None) -> None:
        for line in render_report(report, max_summary_lines=max_summary_lines).splitlines():
            self._out.print(_style_report_line(line, report), soft_wrap=True)

    def json(self, payload: str) -> None:
        self._out.file.write(payload.rstrip("\n") + "\n")
        self._out.file.flush()

    def check_list(self, registry: CheckRegistry) -> None:
        if not len(registry):
            self._out.print("no checks registered", style=_S_DIM)
            return
        for spec in registry:
            text = Text()
            text.append(spec.id, style=_S_HEADER)
            text.append(f"  {spec.display_name}")
            text.append(f"  [{spec.classifier.kind}, {spec.timeout_seconds:g}s]", style=_S_DIM)
            self._out.print(text, soft_wrap=True)
            self._out.print(Text(f"    $ {spec.command.display}", style=_S_DIM), soft_wrap=True)

    def error(self, message: str) -> None:
        self._err.print(Text(f"error: {message}", style=_S_ERROR), soft_wrap=True)


def _style_report_line(line: str, report: Report) -> Text:
    for verdict, label in VERDICT_LABELS.items():
        if line.startswith(label):
            text = Text()
            text.append(label, style=_S_VERDICT[verdict])
            text.append(line[len(label) :])
            return text
    if line.startswith("Overall:"):
        return Text(line, style=_S_VERDICT[report.overall_verdict])
    if line == "Remediation:" or line.startswith("commit-gate:"):
        return Text(line, style=_S_HEADER)
    if line.startswith("run cancelled"):
        return Text(line, style=_S_VERDICT[Verdict.WARN])
    return Text(line)


def create_renderer(*, no_color: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color)


__all__ = ["CLIRenderer", "create_renderer"]
