"""
commit-gate: process entrypoint

File: src/commit_gate/main.py

Purpose
- Turn whatever ``run_cli`` returns or raises into one of four exit codes.

Exit codes
- 0: every check passed or only warned.
- 1: at least one check failed or errored.
- 2: the run was refused before any check started (bad flags, config or check file).
- 3: commit-gate itself broke; a traceback is printed.
"""

from __future__ import annotations

import sys
import traceback
from collections.abc import Iterator, Sequence
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    CHECKS_FAILED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 3


_KNOWN_CODES = frozenset(int(code) for code in ExitCode)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return its exit code; never raises."""

    try:
        from commit_gate.ui.cli import run_cli

        return _coerce_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse: 0 after --help/--version, 2 on a usage error.
        return _coerce_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - process boundary
        code = _exit_code_for(exc)
        _report_failure(exc, code)
        return int(code)


def _coerce_exit_code(value: object) -> int:
    if value is None:
        return int(ExitCode.SUCCESS)
    if isinstance(value, int) and value in _KNOWN_CODES:
        return value
    if isinstance(value, str) and value.strip():
        print(value.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _exit_code_for(exc: BaseException) -> ExitCode:
    from commit_gate.checks.registry import ConfigurationError
    from commit_gate.config.loader import ConfigLoadError
    from commit_gate.config.schema import ConfigValidationError

    refused = (ConfigurationError, ConfigLoadError, ConfigValidationError)
    if any(isinstance(link, refused) for link in _causes(exc)):
        return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and the exceptions it was raised from or during."""

    visited: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in visited:
        visited.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif not link.__suppress_context__:
            link = link.__context__
        else:
            link = None


def _report_failure(exc: BaseException, code: ExitCode) -> None:
    if isinstance(exc, KeyboardInterrupt):
        print("interrupted", file=sys.stderr)
    elif code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(exc, file=sys.stderr)
    else:
        detail = str(exc).strip() or type(exc).__name__
        print(f"error: {detail}", file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint"]
