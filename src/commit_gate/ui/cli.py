"""Command-line interface for commit-gate."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from commit_gate import __version__
from commit_gate.checks.registry import (
    PRESET_NAMES,
    CheckRegistry,
    ConfigurationError,
    build_registry,
)
from commit_gate.checks.runner import CheckRunner
from commit_gate.config import ConfigLoadError, ConfigValidationError, load_config
from commit_gate.constants import REPORT_FORMATS
from commit_gate.observability import LoggingConfig, setup_logging, shutdown_logging
from commit_gate.orchestrator import Orchestrator, Report
from commit_gate.report import report_to_json
from commit_gate.ui.render import CLIRenderer, create_renderer
from commit_gate.utils.concurrency import CancellationToken


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commit-gate",
        description=(
            "Run the pre-commit checklist concurrently and report one verdict.\n\n"
            "Examples:\n"
            "  commit-gate                     Run every registered check\n"
            "  commit-gate --only lint,tests   Run a subset\n"
            "  commit-gate --json              Emit the full report as JSON\n"
            "  commit-gate --list              Show registered checks\n\n"
            "Exit codes: 0 pass/warn, 1 fail, 2 configuration error, 3 internal error."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--only",
        action="append",
        default=None,
        metavar="ID[,ID...]",
        help="Run only these check ids (repeatable, comma separated).",
    )
    parser.add_argument(
        "--skip",
        action="append",
        default=None,
        metavar="ID[,ID...]",
        help="Skip these check ids (repeatable, comma separated).",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "--json",
        dest="output_format",
        action="store_const",
        const="json",
        help="Emit the full report as JSON.",
    )
    output.add_argument(
        "--format",
        dest="output_format",
        choices=REPORT_FORMATS,
        help="Report format (default from config: text).",
    )
    parser.add_argument(
        "--list",
        dest="list_checks",
        action="store_true",
        default=False,
        help="List registered checks and exit.",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to commit-gate TOML config (default: ./commit-gate.toml if present).",
    )
    parser.add_argument(
        "--checks-file",
        default=None,
        help="YAML check definitions (default: ./commit-gate.checks.yaml if present).",
    )
    parser.add_argument(
        "--preset",
        choices=PRESET_NAMES,
        default=None,
        help="Built-in checklist used when no checks file is present.",
    )
    parser.add_argument(
        "--max-concurrency",
        type=_non_negative_int,
        default=None,
        metavar="N",
        help="Run at most N checks at once (0 = unbounded).",
    )
    parser.add_argument(
        "--include-advisory",
        action="store_true",
        default=None,
        help="Add the preset's advisory checks (never block the commit).",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log progress events (INFO) to stderr or the log file.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Write JSON-lines logs to this file instead of stderr.",
    )
    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, run the checks and return the process exit code."""

    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    renderer = create_renderer(no_color=args.no_color)
    try:
        return _run(args, renderer)
    except CLIError as exc:
        renderer.error(str(exc))
        return exc.exit_code


def _run(args: argparse.Namespace, renderer: CLIRenderer) -> int:
    try:
        config = load_config(args.config_path, cli_overrides=_cli_overrides(args))
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc)) from exc

    if not config["report"]["color"] and not args.no_color:
        renderer = create_renderer(no_color=True)

    setup_logging(LoggingConfig.from_mapping(config["observability"]))
    try:
        try:
            registry = build_registry(config)
        except ConfigurationError as exc:
            raise CLIError(str(exc)) from exc

        if args.list_checks:
            renderer.check_list(registry)
            return 0

        report = asyncio.run(_run_checks(registry, config))
        if config["report"]["format"] == "json":
            renderer.json(report_to_json(report))
        else:
            renderer.report(report, max_summary_lines=config["report"]["max_summary_lines"])
        return report.exit_code
    finally:
        shutdown_logging()


async def _run_checks(registry: CheckRegistry, config: dict[str, Any]) -> Report:
    runner_section = config["runner"]
    logger = structlog.get_logger("commit_gate.ui.cli")
    orchestrator = Orchestrator(
        registry,
        CheckRunner(max_output_chars=runner_section["max_output_chars"]),
        max_concurrency=runner_section["max_concurrency"],
    )
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    installed = _install_interrupt_handler(loop, token)
    logger.info("run_started", check_ids=list(registry.ids()), interrupt_handler=installed)
    try:
        return await orchestrator.run(token)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _install_interrupt_handler(loop: asyncio.AbstractEventLoop, token: CancellationToken) -> bool:
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted (SIGINT)")
    except (NotImplementedError, RuntimeError, ValueError):
        return False
    return True


def _cli_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {
        "checks.file": args.checks_file,
        "checks.preset": args.preset,
        "checks.include_advisory": args.include_advisory,
        "runner.max_concurrency": args.max_concurrency,
        "report.format": args.output_format,
        "observability.log_file": args.log_file,
    }
    if args.only:
        overrides["checks.only"] = _split_ids(args.only)
    if args.skip:
        overrides["checks.skip"] = _split_ids(args.skip)
    if args.no_color:
        overrides["report.color"] = False
    if args.verbose:
        overrides["observability.log_level"] = "INFO"
    return {key: value for key, value in overrides.items() if value is not None}


def _split_ids(values: Sequence[str]) -> list[str]:
    parsed: list[str] = []
    for value in values:
        for item in value.split(","):
            cleaned = item.strip()
            if cleaned and cleaned not in parsed:
                parsed.append(cleaned)
    return parsed


def _non_negative_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {raw!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return value


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(argv)


__all__ = ["CLIError", "build_parser", "main", "run_cli"]


if __name__ == "__main__":
    sys.exit(run_cli())
