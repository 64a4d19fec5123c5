"""
commit-gate: check runner

File: src/commit_gate/checks/runner.py

Purpose
- Execute one ``CheckSpec`` as an external process and capture a ``RawResult``.

What should be included in this file
- ``CommandExecutor`` protocol so tests can substitute an in-memory executor.
- ``LocalSubprocessExecutor`` built on ``asyncio.create_subprocess_exec`` with separate
  stdout/stderr pipes, stdin from ``/dev/null`` and a hard per-command deadline.
- ``CheckRunner`` mapping executor results (and executor crashes) to ``RawResult``.

Functional requirements
- A non-zero exit code is data, never an exception.
- On timeout the process (its whole process group on POSIX) is killed and the output
  captured so far is kept.
- A missing program, unusable working directory or spawn failure yields an
  execution-error ``RawResult``.
- Cancellation of the awaiting task kills the process and re-raises.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import signal
import time
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import Any, Final, Protocol, runtime_checkable

import structlog

from commit_gate.checks.base import CheckSpec, CommandSpec, JSONValue, RawResult

DEFAULT_MAX_OUTPUT_CHARS: Final[int] = 200_000
_READ_CHUNK_BYTES: Final[int] = 64 * 1024
_KILL_GRACE_SECONDS: Final[float] = 5.0
_POSIX: Final[bool] = os.name == "posix"


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of one process execution."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "argv": list(self.argv),
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "error": self.error,
        }


@runtime_checkable
class CommandExecutor(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, command: CommandSpec, *, timeout_seconds: float) -> CommandResult: ...


class LocalSubprocessExecutor(CommandExecutor):
    """Run commands as local subprocesses with deterministic capture and timeout."""

    def __init__(
        self,
        *,
        max_output_chars: int | None = DEFAULT_MAX_OUTPUT_CHARS,
        kill_grace_seconds: float = _KILL_GRACE_SECONDS,
    ) -> None:
        if max_output_chars is not None and max_output_chars <= 0:
            raise ValueError("max_output_chars must be > 0")
        if kill_grace_seconds <= 0:
            raise ValueError("kill_grace_seconds must be > 0")
        self._max_output_chars = max_output_chars
        self._kill_grace_seconds = kill_grace_seconds

    async def run(self, command: CommandSpec, *, timeout_seconds: float) -> CommandResult:
        started_ns = time.monotonic_ns()
        env = command.build_env()

        if command.cwd is not None and not os.path.isdir(command.cwd):
            return self._failure(
                command, started_ns, f"working directory does not exist: {command.cwd}"
            )
        executable = _resolve_program(command.program, env=env, cwd=command.cwd)
        if executable is None:
            return self._failure(command, started_ns, f"program not found: {command.program}")

        try:
            process = await asyncio.create_subprocess_exec(
                executable,
                *command.args,
                cwd=command.cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except OSError as exc:
            return self._failure(command, started_ns, f"failed to start {command.program}: {exc}")

        stdout_buffer = bytearray()
        stderr_buffer = bytearray()
        assert process.stdout is not None and process.stderr is not None
        readers = [
            asyncio.create_task(_drain(process.stdout, stdout_buffer)),
            asyncio.create_task(_drain(process.stderr, stderr_buffer)),
        ]

        timed_out = False
        try:
            async with asyncio.timeout(timeout_seconds):
                await process.wait()
                await asyncio.gather(*readers)
        except TimeoutError:
            timed_out = True
            _kill_process_tree(process)
            await self._reap(process, readers)
        except asyncio.CancelledError:
            _kill_process_tree(process)
            await self._reap(process, readers)
            raise

        stdout_text = _normalize_output_text(bytes(stdout_buffer))
        stderr_text = _normalize_output_text(bytes(stderr_buffer))
        return CommandResult(
            argv=command.argv,
            exit_code=None if timed_out else process.returncode,
            stdout=_truncate_text(stdout_text, self._max_output_chars),
            stderr=_truncate_text(stderr_text, self._max_output_chars),
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            error=f"command timed out after {timeout_seconds:.3f}s" if timed_out else None,
        )

    async def _reap(
        self, process: asyncio.subprocess.Process, readers: Sequence[asyncio.Task[None]]
    ) -> None:
        # Descendants that escaped the process group can hold the pipes open.
        try:
            async with asyncio.timeout(self._kill_grace_seconds):
                await process.wait()
                await asyncio.gather(*readers, return_exceptions=True)
        except TimeoutError:
            pass
        finally:
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)

    def _failure(self, command: CommandSpec, started_ns: int, message: str) -> CommandResult:
        return CommandResult(
            argv=command.argv,
            exit_code=None,
            stdout="",
            stderr="",
            duration_ms=_elapsed_ms(started_ns),
            error=message,
        )


class CheckRunner:
    """Turn a ``CheckSpec`` into a ``RawResult`` using a ``CommandExecutor``."""

    def __init__(
        self,
        executor: CommandExecutor | None = None,
        *,
        max_output_chars: int | None = DEFAULT_MAX_OUTPUT_CHARS,
        logger: Any | None = None,
    ) -> None:
        self._executor = (
            executor
            if executor is not None
            else LocalSubprocessExecutor(max_output_chars=max_output_chars)
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def executor(self) -> CommandExecutor:
        return self._executor

    async def run(self, spec: CheckSpec) -> RawResult:
        started_ns = time.monotonic_ns()
        try:
            result = await self._executor.run(spec.command, timeout_seconds=spec.timeout_seconds)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "check_execution_error",
                check_id=spec.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return RawResult.execution_failure(
                spec.id,
                f"executor raised {type(exc).__name__}: {exc}",
                duration_ms=_elapsed_ms(started_ns),
            )

        if result.timed_out:
            return RawResult(
                check_id=spec.id,
                exit_code=None,
                stdout=result.stdout,
                stderr=result.stderr,
                duration_ms=result.duration_ms,
                timed_out=True,
            )
        if result.error is not None or result.exit_code is None:
            message = result.error or "process finished without an exit status"
            self._logger.warning("check_execution_error", check_id=spec.id, error=message)
            return RawResult.execution_failure(
                spec.id,
                message if not result.stderr else f"{message}\n{result.stderr}",
                duration_ms=result.duration_ms,
                stdout=result.stdout,
            )
        return RawResult(
            check_id=spec.id,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            duration_ms=result.duration_ms,
        )


def _resolve_program(program: str, *, env: dict[str, str] | None, cwd: str | None) -> str | None:
    if os.sep in program or (os.altsep is not None and os.altsep in program):
        candidate = program
        if cwd is not None and not os.path.isabs(candidate):
            candidate = os.path.join(cwd, candidate)
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
        return None
    search_path = None if env is None else env.get("PATH", os.defpath)
    return shutil.which(program, path=search_path)


async def _drain(stream: asyncio.StreamReader, sink: bytearray) -> None:
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return
        sink.extend(chunk)


def _kill_process_tree(process: asyncio.subprocess.Process) -> None:
    # The group outlives its leader while descendants still run.
    if _POSIX:
        with suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
    if process.returncode is None:
        with suppress(ProcessLookupError):
            process.kill()


def _elapsed_ms(started_ns: int) -> int:
    delta_ns = time.monotonic_ns() - started_ns
    if delta_ns < 0:
        return 0
    return delta_ns // 1_000_000


def _normalize_output_text(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _truncate_text(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    omitted = len(text) - max_chars
    return f"{text[:max_chars]}\n...[truncated {omitted} chars]"


__all__ = [
    "CheckRunner",
    "CommandExecutor",
    "CommandResult",
    "DEFAULT_MAX_OUTPUT_CHARS",
    "LocalSubprocessExecutor",
]
