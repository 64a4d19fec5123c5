"""
commit-gate: orchestrator

File: src/commit_gate/orchestrator.py

Purpose
- Run every registered check concurrently, classify each result and aggregate them
  into one ``Report``.

Normative behavior
- Lifecycle: ``idle -> running -> aggregating -> done``; an instance runs once.
- One task per check, optionally capped by a bounded semaphore. A failing, timing
  out or crashing check never cancels its siblings.
- Caller cancellation terminates in-flight checks; each is recorded as a cancelled
  ``error`` outcome and the report is marked ``cancelled``.
- Outcomes are assembled in registration order regardless of completion order.
- ``overall_verdict`` is ``fail`` iff any outcome is ``fail`` or ``error``, else
  ``warn`` iff any outcome is ``warn``, else ``pass``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import structlog

from commit_gate.checks.base import CheckOutcome, CheckSpec, JSONValue, RawResult, Verdict
from commit_gate.checks.classifiers import classify
from commit_gate.checks.registry import CheckRegistry
from commit_gate.checks.runner import CheckRunner
from commit_gate.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    cancel_and_drain,
    wait_all,
)

VERDICT_ORDER: tuple[Verdict, ...] = (Verdict.PASS, Verdict.WARN, Verdict.FAIL, Verdict.ERROR)


class RunState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    DONE = "done"


def aggregate_verdict(verdicts: Iterable[Verdict | str]) -> Verdict:
    """Fold per-check verdicts into the overall verdict.

    ``error`` counts as ``fail`` at the aggregate level; an empty set passes.
    """

    seen = {Verdict(verdict) for verdict in verdicts}
    if Verdict.FAIL in seen or Verdict.ERROR in seen:
        return Verdict.FAIL
    if Verdict.WARN in seen:
        return Verdict.WARN
    return Verdict.PASS


@dataclass(frozen=True, slots=True)
class Report:
    """Ordered outcomes plus the overall verdict for one invocation."""

    outcomes: tuple[CheckOutcome, ...]
    overall_verdict: Verdict
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    cancelled: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "outcomes", tuple(self.outcomes))
        object.__setattr__(self, "overall_verdict", Verdict(self.overall_verdict))
        expected = aggregate_verdict(outcome.verdict for outcome in self.outcomes)
        if self.overall_verdict is not expected:
            raise ValueError(
                f"Report.overall_verdict: {self.overall_verdict.value!r} does not match "
                f"outcomes (expected {expected.value!r})"
            )
        if self.generated_at.tzinfo is None:
            raise ValueError("Report.generated_at: must be timezone-aware")

    @classmethod
    def from_outcomes(
        cls,
        outcomes: Iterable[CheckOutcome],
        *,
        cancelled: bool = False,
        generated_at: datetime | None = None,
    ) -> Report:
        materialized = tuple(outcomes)
        return cls(
            outcomes=materialized,
            overall_verdict=aggregate_verdict(outcome.verdict for outcome in materialized),
            generated_at=generated_at if generated_at is not None else datetime.now(UTC),
            cancelled=cancelled,
        )

    def counts(self) -> dict[str, int]:
        counts = {verdict.value: 0 for verdict in VERDICT_ORDER}
        for outcome in self.outcomes:
            counts[outcome.verdict.value] += 1
        return counts

    @property
    def exit_code(self) -> int:
        return 1 if self.overall_verdict is Verdict.FAIL else 0

    def outcome(self, check_id: str) -> CheckOutcome:
        for item in self.outcomes:
            if item.spec.id == check_id:
                return item
        raise KeyError(check_id)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "overall_verdict": self.overall_verdict.value,
            "cancelled": self.cancelled,
            "generated_at": self.generated_at.astimezone(UTC).isoformat(),
            "counts": dict(self.counts()),
            "exit_code": self.exit_code,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


class Orchestrator:
    """Single-use concurrent runner for one ``CheckRegistry``."""

    def __init__(
        self,
        registry: CheckRegistry,
        runner: CheckRunner | None = None,
        *,
        max_concurrency: int | None = None,
        logger: Any | None = None,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 0:
            raise ValueError("max_concurrency must be >= 0")
        self._registry = registry
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._runner = runner if runner is not None else CheckRunner(logger=self._logger)
        self._max_concurrency = max_concurrency or None
        self._token = CancellationToken()
        self._state = RunState.IDLE
        self._report: Report | None = None
        self._semaphore: BoundedSemaphore | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def report(self) -> Report | None:
        return self._report

    @property
    def semaphore(self) -> BoundedSemaphore | None:
        return self._semaphore

    def cancel(self, reason: str = "cancelled by caller") -> None:
        self._token.cancel(reason)

    async def run(self, cancel_token: CancellationToken | None = None) -> Report:
        if self._state is not RunState.IDLE:
            raise RuntimeError(f"orchestrator already used (state={self._state.value})")
        if cancel_token is not None:
            if self._token.is_cancelled:
                cancel_token.cancel(self._token.reason or "cancelled by caller")
            self._token = cancel_token
        token = self._token

        self._state = RunState.RUNNING
        started_ns = time.monotonic_ns()
        specs = self._registry.specs
        if self._max_concurrency is not None:
            self._semaphore = BoundedSemaphore(self._max_concurrency)

        tasks = [
            asyncio.create_task(self._run_one(spec), name=f"commit-gate:{spec.id}")
            for spec in specs
        ]
        try:
            interrupted = await wait_all(tasks, cancel_token=token)
        except asyncio.CancelledError:
            await cancel_and_drain(tasks)
            self._state = RunState.DONE
            raise
        if interrupted:
            self._logger.warning(
                "run_cancelled",
                reason=token.reason,
                pending=[spec.id for spec, task in zip(specs, tasks) if not task.done()],
            )
            await cancel_and_drain(tasks)

        self._state = RunState.AGGREGATING
        elapsed_ms = _elapsed_ms(started_ns)
        outcomes = tuple(
            self._collect(spec, task, elapsed_ms=elapsed_ms)
            for spec, task in zip(specs, tasks)
        )
        report = Report.from_outcomes(outcomes, cancelled=interrupted)
        self._report = report
        self._state = RunState.DONE
        self._logger.info(
            "run_finished",
            overall_verdict=report.overall_verdict.value,
            counts=report.counts(),
            cancelled=report.cancelled,
            duration_ms=_elapsed_ms(started_ns),
        )
        return report

    async def _run_one(self, spec: CheckSpec) -> CheckOutcome:
        if self._semaphore is None:
            raw = await self._execute(spec)
        else:
            async with self._semaphore.permit():
                raw = await self._execute(spec)
        outcome = classify(spec, raw)
        self._logger.info(
            "check_finished",
            check_id=spec.id,
            verdict=outcome.verdict.value,
            exit_code=raw.exit_code,
            timed_out=raw.timed_out,
            duration_ms=raw.duration_ms,
        )
        return outcome

    async def _execute(self, spec: CheckSpec) -> RawResult:
        self._logger.info("check_started", check_id=spec.id, command=spec.command.display)
        return await self._runner.run(spec)

    def _collect(
        self, spec: CheckSpec, task: asyncio.Task[CheckOutcome], *, elapsed_ms: int
    ) -> CheckOutcome:
        if task.cancelled():
            raw = RawResult.execution_failure(
                spec.id,
                "cancelled before completion",
                duration_ms=elapsed_ms,
                cancelled=True,
            )
            return classify(spec, raw)
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "check_crashed",
                check_id=spec.id,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raw = RawResult.execution_failure(
                spec.id,
                f"check task raised {type(exc).__name__}: {exc}",
                duration_ms=elapsed_ms,
            )
            return classify(spec, raw)
        return task.result()


def run_checks(
    registry: CheckRegistry,
    *,
    runner: CheckRunner | None = None,
    max_concurrency: int | None = None,
    cancel_token: CancellationToken | None = None,
    logger: Any | None = None,
) -> Report:
    """Blocking wrapper around ``Orchestrator.run`` for synchronous callers."""

    orchestrator = Orchestrator(registry, runner, max_concurrency=max_concurrency, logger=logger)
    return asyncio.run(orchestrator.run(cancel_token))


def _elapsed_ms(started_ns: int) -> int:
    return max(time.monotonic_ns() - started_ns, 0) // 1_000_000


__all__ = [
    "Orchestrator",
    "Report",
    "RunState",
    "VERDICT_ORDER",
    "aggregate_verdict",
    "run_checks",
]
