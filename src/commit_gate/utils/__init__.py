"""Utility exports for concurrency helpers."""

from commit_gate.utils.concurrency import (
    BoundedSemaphore,
    CancellationToken,
    cancel_and_drain,
    wait_all,
)

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "cancel_and_drain",
    "wait_all",
]
