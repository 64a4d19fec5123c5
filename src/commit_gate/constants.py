"""Stable constants shared across commit-gate modules."""

from __future__ import annotations

from typing import Final

CONFIG_SCHEMA_VERSION: Final[int] = 1

DEFAULT_CONFIG_FILE: Final[str] = "commit-gate.toml"
ENV_PREFIX: Final[str] = "COMMIT_GATE_"

REPORT_FORMATS: Final[tuple[str, ...]] = ("json", "text")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")
TIMEOUT_VERDICTS: Final[tuple[str, ...]] = ("fail", "warn")

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "REPORT_FORMATS",
    "TIMEOUT_VERDICTS",
]
