"""Public observability primitives: structured logging setup and redaction."""

from commit_gate.observability.logging import (
    DEFAULT_LOGGER_NAME,
    LoggingConfig,
    LogRedactor,
    default_log_redactor,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "DEFAULT_LOGGER_NAME",
    "LogRedactor",
    "LoggingConfig",
    "default_log_redactor",
    "setup_logging",
    "shutdown_logging",
]
