"""
commit-gate: check definitions, execution and classification

File: src/commit_gate/checks/__init__.py

Purpose
- Public surface of the check layer: data model, registry, runner and classifiers.
"""

from commit_gate.checks.base import (
    CheckOutcome,
    CheckSpec,
    Classification,
    Classifier,
    CommandSpec,
    RawResult,
    Verdict,
)
from commit_gate.checks.classifiers import (
    AdvisoryClassifier,
    BinaryClassifier,
    TestCountClassifier,
    WarningTierClassifier,
    build_classifier,
    classify,
    parse_test_counts,
)
from commit_gate.checks.registry import (
    DEFAULT_CHECKS_FILE,
    PRESET_NAMES,
    CheckRegistry,
    ConfigurationError,
    build_registry,
    load_check_file,
    preset_registry,
)
from commit_gate.checks.runner import (
    CheckRunner,
    CommandExecutor,
    CommandResult,
    LocalSubprocessExecutor,
)

__all__ = [
    "DEFAULT_CHECKS_FILE",
    "PRESET_NAMES",
    "AdvisoryClassifier",
    "BinaryClassifier",
    "CheckOutcome",
    "CheckRegistry",
    "CheckRunner",
    "CheckSpec",
    "Classification",
    "Classifier",
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "ConfigurationError",
    "LocalSubprocessExecutor",
    "RawResult",
    "TestCountClassifier",
    "Verdict",
    "WarningTierClassifier",
    "build_classifier",
    "build_registry",
    "classify",
    "load_check_file",
    "parse_test_counts",
    "preset_registry",
]
