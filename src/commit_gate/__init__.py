"""
commit-gate: run a repository's pre-commit checklist concurrently.

Purpose
- Package root. Defines package-level metadata and keeps the public surface small.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
