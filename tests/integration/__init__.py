"""Integration tests that drive commit-gate through real subprocesses."""
