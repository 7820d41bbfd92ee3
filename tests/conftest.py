"""
Pytest configuration and fixtures for Tollgate tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from tollgate.guardian import GuardianGate
from tollgate.policy import PolicyEngine
from tollgate.schema import ApprovalMode, Operation, PolicyContext

REPO_ROOT = "/repo"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def gate() -> GuardianGate:
    """A guardian with only the built-in catalog."""
    return GuardianGate()


@pytest.fixture
def engine() -> PolicyEngine:
    """A policy engine with only the default rules."""
    return PolicyEngine()


@pytest.fixture
def make_context():
    """Factory for PolicyContext rooted at /repo, balanced mode by default."""

    def _make(
        operation: Operation | str,
        path: str | None = None,
        command: str | None = None,
        content: str | None = None,
        mode: ApprovalMode | str = ApprovalMode.BALANCED,
    ) -> PolicyContext:
        return PolicyContext(
            operation=Operation(operation),
            path=path,
            command=command,
            content=content,
            working_directory=REPO_ROOT,
            approval_mode=ApprovalMode(mode),
        )

    return _make


@pytest.fixture
def sample_config_yaml() -> str:
    """A configuration exercising every section."""
    return """
approval_mode: fast
working_directory: /repo
include_default_rules: true
custom_secret_patterns:
  - name: internal_token
    pattern: "itk_[A-Za-z0-9]{24}"
custom_denylist:
  - "*.kdbx"
rules:
  - id: warn-on-lockfile
    name: Lockfile edit
    description: Lockfiles are generated
    target: path
    action: warn
    priority: 30
    condition:
      kind: all_of
      conditions:
        - kind: operation_in
          operations: [write]
        - kind: path_denylisted
          extra_globs: ["*.lock"]
sandbox:
  profile: minimal
  overrides:
    timeout_ms: 500
"""
