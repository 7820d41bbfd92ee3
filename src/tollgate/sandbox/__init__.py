"""
Sandbox module for Tollgate.

Runs short untrusted Python fragments with a curated namespace, static
validation, a memory-limited worker process and a hard deadline.
"""

from tollgate.sandbox.sandbox import (
    SANDBOX_PROFILES,
    Sandbox,
    classify_error,
    create_sandbox,
    sandbox_execute,
)
from tollgate.sandbox.validator import validate_fragment

__all__ = [
    "SANDBOX_PROFILES",
    "Sandbox",
    "classify_error",
    "create_sandbox",
    "sandbox_execute",
    "validate_fragment",
]
