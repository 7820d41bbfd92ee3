"""
Guardian Gate module for Tollgate.

Scans text and paths for secrets, risky constructs and unsafe locations,
and redacts secrets. The policy engine's content and path rules build on the
same pattern catalog; callers combine both verdicts for write and exec
operations that carry a payload.
"""

from tollgate.guardian.gate import GuardianGate, create_guardian_gate, redact_secret

__all__ = [
    "GuardianGate",
    "create_guardian_gate",
    "redact_secret",
]
