"""
Schema definitions for Tollgate.

This module defines the Pydantic models that cross the boundary of the core:
- PolicyContext: A proposed operation to judge
- PolicyResult/RuleMatch: The verdict and the rules behind it
- SecretScanResult/RiskScanResult/PathScanResult: Guardian findings
- SandboxOptions/SandboxResult/SandboxStats: Sandbox configuration, outcome
  and counters

PolicyRule lives in tollgate.policy.rules because it carries the condition
union, which depends on the pattern catalog.

Design Decisions:
    - Closed vocabularies are str Enums so they serialize as plain strings
    - Values are frozen; a context is never mutated after creation
    - Unknown fields are rejected (extra="forbid")
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================


class Decision(str, Enum):
    """
    Verdict on a proposed operation.

    Severity order, highest first: BLOCK > NEEDS_APPROVAL > WARN > ALLOW.
    """

    ALLOW = "allow"
    WARN = "warn"
    NEEDS_APPROVAL = "needs_approval"
    BLOCK = "block"

    @property
    def severity(self) -> int:
        """Position in the severity order (higher is more severe)."""
        return _DECISION_SEVERITY[self]

    @classmethod
    def most_severe(cls, decisions: "list[Decision]") -> "Decision":
        """Reduce decisions to the most severe one; ALLOW when empty."""
        if not decisions:
            return cls.ALLOW
        return max(decisions, key=lambda d: d.severity)


_DECISION_SEVERITY = {
    Decision.ALLOW: 0,
    Decision.WARN: 1,
    Decision.NEEDS_APPROVAL: 2,
    Decision.BLOCK: 3,
}


class Operation(str, Enum):
    """Kind of operation an agent proposes."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    EXEC = "exec"


class ApprovalMode(str, Enum):
    """How aggressively operations require human confirmation."""

    STRICT = "strict"
    BALANCED = "balanced"
    FAST = "fast"


class TargetKind(str, Enum):
    """What part of the context a rule inspects."""

    PATH = "path"
    COMMAND = "command"
    CONTENT = "content"


class RiskLevel(str, Enum):
    """Severity of a detected risky construct."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskLevel.NONE: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
}


class PathIssueType(str, Enum):
    """Kinds of problems scan_path can report."""

    TRAVERSAL = "traversal"
    ABSOLUTE = "absolute"
    DENYLIST = "denylist"


class SandboxErrorType(str, Enum):
    """Classification of a failed sandbox execution."""

    TIMEOUT = "timeout"
    MEMORY = "memory"
    SYNTAX = "syntax"
    RUNTIME = "runtime"
    SECURITY = "security"


# =============================================================================
# Policy Models
# =============================================================================


class PolicyContext(BaseModel):
    """
    A proposed operation, built once per call and never mutated.

    Attributes:
        operation: read, write, delete or exec
        path: Target path for filesystem operations
        command: Command line for exec operations
        content: Payload being written or executed
        working_directory: Root the agent is confined to
        approval_mode: strict, balanced or fast
        user_id: Optional identifier of the requesting user
        metadata: Free-form caller data, ignored by the default rules
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    operation: Operation = Field(..., description="Operation being proposed")
    path: str | None = Field(default=None, description="Target path")
    command: str | None = Field(default=None, description="Command line for exec")
    content: str | None = Field(default=None, description="Payload text")
    working_directory: str = Field(..., description="Root the agent is confined to")
    approval_mode: ApprovalMode = Field(
        default=ApprovalMode.BALANCED,
        description="Approval mode in effect",
    )
    user_id: str | None = Field(default=None, description="Requesting user")
    metadata: dict[str, Any] | None = Field(default=None, description="Caller data")


class RuleMatch(BaseModel):
    """A rule whose condition held, with the reason it was recorded."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    # Typed loosely to avoid a cycle with tollgate.policy.rules
    rule: Any = Field(..., description="The PolicyRule that matched")
    reason: str = Field(..., description="Why the rule matched")


class PolicyResult(BaseModel):
    """
    Outcome of evaluating a context against every registered rule.

    Invariant: decision is the most severe action among matched_rules,
    or ALLOW when nothing matched.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    decision: Decision = Field(..., description="Final verdict")
    matched_rules: list[RuleMatch] = Field(
        default_factory=list,
        description="Matched rules in evaluation order",
    )
    requires_approval: bool = Field(default=False)
    blocked: bool = Field(default=False)
    warnings: list[str] = Field(default_factory=list)


# =============================================================================
# Guardian Models
# =============================================================================


class SecretFinding(BaseModel):
    """One secret located in scanned content."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = Field(..., description="Catalog name of the pattern")
    pattern: str = Field(..., description="Human description of the pattern")
    match: str = Field(..., description="Truncated preview of the match")
    redacted: str = Field(..., description="Redacted form of the full match")
    line: int = Field(..., description="1-based line of the match", ge=1)


class SecretScanResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    found: bool
    secrets: list[SecretFinding] = Field(default_factory=list)


class RiskFinding(BaseModel):
    """One risky construct located in scanned content."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str = Field(..., description="Catalog name of the pattern")
    risk: RiskLevel = Field(..., description="Risk level of the construct")
    description: str = Field(..., description="Human description")
    line: int = Field(..., description="1-based line of the match", ge=1)


class RiskScanResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    found: bool
    risks: list[RiskFinding] = Field(default_factory=list)


class PathIssue(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: PathIssueType
    message: str
    path: str


class PathScanResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    safe: bool
    issues: list[PathIssue] = Field(default_factory=list)


# =============================================================================
# Sandbox Models
# =============================================================================


class SandboxOptions(BaseModel):
    """
    Limits and extra globals for one sandbox.

    Attributes:
        timeout_ms: Wall-clock deadline per execution
        memory_limit_bytes: Address-space budget for the worker process
        max_stack_depth: Maximum number of function definition sites
        allow_async: Whether execute_async may run
        globals: Extra names exposed to every fragment
        working_directory: Informational; fragments have no filesystem access
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timeout_ms: int = Field(default=5000, gt=0)
    memory_limit_bytes: int = Field(default=64 * 1024 * 1024, gt=0)
    max_stack_depth: int = Field(default=100, ge=0)
    allow_async: bool = Field(default=False)
    globals: dict[str, Any] | None = Field(default=None)
    working_directory: str | None = Field(default=None)


class SandboxResult(BaseModel):
    """Outcome of a sandbox execution. Failures are reported, never raised."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    success: bool
    result: Any | None = None
    error: str | None = None
    error_type: SandboxErrorType | None = None
    execution_time_ms: float = Field(default=0.0, ge=0)
    memory_used_bytes: int | None = None

    @classmethod
    def ok(
        cls,
        result: Any,
        execution_time_ms: float,
        memory_used_bytes: int | None = None,
    ) -> "SandboxResult":
        """Create a successful result."""
        return cls(
            success=True,
            result=result,
            execution_time_ms=execution_time_ms,
            memory_used_bytes=memory_used_bytes,
        )

    @classmethod
    def fail(
        cls,
        error: str,
        error_type: SandboxErrorType,
        execution_time_ms: float = 0.0,
        memory_used_bytes: int | None = None,
    ) -> "SandboxResult":
        """Create a failed result."""
        return cls(
            success=False,
            error=error,
            error_type=error_type,
            execution_time_ms=execution_time_ms,
            memory_used_bytes=memory_used_bytes,
        )


class SandboxStats(BaseModel):
    """Execution counters for one sandbox instance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., description="Sandbox instance id")
    execution_count: int = Field(default=0, ge=0)
    total_execution_time_ms: float = Field(default=0.0, ge=0)
    average_execution_time_ms: float = Field(default=0.0, ge=0)
