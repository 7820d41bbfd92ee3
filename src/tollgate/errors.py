"""
Exception hierarchy for Tollgate.

All Tollgate exceptions inherit from TollgateError, allowing callers to catch
all Tollgate-specific exceptions with a single except clause.

None of these cross the public boundary of the scanning, policy or sandbox
APIs: those always return structured results. They are raised internally and
recovered where the failure is local (a bad custom pattern, a rule predicate
that throws, a rejected fragment), and raised to the caller only when loading
configuration.

Exception Categories:
    - PatternError: A caller-supplied pattern could not be compiled
    - RuleEvaluationError: A rule condition raised during evaluation
    - SandboxRejectedError: A fragment failed static validation
    - ConfigError: A configuration file is missing or invalid
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Pattern errors: 1xxx
ERROR_PATTERN_INVALID = 1001
ERROR_PATTERN_GLOB_INVALID = 1002

# Rule errors: 2xxx
ERROR_RULE_EVALUATION = 2001

# Sandbox errors: 3xxx
ERROR_SANDBOX_FORBIDDEN_CONSTRUCT = 3001
ERROR_SANDBOX_NESTING_BUDGET = 3002
ERROR_SANDBOX_ASYNC_DISABLED = 3003

# Config errors: 4xxx
ERROR_CONFIG_NOT_FOUND = 4001
ERROR_CONFIG_INVALID = 4002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class TollgateError(Exception):
    """
    Base exception for all Tollgate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Pattern Errors
# =============================================================================


@dataclass
class PatternError(TollgateError):
    """
    Raised when a custom secret pattern or denylist glob is malformed.

    Attributes:
        name: Name the caller gave the pattern
        source: The pattern source text
        underlying_error: What the regex compiler reported
    """

    name: str = ""
    source: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid pattern {self.name or self.source!r}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_PATTERN_INVALID
        if not self.suggestion:
            self.suggestion = "Check the pattern against Python's re syntax"
        self.context.update({
            "name": self.name,
            "source": self.source,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Rule Errors
# =============================================================================


@dataclass
class RuleEvaluationError(TollgateError):
    """Raised when a rule condition fails; the engine logs it and skips the rule."""

    rule_id: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Error evaluating rule {self.rule_id}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_RULE_EVALUATION
        self.context.update({
            "rule_id": self.rule_id,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Sandbox Errors
# =============================================================================


@dataclass
class SandboxRejectedError(TollgateError):
    """
    Raised by static validation when a fragment must not run.

    The sandbox converts this into a result with error_type "security".

    Attributes:
        construct: The forbidden construct that was found
        line: 1-based line of the construct, when known
    """

    construct: str = ""
    line: int | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"{self.construct} is not allowed"
        if self.code == 0:
            self.code = ERROR_SANDBOX_FORBIDDEN_CONSTRUCT
        self.context.update({
            "construct": self.construct,
            "line": self.line,
        })


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(TollgateError):
    """Raised when a configuration file cannot be loaded or validated."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            where = self.path or "<string>"
            self.message = f"Invalid configuration in {where}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })
