"""
Guardian Gate for Tollgate.

The Guardian Gate scans content and paths before the policy engine or the
caller lets an operation through:
- scan_secrets: credentials and key material, with redacted previews
- scan_risks: risky code constructs with a risk level
- scan_path: traversal, escapes from the working directory, denylisted names
- redact_content: a copy of the content with every secret redacted

Design Principles:
    - Pure functions of their input: no I/O, no mutation of arguments
    - Never raise: a broken custom matcher is logged and skipped,
      the rest of the catalog still runs
    - Copy-on-write registries: add_secret_pattern/add_to_denylist swap in
      new tuples, so concurrent scans always see a consistent snapshot
"""

import logging
import re
import threading

from tollgate.errors import PatternError
from tollgate.guardian.paths import (
    file_name,
    has_traversal_segment,
    is_absolute_path,
    is_within,
    normalize_path,
)
from tollgate.patterns import (
    FILE_DENYLIST,
    RISKY_PATTERNS,
    SECRET_PATTERNS,
    compile_pattern,
    glob_to_regex,
)
from tollgate.schema import (
    Decision,
    Operation,
    PathIssue,
    PathIssueType,
    PathScanResult,
    RiskFinding,
    RiskLevel,
    RiskScanResult,
    SecretFinding,
    SecretScanResult,
)

logger = logging.getLogger(__name__)

CUSTOM_PATTERN_DESCRIPTION = "Custom pattern"
PREVIEW_LENGTH = 20


def redact_secret(value: str) -> str:
    """
    Redact a secret value.

    Values of 8 characters or fewer are replaced entirely; longer ones keep
    their first and last 4 characters so a leaked key can still be
    identified.
    """
    if len(value) <= 8:
        return "***"
    return value[:4] + "***" + value[-4:]


def line_number(content: str, index: int) -> int:
    """1-based line number of a character offset."""
    return content.count("\n", 0, index) + 1


class GuardianGate:
    """
    Security scanner for content and paths.

    Usage:
        gate = GuardianGate()
        result = gate.scan_secrets(payload)
        if result.found:
            payload = gate.redact_content(payload)

    Attributes:
        _custom_secrets: (name, compiled pattern) pairs added at runtime
        _custom_denylist: (glob, compiled matcher) pairs added at runtime
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._custom_secrets: tuple[tuple[str, re.Pattern[str]], ...] = ()
        self._custom_denylist: tuple[tuple[str, re.Pattern[str]], ...] = ()
        self._catalog_denylist = tuple((g, glob_to_regex(g)) for g in FILE_DENYLIST)

    # =========================================================================
    # Registry
    # =========================================================================

    def add_secret_pattern(self, name: str, pattern: str | re.Pattern[str], flags: int = 0) -> bool:
        """
        Register a custom secret pattern.

        Args:
            name: Reported as the finding type
            pattern: A compiled pattern or regex source
            flags: re flags, used only when pattern is a string

        Returns:
            True if the pattern was added, False if it was malformed
        """
        try:
            compiled = pattern if isinstance(pattern, re.Pattern) else compile_pattern(pattern, flags, name)
        except PatternError as e:
            logger.warning("Skipping custom secret pattern: %s", e.message)
            return False

        with self._lock:
            self._custom_secrets = (*self._custom_secrets, (name, compiled))
        return True

    def add_to_denylist(self, glob: str) -> bool:
        """Add a file-name glob to the denylist. Returns False for an empty glob."""
        try:
            matcher = glob_to_regex(glob)
        except PatternError as e:
            logger.warning("Skipping denylist entry: %s", e.message)
            return False

        with self._lock:
            self._custom_denylist = (*self._custom_denylist, (glob, matcher))
        return True

    @property
    def custom_secret_names(self) -> list[str]:
        return [name for name, _ in self._custom_secrets]

    @property
    def denylist(self) -> list[str]:
        """Every denylist glob, catalog first."""
        return [g for g, _ in self._catalog_denylist + self._custom_denylist]

    def _secret_matchers(self) -> list[tuple[str, str, re.Pattern[str], bool]]:
        """(type, description, pattern, is_custom) for catalog and custom patterns."""
        matchers = [(p.name, p.description, p.pattern, False) for p in SECRET_PATTERNS]
        matchers.extend(
            (name, CUSTOM_PATTERN_DESCRIPTION, pattern, True)
            for name, pattern in self._custom_secrets
        )
        return matchers

    # =========================================================================
    # Content scanning
    # =========================================================================

    def scan_secrets(self, content: str) -> SecretScanResult:
        """Report every secret match in the content, catalog first."""
        secrets: list[SecretFinding] = []

        for name, description, pattern, is_custom in self._secret_matchers():
            try:
                for match in pattern.finditer(content):
                    value = match.group(0)
                    secrets.append(
                        SecretFinding(
                            type=name,
                            pattern=description,
                            match=value[:PREVIEW_LENGTH] + "...",
                            redacted=redact_secret(value),
                            line=line_number(content, match.start()),
                        )
                    )
            except Exception as e:
                if not is_custom:
                    raise
                logger.warning("Custom secret pattern %s failed: %s", name, e)

        return SecretScanResult(found=bool(secrets), secrets=secrets)

    def has_secrets(self, content: str) -> bool:
        """True if any secret matcher finds something."""
        for name, _, pattern, is_custom in self._secret_matchers():
            try:
                if pattern.search(content):
                    return True
            except Exception as e:
                if not is_custom:
                    raise
                logger.warning("Custom secret pattern %s failed: %s", name, e)
        return False

    def scan_risks(self, content: str) -> RiskScanResult:
        """Report every risky construct in the content."""
        risks = [
            RiskFinding(
                type=p.name,
                risk=p.risk,
                description=p.description,
                line=line_number(content, match.start()),
            )
            for p in RISKY_PATTERNS
            for match in p.pattern.finditer(content)
        ]
        return RiskScanResult(found=bool(risks), risks=risks)

    def redact_content(self, content: str) -> str:
        """Return a copy of the content with every secret match redacted."""
        redacted = content
        for name, _, pattern, is_custom in self._secret_matchers():
            try:
                redacted = pattern.sub(lambda m: redact_secret(m.group(0)), redacted)
            except Exception as e:
                if not is_custom:
                    raise
                logger.warning("Custom secret pattern %s failed: %s", name, e)
        return redacted

    # =========================================================================
    # Path scanning
    # =========================================================================

    def scan_path(self, path: str, working_directory: str) -> PathScanResult:
        """
        Check a path for traversal, escape and denylisted names.

        Security checks performed:
        1. A ".." segment anywhere in the path (traversal)
        2. An absolute path outside the working directory (absolute)
        3. A file name matching the denylist (denylist, first match only)
        """
        issues: list[PathIssue] = []
        normalized = normalize_path(path)

        if has_traversal_segment(normalized):
            issues.append(
                PathIssue(
                    type=PathIssueType.TRAVERSAL,
                    message="Path contains directory traversal sequence",
                    path=path,
                )
            )

        if is_absolute_path(normalized) and not is_within(normalized, working_directory):
            issues.append(
                PathIssue(
                    type=PathIssueType.ABSOLUTE,
                    message="Absolute path is outside working directory",
                    path=path,
                )
            )

        name = file_name(normalized)
        for glob, matcher in self._catalog_denylist + self._custom_denylist:
            if matcher.match(name):
                issues.append(
                    PathIssue(
                        type=PathIssueType.DENYLIST,
                        message=f"File matches denylist pattern: {glob}",
                        path=path,
                    )
                )
                break

        return PathScanResult(safe=not issues, issues=issues)

    # =========================================================================
    # Verdicts
    # =========================================================================

    def get_risk_level(self, content: str) -> RiskLevel:
        """High if any secret is present, else the highest risky-construct level."""
        if self.has_secrets(content):
            return RiskLevel.HIGH

        risks = self.scan_risks(content).risks
        if not risks:
            return RiskLevel.NONE
        return max((r.risk for r in risks), key=lambda level: level.rank)

    def determine_decision(self, content: str, operation: Operation | str) -> Decision:
        """
        Suggest a decision for content carried by an operation.

        - Secrets on anything but a read: BLOCK
        - A high-risk construct: WARN on read, NEEDS_APPROVAL otherwise
        - A medium-risk construct on anything but a read: NEEDS_APPROVAL
        - Otherwise: ALLOW
        """
        operation = Operation(operation)
        is_read = operation == Operation.READ

        if not is_read and self.has_secrets(content):
            return Decision.BLOCK

        levels = {r.risk for r in self.scan_risks(content).risks}
        if RiskLevel.HIGH in levels:
            return Decision.WARN if is_read else Decision.NEEDS_APPROVAL
        if RiskLevel.MEDIUM in levels and not is_read:
            return Decision.NEEDS_APPROVAL

        return Decision.ALLOW


def create_guardian_gate() -> GuardianGate:
    """Create a GuardianGate instance."""
    return GuardianGate()
