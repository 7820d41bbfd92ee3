"""
Policy Engine for Tollgate.

The Policy Engine is the decision point of Tollgate. Every proposed read,
write, delete or exec is described by a PolicyContext and evaluated against
all registered rules.

Design Principles:
    - Every rule is evaluated: the verdict does not depend on which rule
      fires first, only on the most severe action that fired
    - Fixed severity order: BLOCK > NEEDS_APPROVAL > WARN > ALLOW
    - No match means ALLOW
    - A rule that raises is logged and skipped; evaluation continues
    - Copy-on-write registry: mutation swaps a new dict in under a lock, so
      concurrent evaluations always read a consistent snapshot

How it works:
    1. Snapshot the registry and sort rules by priority, highest first
       (insertion order breaks ties)
    2. Evaluate each rule's condition against the context
    3. Record every match; WARN matches also become warnings
    4. Reduce the matched actions to the most severe one
"""

import logging
import threading
from collections.abc import Iterable

from tollgate.errors import RuleEvaluationError
from tollgate.policy.defaults import DEFAULT_RULES
from tollgate.policy.rules import PolicyRule
from tollgate.schema import Decision, PolicyContext, PolicyResult, RuleMatch

logger = logging.getLogger(__name__)


class PolicyEngine:
    """
    Central rule evaluator for Tollgate.

    Usage:
        engine = PolicyEngine()
        result = engine.evaluate(PolicyContext(
            operation=Operation.EXEC,
            command="git status",
            working_directory="/repo",
            approval_mode=ApprovalMode.FAST,
        ))
        if result.blocked:
            # refuse, explain with engine.get_block_reason(...)
        elif result.requires_approval:
            # queue for a human

    Attributes:
        _rules: Mapping of rule id to rule, replaced wholesale on mutation
    """

    def __init__(
        self,
        initial_rules: Iterable[PolicyRule] = (),
        include_defaults: bool = True,
    ) -> None:
        """
        Initialize the policy engine.

        Args:
            initial_rules: Rules registered after the defaults (same ids replace them)
            include_defaults: Whether to start from DEFAULT_RULES
        """
        self._lock = threading.Lock()
        self._rules: dict[str, PolicyRule] = {}
        rules = [*DEFAULT_RULES, *initial_rules] if include_defaults else list(initial_rules)
        self.add_rules(rules)

    # =========================================================================
    # Registry
    # =========================================================================

    def add_rule(self, rule: PolicyRule) -> None:
        """Register a rule. An existing rule with the same id is replaced in place."""
        self.add_rules([rule])

    def add_rules(self, rules: Iterable[PolicyRule]) -> None:
        with self._lock:
            updated = dict(self._rules)
            for rule in rules:
                updated[rule.id] = rule
            self._rules = updated

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule. Returns False if no rule had that id."""
        with self._lock:
            if rule_id not in self._rules:
                return False
            updated = dict(self._rules)
            del updated[rule_id]
            self._rules = updated
        return True

    def get_rules(self) -> list[PolicyRule]:
        """Registered rules in insertion order."""
        return list(self._rules.values())

    def get_rule(self, rule_id: str) -> PolicyRule | None:
        return self._rules.get(rule_id)

    def with_rules(self, additional_rules: Iterable[PolicyRule]) -> "PolicyEngine":
        """
        Return a new engine holding this engine's rules plus additional_rules.

        The new engine owns an independent registry: mutating either engine
        afterwards does not affect the other. Defaults are not re-added, so a
        default rule removed from this engine stays removed.
        """
        return PolicyEngine(
            [*self._rules.values(), *additional_rules],
            include_defaults=False,
        )

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, context: PolicyContext) -> PolicyResult:
        """
        Evaluate a context against all rules.

        Args:
            context: The proposed operation

        Returns:
            PolicyResult with the final decision and every matched rule
        """
        snapshot = self._rules
        ordered = sorted(snapshot.values(), key=lambda r: r.priority, reverse=True)

        matched: list[RuleMatch] = []
        warnings: list[str] = []

        for rule in ordered:
            try:
                applies = rule.applies_to(context)
            except Exception as e:
                error = RuleEvaluationError(rule_id=rule.id, underlying_error=f"{type(e).__name__}: {e}")
                logger.error("%s", error.message)
                continue

            if not applies:
                continue

            matched.append(RuleMatch(rule=rule, reason=rule.description))
            if rule.action == Decision.WARN:
                warnings.append(f"{rule.name}: {rule.description}")

        decision = Decision.most_severe([m.rule.action for m in matched])
        if decision == Decision.BLOCK:
            logger.debug(
                "Blocked %s (%s)",
                context.operation.value,
                ", ".join(m.rule.id for m in matched if m.rule.action == Decision.BLOCK),
            )

        return PolicyResult(
            decision=decision,
            matched_rules=matched,
            requires_approval=decision == Decision.NEEDS_APPROVAL,
            blocked=decision == Decision.BLOCK,
            warnings=warnings,
        )

    def is_allowed(self, context: PolicyContext) -> bool:
        return self.evaluate(context).decision == Decision.ALLOW

    def needs_approval(self, context: PolicyContext) -> bool:
        return self.evaluate(context).requires_approval

    def is_blocked(self, context: PolicyContext) -> bool:
        return self.evaluate(context).blocked

    def get_block_reason(self, context: PolicyContext) -> str | None:
        """
        Explain why a context is blocked.

        Returns:
            "name: reason" for every BLOCK match, joined with "; ",
            or None when the context is not blocked
        """
        result = self.evaluate(context)
        if not result.blocked:
            return None

        blocking = [m for m in result.matched_rules if m.rule.action == Decision.BLOCK]
        if not blocking:
            return None
        return "; ".join(f"{m.rule.name}: {m.reason}" for m in blocking)


def create_policy_engine(rules: Iterable[PolicyRule] = ()) -> PolicyEngine:
    """Create a PolicyEngine with the default rules plus `rules`."""
    return PolicyEngine(rules)
