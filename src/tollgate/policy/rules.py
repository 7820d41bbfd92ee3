"""
PolicyRule: a named, prioritized condition-to-action mapping.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tollgate.policy.conditions import Condition, coerce_condition
from tollgate.schema import Decision, PolicyContext, TargetKind


class PolicyRule(BaseModel):
    """
    A policy rule.

    Rules are values: the engine never mutates one, and re-registering an id
    replaces the previous rule.

    Attributes:
        id: Unique identifier within an engine
        name: Short human-readable title
        description: Why the rule exists; reported as the match reason
        target: What part of the context the rule inspects
        action: Decision contributed when the condition holds
        priority: Higher priorities are evaluated first
        condition: Pure predicate over the context (see conditions.py).
            A bare callable is accepted and wrapped in a Predicate.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1, description="Unique rule identifier")
    name: str = Field(..., description="Short human-readable title")
    description: str = Field(..., description="Reported as the match reason")
    target: TargetKind = Field(..., description="What the rule inspects")
    action: Decision = Field(..., description="Decision when the condition holds")
    priority: int = Field(default=0, description="Higher runs first")
    condition: Condition

    @field_validator("condition", mode="before")
    @classmethod
    def wrap_callable(cls, v: Any) -> Any:
        return coerce_condition(v)

    def applies_to(self, context: PolicyContext) -> bool:
        """Evaluate the condition. May raise if a Predicate raises."""
        return self.condition.matches(context)
