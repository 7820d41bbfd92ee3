"""
Policy Engine module for Tollgate.

This module renders allow / warn / needs_approval / block decisions over
proposed operations.

Key concepts:
    - PolicyRule: A prioritized condition-to-action mapping
    - Conditions: Serializable predicates composed with all_of / any_of / not
    - PolicyEngine: Evaluates a PolicyContext against every rule and keeps
      the most severe action
    - DEFAULT_RULES: Baseline rules for paths, commands and approval modes
"""

from tollgate.patterns import is_command_allowlisted, is_command_safe
from tollgate.policy.conditions import (
    CONFIG_DOTFILE_PREFIX,
    AllOf,
    AnyOf,
    CommandInCatalog,
    CommandMatches,
    Condition,
    ContentHasSecrets,
    ContentMatches,
    DotfileDelete,
    FieldPresent,
    ModeEquals,
    Not,
    OperationIn,
    PathDenylisted,
    PathOutsideRoot,
    Predicate,
)
from tollgate.policy.defaults import DEFAULT_RULES
from tollgate.policy.engine import PolicyEngine, create_policy_engine
from tollgate.policy.rules import PolicyRule

__all__ = [
    "CONFIG_DOTFILE_PREFIX",
    "DEFAULT_RULES",
    "AllOf",
    "AnyOf",
    "CommandInCatalog",
    "CommandMatches",
    "Condition",
    "ContentHasSecrets",
    "ContentMatches",
    "DotfileDelete",
    "FieldPresent",
    "ModeEquals",
    "Not",
    "OperationIn",
    "PathDenylisted",
    "PathOutsideRoot",
    "PolicyEngine",
    "PolicyRule",
    "Predicate",
    "create_policy_engine",
    "is_command_allowlisted",
    "is_command_safe",
]
