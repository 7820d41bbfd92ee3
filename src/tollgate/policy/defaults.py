"""
Default rule set shipped with every PolicyEngine.

Baseline behaviour:
    - Writes and deletes outside the working directory are blocked
    - Deleting dotfiles is blocked, except tollgate's own (.tollgate*)
    - Denylisted commands are blocked in every mode
    - Fast mode auto-allows allowlisted commands
    - Balanced mode requires approval for commands not on the allowlist
    - Strict mode requires approval for every non-read operation

The denylist rule sits above the allowlist rule, and BLOCK outranks ALLOW
when matches are reduced, so a command on both lists is always blocked.
"""

from tollgate.policy.conditions import (
    AllOf,
    CommandInCatalog,
    DotfileDelete,
    FieldPresent,
    ModeEquals,
    Not,
    OperationIn,
    PathOutsideRoot,
)
from tollgate.policy.rules import PolicyRule
from tollgate.schema import ApprovalMode, Decision, Operation, TargetKind

_NON_READ = OperationIn(operations=[Operation.WRITE, Operation.DELETE, Operation.EXEC])
_EXEC = OperationIn(operations=[Operation.EXEC])

DEFAULT_RULES: tuple[PolicyRule, ...] = (
    # Path rules
    PolicyRule(
        id="no-write-outside-repo",
        name="No Write Outside Repository",
        description="Prevent writing files outside the repository",
        target=TargetKind.PATH,
        action=Decision.BLOCK,
        priority=100,
        condition=AllOf(conditions=[_NON_READ, PathOutsideRoot()]),
    ),
    PolicyRule(
        id="no-delete-dotfiles",
        name="No Delete Dotfiles",
        description="Prevent deleting hidden configuration files",
        target=TargetKind.PATH,
        action=Decision.BLOCK,
        priority=90,
        condition=DotfileDelete(),
    ),
    # Command rules
    PolicyRule(
        id="no-dangerous-commands",
        name="No Dangerous Commands",
        description="Block potentially destructive commands",
        target=TargetKind.COMMAND,
        action=Decision.BLOCK,
        priority=100,
        condition=AllOf(conditions=[_EXEC, CommandInCatalog(catalog="denylist")]),
    ),
    PolicyRule(
        id="fast-mode-allowlist",
        name="Fast Mode Allowlist",
        description="Allow safe commands in fast mode",
        target=TargetKind.COMMAND,
        action=Decision.ALLOW,
        priority=80,
        condition=AllOf(
            conditions=[
                ModeEquals(mode=ApprovalMode.FAST),
                _EXEC,
                CommandInCatalog(catalog="allowlist"),
            ]
        ),
    ),
    PolicyRule(
        id="needs-approval-in-balanced",
        name="Needs Approval in Balanced Mode",
        description="Commands need approval in balanced mode",
        target=TargetKind.COMMAND,
        action=Decision.NEEDS_APPROVAL,
        priority=50,
        condition=AllOf(
            conditions=[
                ModeEquals(mode=ApprovalMode.BALANCED),
                _EXEC,
                FieldPresent(field="command"),
                Not(condition=CommandInCatalog(catalog="allowlist")),
            ]
        ),
    ),
    # Strict mode
    PolicyRule(
        id="strict-needs-approval",
        name="Strict Mode Requires Approval",
        description="All operations need approval in strict mode",
        target=TargetKind.PATH,
        action=Decision.NEEDS_APPROVAL,
        priority=40,
        condition=AllOf(conditions=[ModeEquals(mode=ApprovalMode.STRICT), _NON_READ]),
    ),
)
