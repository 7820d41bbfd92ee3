"""
Rule conditions for the Policy Engine.

A condition is a pure predicate over a PolicyContext. Conditions are data,
not closures: each kind is a small frozen model tagged by its "kind" field,
so rules can be loaded from YAML, dumped back, compared and tested in
isolation. Kinds compose with all_of / any_of / not.

Every kind returns False when the context lacks the field it inspects
(e.g. a command condition on a context without a command).

The "predicate" kind wraps a Python callable for rules built at runtime.
It cannot be serialized and must stay pure by convention: no mutation, no
I/O.
"""

import re
from collections.abc import Callable
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tollgate.errors import PatternError
from tollgate.guardian.paths import file_name, is_dotfile, is_within
from tollgate.patterns import (
    COMMAND_ALLOWLIST,
    COMMAND_DENYLIST,
    FILE_DENYLIST,
    SECRET_PATTERNS,
    compile_pattern,
    glob_to_regex,
)
from tollgate.schema import ApprovalMode, Operation, PolicyContext

# Dotfiles starting with this prefix belong to tollgate itself and may be deleted
CONFIG_DOTFILE_PREFIX = ".tollgate"


class ConditionBase(BaseModel):
    """Common configuration and interface for all condition kinds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def matches(self, context: PolicyContext) -> bool:
        raise NotImplementedError


def _validate_regexes(patterns: list[str]) -> list[str]:
    for source in patterns:
        # PatternError is not a ValueError; re-raise as one for pydantic
        try:
            compile_pattern(source)
        except PatternError as e:
            raise ValueError(str(e)) from e
    return patterns


# =============================================================================
# Context conditions
# =============================================================================


class OperationIn(ConditionBase):
    """The context's operation is one of the listed operations."""

    kind: Literal["operation_in"] = "operation_in"
    operations: list[Operation] = Field(..., min_length=1)

    def matches(self, context: PolicyContext) -> bool:
        return context.operation in self.operations


class ModeEquals(ConditionBase):
    kind: Literal["mode_equals"] = "mode_equals"
    mode: ApprovalMode

    def matches(self, context: PolicyContext) -> bool:
        return context.approval_mode == self.mode


class FieldPresent(ConditionBase):
    """The context carries a non-empty path, command or content."""

    kind: Literal["field_present"] = "field_present"
    field: Literal["path", "command", "content"]

    def matches(self, context: PolicyContext) -> bool:
        return bool(getattr(context, self.field))


# =============================================================================
# Path conditions
# =============================================================================


class PathOutsideRoot(ConditionBase):
    """The path, resolved against the working directory, escapes it."""

    kind: Literal["path_outside_root"] = "path_outside_root"

    def matches(self, context: PolicyContext) -> bool:
        if not context.path:
            return False
        return not is_within(context.path, context.working_directory)


class DotfileDelete(ConditionBase):
    """A delete targeting a dotfile that is not one of tollgate's own."""

    kind: Literal["dotfile_delete"] = "dotfile_delete"
    exempt_prefix: str = CONFIG_DOTFILE_PREFIX

    def matches(self, context: PolicyContext) -> bool:
        if context.operation != Operation.DELETE or not context.path:
            return False
        if not is_dotfile(context.path):
            return False
        return not file_name(context.path).startswith(self.exempt_prefix)


class PathDenylisted(ConditionBase):
    """The file name matches the catalog denylist or one of extra_globs."""

    kind: Literal["path_denylisted"] = "path_denylisted"
    extra_globs: list[str] = Field(default_factory=list)

    def matches(self, context: PolicyContext) -> bool:
        if not context.path:
            return False
        name = file_name(context.path)
        return any(glob_to_regex(g).match(name) for g in (*FILE_DENYLIST, *self.extra_globs))


# =============================================================================
# Command conditions
# =============================================================================


class CommandMatches(ConditionBase):
    """The command matches any of the given regexes (re.search)."""

    kind: Literal["command_matches"] = "command_matches"
    patterns: list[str] = Field(..., min_length=1)

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        return _validate_regexes(v)

    def matches(self, context: PolicyContext) -> bool:
        if not context.command:
            return False
        return any(re.search(p, context.command) for p in self.patterns)


class CommandInCatalog(ConditionBase):
    """The command matches the catalog's denylist or allowlist."""

    kind: Literal["command_in_catalog"] = "command_in_catalog"
    catalog: Literal["denylist", "allowlist"]

    def matches(self, context: PolicyContext) -> bool:
        if not context.command:
            return False
        table = COMMAND_DENYLIST if self.catalog == "denylist" else COMMAND_ALLOWLIST
        return any(p.matches(context.command) for p in table)


# =============================================================================
# Content conditions
# =============================================================================


class ContentMatches(ConditionBase):
    kind: Literal["content_matches"] = "content_matches"
    patterns: list[str] = Field(..., min_length=1)

    @field_validator("patterns")
    @classmethod
    def validate_patterns(cls, v: list[str]) -> list[str]:
        return _validate_regexes(v)

    def matches(self, context: PolicyContext) -> bool:
        if not context.content:
            return False
        return any(re.search(p, context.content) for p in self.patterns)


class ContentHasSecrets(ConditionBase):
    """The content matches any catalog secret pattern."""

    kind: Literal["content_has_secrets"] = "content_has_secrets"

    def matches(self, context: PolicyContext) -> bool:
        if not context.content:
            return False
        return any(p.pattern.search(context.content) for p in SECRET_PATTERNS)


# =============================================================================
# Combinators
# =============================================================================


class AllOf(ConditionBase):
    kind: Literal["all_of"] = "all_of"
    conditions: list["Condition"] = Field(..., min_length=1)

    def matches(self, context: PolicyContext) -> bool:
        return all(c.matches(context) for c in self.conditions)


class AnyOf(ConditionBase):
    kind: Literal["any_of"] = "any_of"
    conditions: list["Condition"] = Field(..., min_length=1)

    def matches(self, context: PolicyContext) -> bool:
        return any(c.matches(context) for c in self.conditions)


class Not(ConditionBase):
    kind: Literal["not"] = "not"
    condition: "Condition"

    def matches(self, context: PolicyContext) -> bool:
        return not self.condition.matches(context)


class Predicate(ConditionBase):
    """Wraps a callable. Excluded from serialization."""

    kind: Literal["predicate"] = "predicate"
    func: Callable[[PolicyContext], bool] = Field(..., exclude=True)
    label: str = "custom"

    def matches(self, context: PolicyContext) -> bool:
        return bool(self.func(context))


Condition = Annotated[
    Union[
        OperationIn,
        ModeEquals,
        FieldPresent,
        PathOutsideRoot,
        DotfileDelete,
        PathDenylisted,
        CommandMatches,
        CommandInCatalog,
        ContentMatches,
        ContentHasSecrets,
        AllOf,
        AnyOf,
        Not,
        Predicate,
    ],
    Field(discriminator="kind"),
]

AllOf.model_rebuild()
AnyOf.model_rebuild()
Not.model_rebuild()


def coerce_condition(value: Any) -> Any:
    """Wrap a bare callable in a Predicate; pass anything else through."""
    if callable(value) and not isinstance(value, BaseModel):
        return Predicate(func=value)
    return value
