"""
Configuration loading for Tollgate.

A single YAML document describes how to assemble the core for a project:
approval mode, working directory, extra secret patterns and denylist globs,
extra policy rules and the sandbox profile.

Example:
    approval_mode: balanced
    working_directory: /repo
    custom_secret_patterns:
      - name: internal_token
        pattern: "itk_[A-Za-z0-9]{24}"
    custom_denylist: ["*.kdbx"]
    rules:
      - id: warn-on-lockfile
        name: Lockfile edit
        description: Lockfiles are generated
        target: path
        action: warn
        priority: 30
        condition: {kind: path_denylisted, extra_globs: ["*.lock"]}
    sandbox:
      profile: minimal
      overrides: {timeout_ms: 500}

Every section is optional. Loading either returns a validated
SecurityConfig or raises ConfigError.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from tollgate.errors import ERROR_CONFIG_NOT_FOUND, ConfigError, PatternError
from tollgate.guardian import GuardianGate
from tollgate.patterns import compile_pattern
from tollgate.policy import PolicyEngine, PolicyRule
from tollgate.sandbox import SANDBOX_PROFILES, Sandbox, create_sandbox
from tollgate.schema import ApprovalMode, Operation, PolicyContext


# =============================================================================
# Models
# =============================================================================


class SecretPatternConfig(BaseModel):
    """A caller-supplied secret pattern."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Finding type reported on match")
    pattern: str = Field(..., min_length=1, description="Regular expression")

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            compile_pattern(v)
        except PatternError as e:
            raise ValueError(e.message) from e
        return v


class SandboxConfig(BaseModel):
    """Sandbox profile plus individual overrides."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    profile: str = Field(default="standard", description="Name in SANDBOX_PROFILES")
    overrides: dict[str, Any] = Field(default_factory=dict, description="SandboxOptions fields")

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        if v not in SANDBOX_PROFILES:
            raise ValueError(f"Unknown sandbox profile {v!r}; expected one of {sorted(SANDBOX_PROFILES)}")
        return v


class SecurityConfig(BaseModel):
    """
    Project-level security configuration.

    Attributes:
        approval_mode: Default mode for contexts built with make_context()
        working_directory: Root the agent is confined to
        include_default_rules: Start the engine from DEFAULT_RULES
        custom_secret_patterns: Extra patterns for the guardian
        custom_denylist: Extra filename globs for the guardian
        rules: Extra policy rules (same id replaces a default)
        sandbox: Sandbox profile and overrides
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    approval_mode: ApprovalMode = Field(default=ApprovalMode.BALANCED)
    working_directory: str = Field(default=".")
    include_default_rules: bool = Field(default=True)
    custom_secret_patterns: list[SecretPatternConfig] = Field(default_factory=list)
    custom_denylist: list[str] = Field(default_factory=list)
    rules: list[PolicyRule] = Field(default_factory=list)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)

    @field_validator("custom_denylist")
    @classmethod
    def validate_denylist(cls, v: list[str]) -> list[str]:
        empty = [glob for glob in v if not glob.strip()]
        if empty:
            raise ValueError("Denylist globs must not be empty")
        return v

    # =========================================================================
    # Builders
    # =========================================================================

    def build_engine(self) -> PolicyEngine:
        return PolicyEngine(self.rules, include_defaults=self.include_default_rules)

    def build_guardian(self) -> GuardianGate:
        gate = GuardianGate()
        for entry in self.custom_secret_patterns:
            gate.add_secret_pattern(entry.name, entry.pattern)
        for glob in self.custom_denylist:
            gate.add_to_denylist(glob)
        return gate

    def build_sandbox(self) -> Sandbox:
        return create_sandbox(self.sandbox.profile, **self.sandbox.overrides)

    def make_context(
        self,
        operation: Operation | str,
        path: str | None = None,
        command: str | None = None,
        content: str | None = None,
        approval_mode: ApprovalMode | str | None = None,
    ) -> PolicyContext:
        """Build a PolicyContext with this config's working directory and mode."""
        return PolicyContext(
            operation=Operation(operation),
            path=path,
            command=command,
            content=content,
            working_directory=self.working_directory,
            approval_mode=ApprovalMode(approval_mode) if approval_mode else self.approval_mode,
        )


# =============================================================================
# Loading
# =============================================================================


def _validate(data: Any, source: str) -> SecurityConfig:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(path=source, underlying_error="top level must be a mapping")

    try:
        config = SecurityConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(path=source, underlying_error=str(e)) from e

    try:
        # Overrides are only checked against SandboxOptions once applied
        config.build_sandbox()
    except ValidationError as e:
        raise ConfigError(path=source, underlying_error=str(e)) from e
    return config


def load_config(path: Path | str) -> SecurityConfig:
    """
    Load a configuration from a YAML file.

    Raises:
        ConfigError: The file is missing, is not valid YAML, or does not
            match the schema
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(
            message=f"Configuration file not found: {path}",
            code=ERROR_CONFIG_NOT_FOUND,
            path=str(path),
            suggestion="Check the path or omit --config to use the defaults",
        )

    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(path=str(path), underlying_error=str(e)) from e

    return _validate(data, str(path))


def load_config_from_string(content: str) -> SecurityConfig:
    """Load a configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(underlying_error=str(e)) from e
    return _validate(data, "")
