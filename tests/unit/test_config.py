"""
Unit tests for configuration loading.

Tests cover:
- Defaults when sections are omitted
- Loading from string and from file
- Builders (engine, guardian, sandbox, context)
- Invalid YAML and schema errors
"""

from pathlib import Path

import pytest

from tollgate.config import SecurityConfig, load_config, load_config_from_string
from tollgate.errors import ERROR_CONFIG_INVALID, ERROR_CONFIG_NOT_FOUND, ConfigError
from tollgate.policy import DEFAULT_RULES
from tollgate.schema import ApprovalMode, Decision, Operation


class TestDefaults:
    def test_empty_document(self) -> None:
        config = load_config_from_string("")
        assert config == SecurityConfig()
        assert config.approval_mode == ApprovalMode.BALANCED
        assert config.include_default_rules is True
        assert config.sandbox.profile == "standard"

    def test_default_engine_has_default_rules(self) -> None:
        engine = SecurityConfig().build_engine()
        assert len(engine.get_rules()) == len(DEFAULT_RULES)

    def test_default_working_directory_allows_writes_inside(self) -> None:
        config = SecurityConfig()
        engine = config.build_engine()
        result = engine.evaluate(config.make_context("write", path="src/a.py"))
        assert result.decision == Decision.ALLOW
        assert engine.is_blocked(config.make_context("write", path="../outside.py"))


class TestLoading:
    """Tests for load_config and load_config_from_string."""

    def test_full_document(self, sample_config_yaml: str) -> None:
        config = load_config_from_string(sample_config_yaml)
        assert config.approval_mode == ApprovalMode.FAST
        assert config.working_directory == "/repo"
        assert config.custom_secret_patterns[0].name == "internal_token"
        assert config.custom_denylist == ["*.kdbx"]
        assert config.rules[0].id == "warn-on-lockfile"
        assert config.sandbox.overrides == {"timeout_ms": 500}

    def test_from_file(self, temp_dir: Path, sample_config_yaml: str) -> None:
        path = temp_dir / "tollgate.yaml"
        path.write_text(sample_config_yaml)
        assert load_config(path) == load_config_from_string(sample_config_yaml)

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config(temp_dir / "missing.yaml")
        assert exc_info.value.code == ERROR_CONFIG_NOT_FOUND

    def test_invalid_yaml(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config_from_string("rules: [unclosed")
        assert exc_info.value.code == ERROR_CONFIG_INVALID

    def test_top_level_must_be_mapping(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_string("- a\n- b\n")

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_string("approval: fast\n")

    def test_bad_mode(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_string("approval_mode: yolo\n")

    def test_bad_secret_pattern(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config_from_string("custom_secret_patterns:\n  - name: x\n    pattern: '(unclosed'\n")
        assert "custom_secret_patterns" in exc_info.value.underlying_error

    def test_unknown_condition_kind(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_string(
                "rules:\n"
                "  - id: r\n"
                "    name: R\n"
                "    description: d\n"
                "    target: path\n"
                "    action: warn\n"
                "    condition: {kind: sometimes}\n"
            )

    def test_unknown_profile(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_string("sandbox:\n  profile: turbo\n")

    def test_bad_sandbox_override(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_string("sandbox:\n  overrides: {timeout_ms: -5}\n")

    def test_empty_denylist_entry(self) -> None:
        with pytest.raises(ConfigError):
            load_config_from_string("custom_denylist: ['']\n")


class TestBuilders:
    """Tests for the SecurityConfig builders."""

    def test_engine_includes_config_rules(self, sample_config_yaml: str) -> None:
        config = load_config_from_string(sample_config_yaml)
        engine = config.build_engine()
        assert engine.get_rule("warn-on-lockfile") is not None
        assert engine.get_rule("no-dangerous-commands") is not None

        result = engine.evaluate(config.make_context("write", path="poetry.lock"))
        assert result.decision == Decision.WARN

    def test_engine_without_defaults(self) -> None:
        config = load_config_from_string("include_default_rules: false\n")
        assert config.build_engine().get_rules() == []

    def test_guardian(self, sample_config_yaml: str) -> None:
        gate = load_config_from_string(sample_config_yaml).build_guardian()
        assert gate.has_secrets("itk_" + "a" * 24)
        assert not gate.scan_path("db.kdbx", "/repo").safe

    def test_sandbox(self, sample_config_yaml: str) -> None:
        sandbox = load_config_from_string(sample_config_yaml).build_sandbox()
        assert sandbox.options.timeout_ms == 500
        assert sandbox.options.max_stack_depth == 20

    def test_make_context(self, sample_config_yaml: str) -> None:
        config = load_config_from_string(sample_config_yaml)
        ctx = config.make_context(Operation.EXEC, command="ls")
        assert ctx.working_directory == "/repo"
        assert ctx.approval_mode == ApprovalMode.FAST

        strict = config.make_context("read", path="a", approval_mode="strict")
        assert strict.approval_mode == ApprovalMode.STRICT
