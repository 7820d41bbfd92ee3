"""
Unit tests for the Sandbox that do not start worker processes.

Tests cover:
- Error classification
- Profiles and factories
- Option overrides
- Rejections that never reach a worker
- Worker start failures and start method choice
- Trailing-expression splitting
"""

import ast
import multiprocessing
import threading

import pytest

from tollgate.sandbox import SANDBOX_PROFILES, Sandbox, classify_error, create_sandbox
from tollgate.sandbox.builtins import SAFE_BUILTINS, build_namespace
from tollgate.sandbox.sandbox import _process_context
from tollgate.sandbox.worker import split_trailing_expression
from tollgate.schema import SandboxErrorType, SandboxOptions


class TestClassifyError:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("TimeoutError: operation timed out", SandboxErrorType.TIMEOUT),
            ("Script execution timeout", SandboxErrorType.TIMEOUT),
            ("MemoryError: ", SandboxErrorType.MEMORY),
            ("JavaScript heap out of memory", SandboxErrorType.MEMORY),
            ("Array buffer allocation failed", SandboxErrorType.MEMORY),
            ("SyntaxError: invalid syntax", SandboxErrorType.SYNTAX),
            ("IndentationError: unexpected indent", SandboxErrorType.SYNTAX),
            ("ZeroDivisionError: division by zero", SandboxErrorType.RUNTIME),
            ("NameError: name 'x' is not defined", SandboxErrorType.RUNTIME),
        ],
    )
    def test_classification(self, text: str, expected: SandboxErrorType) -> None:
        assert classify_error(text) == expected


class TestProfiles:
    """Tests for SANDBOX_PROFILES and create_sandbox."""

    @pytest.mark.parametrize(
        "name,timeout_ms,memory_mib,depth,allow_async",
        [
            ("minimal", 1000, 16, 20, False),
            ("standard", 5000, 64, 100, False),
            ("extended", 30000, 128, 200, True),
            ("test", 10000, 32, 50, True),
        ],
    )
    def test_profile_values(
        self, name: str, timeout_ms: int, memory_mib: int, depth: int, allow_async: bool
    ) -> None:
        opts = SANDBOX_PROFILES[name]
        assert opts.timeout_ms == timeout_ms
        assert opts.memory_limit_bytes == memory_mib * 1024 * 1024
        assert opts.max_stack_depth == depth
        assert opts.allow_async is allow_async

    def test_create_default_is_standard(self) -> None:
        assert create_sandbox().options == SANDBOX_PROFILES["standard"]

    def test_create_with_overrides(self) -> None:
        sandbox = create_sandbox("minimal", timeout_ms=250)
        assert sandbox.options.timeout_ms == 250
        assert sandbox.options.max_stack_depth == 20
        # Profile itself is untouched
        assert SANDBOX_PROFILES["minimal"].timeout_ms == 1000

    def test_unknown_profile(self) -> None:
        with pytest.raises(KeyError):
            create_sandbox("turbo")


class TestSandboxConstruction:
    def test_defaults(self) -> None:
        sandbox = Sandbox()
        assert sandbox.options == SandboxOptions()
        assert len(sandbox.id) == 12

    def test_ids_unique(self) -> None:
        assert Sandbox().id != Sandbox().id

    def test_keyword_overrides(self) -> None:
        sandbox = Sandbox(SandboxOptions(timeout_ms=100), allow_async=True)
        assert sandbox.options.timeout_ms == 100
        assert sandbox.options.allow_async is True

    def test_supports_native_isolation_is_bool(self) -> None:
        assert isinstance(Sandbox.supports_native_isolation(), bool)


class TestRejectionsWithoutWorker:
    """Failures decided before any worker starts."""

    def test_forbidden_construct(self) -> None:
        result = Sandbox().execute("process.exit(1)")
        assert result.success is False
        assert result.error_type == SandboxErrorType.SECURITY
        assert "process object access" in result.error

    def test_syntax_error(self) -> None:
        result = Sandbox().execute("def broken(:")
        assert result.success is False
        assert result.error_type == SandboxErrorType.SYNTAX

    def test_nesting_budget(self) -> None:
        code = "\n".join(f"f{i} = lambda: {i}" for i in range(21))
        result = create_sandbox("minimal").execute(code)
        assert result.error_type == SandboxErrorType.SECURITY
        assert "Too many nested functions" in result.error

    def test_async_disabled(self) -> None:
        sandbox = Sandbox()
        result = sandbox.execute_async("await sleep(0)")
        assert result.success is False
        assert result.error_type == SandboxErrorType.SECURITY
        assert result.error == "Async execution not allowed in this sandbox"
        assert sandbox.get_stats().execution_count == 0

    def test_rejections_are_counted_without_time(self) -> None:
        sandbox = Sandbox()
        sandbox.execute("import os")
        sandbox.execute("eval('1')")
        stats = sandbox.get_stats()
        assert stats.id == sandbox.id
        assert stats.execution_count == 2
        assert stats.total_execution_time_ms == 0.0
        assert stats.average_execution_time_ms == 0.0

    def test_reset_stats(self) -> None:
        sandbox = Sandbox()
        sandbox.execute("import os")
        sandbox.reset_stats()
        assert sandbox.get_stats().execution_count == 0


class TestWorkerStart:
    """Failures starting the worker process."""

    def test_start_failure_is_returned(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def refuse(self: multiprocessing.process.BaseProcess) -> None:
            raise OSError(11, "Resource temporarily unavailable")

        monkeypatch.setattr(multiprocessing.process.BaseProcess, "start", refuse)
        sandbox = Sandbox()
        result = sandbox.execute("1 + 1")

        assert result.success is False
        assert result.error_type == SandboxErrorType.RUNTIME
        assert result.error.startswith("Worker failed to start: OSError")
        assert sandbox.get_stats().execution_count == 1

    @pytest.mark.skipif(
        "forkserver" not in multiprocessing.get_all_start_methods(),
        reason="forkserver start method",
    )
    def test_threaded_caller_avoids_fork(self) -> None:
        methods: list[str] = []
        thread = threading.Thread(target=lambda: methods.append(_process_context().get_start_method()))
        thread.start()
        thread.join()
        assert methods == ["forkserver"]


class TestNamespace:
    def test_curated_builtins(self) -> None:
        ns = build_namespace({"x": 1})
        assert ns["x"] == 1
        assert ns["__builtins__"] == SAFE_BUILTINS
        assert "open" not in ns["__builtins__"]
        assert "__import__" not in ns["__builtins__"]
        assert "sleep" not in ns

    def test_bindings_override_globals(self) -> None:
        ns = build_namespace({"math": "shadowed"})
        assert ns["math"] == "shadowed"

    def test_async_names(self) -> None:
        assert "sleep" in build_namespace({}, allow_async=True)

    def test_print_returns_arguments(self) -> None:
        assert SAFE_BUILTINS["print"](1, "a") == (1, "a")


class TestTrailingExpression:
    def test_split(self) -> None:
        body, expression = split_trailing_expression(ast.parse("x = 1\nx + 1"))
        assert len(body.body) == 1
        assert isinstance(expression, ast.Expression)

    def test_no_expression(self) -> None:
        tree = ast.parse("x = 1")
        body, expression = split_trailing_expression(tree)
        assert body is tree
        assert expression is None
