"""
Sandbox for untrusted Python fragments.

A fragment is a short piece of Python: statements, optionally followed by an
expression whose value becomes the result. Fragments run with a curated set
of builtins, no imports and no filesystem or process access.

Defense layers:
    1. Static validation (tollgate.sandbox.validator): forbidden constructs
       and the nesting budget. Rejected fragments never run.
    2. A separate worker process with an address-space limit, so the host
       interpreter is never shared with the fragment.
    3. A hard wall-clock deadline: the worker is killed when it expires.

Security Note:
    Static validation over a restricted namespace is not a complete
    isolation boundary for hostile code. The worker process and its rlimits
    are what contain a fragment that slips past validation.
"""

import asyncio
import logging
import multiprocessing
import signal
import threading
import time
import uuid
from typing import Any

from tollgate.errors import ERROR_SANDBOX_ASYNC_DISABLED, SandboxRejectedError
from tollgate.sandbox.validator import validate_fragment
from tollgate.sandbox.worker import resource, run_fragment
from tollgate.schema import SandboxErrorType, SandboxOptions, SandboxResult, SandboxStats

logger = logging.getLogger(__name__)


# =============================================================================
# Profiles
# =============================================================================

SANDBOX_PROFILES: dict[str, SandboxOptions] = {
    "minimal": SandboxOptions(
        timeout_ms=1000,
        memory_limit_bytes=16 * 1024 * 1024,
        max_stack_depth=20,
        allow_async=False,
    ),
    "standard": SandboxOptions(
        timeout_ms=5000,
        memory_limit_bytes=64 * 1024 * 1024,
        max_stack_depth=100,
        allow_async=False,
    ),
    "extended": SandboxOptions(
        timeout_ms=30000,
        memory_limit_bytes=128 * 1024 * 1024,
        max_stack_depth=200,
        allow_async=True,
    ),
    "test": SandboxOptions(
        timeout_ms=10000,
        memory_limit_bytes=32 * 1024 * 1024,
        max_stack_depth=50,
        allow_async=True,
    ),
}

# Grace period for a worker to exit after replying or being terminated
_JOIN_TIMEOUT_S = 1.0

_TIMEOUT_MARKERS = ("timeout", "timed out")
_MEMORY_MARKERS = ("memory", "heap", "allocation")
_SYNTAX_MARKERS = ("syntax", "invalid syntax", "unexpected indent", "unexpected token")


def classify_error(text: str) -> SandboxErrorType:
    """Classify failure text from a worker into a SandboxErrorType."""
    lowered = text.lower()
    if any(marker in lowered for marker in _TIMEOUT_MARKERS):
        return SandboxErrorType.TIMEOUT
    if any(marker in lowered for marker in _MEMORY_MARKERS):
        return SandboxErrorType.MEMORY
    if any(marker in lowered for marker in _SYNTAX_MARKERS):
        return SandboxErrorType.SYNTAX
    return SandboxErrorType.RUNTIME


def _process_context() -> multiprocessing.context.BaseContext:
    """
    Pick a start method for the worker.

    Forking a process that already runs other threads can deadlock the
    child, so threaded callers (aexecute, thread pools) get a forkserver.
    """
    methods = multiprocessing.get_all_start_methods()
    if "fork" in methods and threading.active_count() == 1:
        return multiprocessing.get_context("fork")
    if "forkserver" in methods:
        return multiprocessing.get_context("forkserver")
    return multiprocessing.get_context("spawn")


def _stop(process: multiprocessing.process.BaseProcess) -> None:
    """Terminate a worker, escalating to kill if it does not exit."""
    if not process.is_alive():
        return
    process.terminate()
    process.join(_JOIN_TIMEOUT_S)
    if process.is_alive():
        process.kill()
        process.join(_JOIN_TIMEOUT_S)


# =============================================================================
# Sandbox
# =============================================================================


class Sandbox:
    """
    Runs fragments under a fixed set of limits.

    Usage:
        sandbox = Sandbox(timeout_ms=1000)
        result = sandbox.execute("total = sum(values)\\ntotal * 2", {"values": [1, 2, 3]})
        if result.success:
            print(result.result)  # 12
        else:
            print(result.error_type, result.error)

    Every call to execute() counts towards get_stats(); only successful
    executions add to the accumulated execution time.
    """

    def __init__(self, options: SandboxOptions | None = None, **overrides: Any) -> None:
        """
        Initialize a sandbox.

        Args:
            options: Base limits (defaults to SandboxOptions())
            **overrides: Individual SandboxOptions fields to replace
        """
        base = options or SandboxOptions()
        if overrides:
            base = SandboxOptions.model_validate({**base.model_dump(), **overrides})
        self.options = base
        self.id = uuid.uuid4().hex[:12]

        self._lock = threading.Lock()
        self._execution_count = 0
        self._total_execution_time_ms = 0.0

    @staticmethod
    def supports_native_isolation() -> bool:
        """True where the worker can apply resource limits."""
        return resource is not None

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(self, code: str, bindings: dict[str, Any] | None = None) -> SandboxResult:
        """
        Validate and run a fragment.

        Args:
            code: Fragment source
            bindings: Extra names for this call; they override options.globals

        Returns:
            SandboxResult. Failures are classified, never raised.
        """
        return self._execute(code, bindings or {}, allow_async=False)

    def execute_async(self, code: str, bindings: dict[str, Any] | None = None) -> SandboxResult:
        """
        Run a fragment that may use top-level await.

        Only available when options.allow_async is set; otherwise the call
        fails with error_type "security" without running anything.
        """
        if not self.options.allow_async:
            error = SandboxRejectedError(
                message="Async execution not allowed in this sandbox",
                code=ERROR_SANDBOX_ASYNC_DISABLED,
                construct="async execution",
            )
            logger.info("Sandbox %s rejected fragment: %s", self.id, error.message)
            return SandboxResult.fail(error.message, SandboxErrorType.SECURITY)
        return self._execute(code, bindings or {}, allow_async=True)

    async def aexecute(self, code: str, bindings: dict[str, Any] | None = None) -> SandboxResult:
        """execute() for async callers; runs in a thread so the loop is not blocked."""
        return await asyncio.to_thread(self.execute, code, bindings)

    def _execute(self, code: str, bindings: dict[str, Any], allow_async: bool) -> SandboxResult:
        with self._lock:
            self._execution_count += 1
            count = self._execution_count

        start = time.perf_counter()
        result = self._run(code, bindings, allow_async, count, start)
        if result.success:
            with self._lock:
                self._total_execution_time_ms += result.execution_time_ms
        return result

    def _run(
        self,
        code: str,
        bindings: dict[str, Any],
        allow_async: bool,
        count: int,
        start: float,
    ) -> SandboxResult:
        def elapsed_ms() -> float:
            return (time.perf_counter() - start) * 1000

        try:
            validate_fragment(code, self.options.max_stack_depth, allow_top_level_await=allow_async)
        except SandboxRejectedError as e:
            logger.info("Sandbox %s rejected fragment: %s", self.id, e.message)
            return SandboxResult.fail(e.message, SandboxErrorType.SECURITY, elapsed_ms())
        except SyntaxError as e:
            return SandboxResult.fail(f"SyntaxError: {e.msg}", SandboxErrorType.SYNTAX, elapsed_ms())

        names = {
            **(self.options.globals or {}),
            **bindings,
            "SANDBOX": {
                "id": self.id,
                "execution_count": count,
                "timeout_ms": self.options.timeout_ms,
                "memory_limit_bytes": self.options.memory_limit_bytes,
            },
        }

        ctx = _process_context()
        receiver, sender = ctx.Pipe(duplex=False)
        process = ctx.Process(
            target=run_fragment,
            args=(
                sender,
                code,
                names,
                allow_async,
                self.options.memory_limit_bytes,
                f"<sandbox-{self.id}-{count}>",
            ),
            daemon=True,
        )

        try:
            process.start()
        except Exception as e:
            sender.close()
            receiver.close()
            logger.error("Sandbox %s could not start a worker: %s", self.id, e)
            return SandboxResult.fail(
                f"Worker failed to start: {type(e).__name__}: {e}",
                SandboxErrorType.RUNTIME,
                elapsed_ms(),
            )

        try:
            sender.close()

            if not receiver.poll(self.options.timeout_ms / 1000):
                _stop(process)
                logger.warning("Sandbox %s timed out after %d ms", self.id, self.options.timeout_ms)
                return SandboxResult.fail(
                    f"Execution timed out after {self.options.timeout_ms}ms",
                    SandboxErrorType.TIMEOUT,
                    elapsed_ms(),
                )

            try:
                message = receiver.recv()
            except EOFError:
                message = None
        finally:
            receiver.close()

        process.join(_JOIN_TIMEOUT_S)
        _stop(process)
        duration = elapsed_ms()

        if message is None:
            # Worker died without replying; SIGKILL here comes from the OOM killer
            if process.exitcode == -signal.SIGKILL:
                return SandboxResult.fail(
                    "Worker was killed (out of memory)",
                    SandboxErrorType.MEMORY,
                    duration,
                )
            return SandboxResult.fail(
                f"Worker exited unexpectedly (exit code {process.exitcode})",
                SandboxErrorType.RUNTIME,
                duration,
            )

        status, payload, memory_used = message
        if status == "ok":
            return SandboxResult.ok(payload, duration, memory_used)
        return SandboxResult.fail(payload, classify_error(payload), duration, memory_used)

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> SandboxStats:
        with self._lock:
            count = self._execution_count
            total = self._total_execution_time_ms
        return SandboxStats(
            id=self.id,
            execution_count=count,
            total_execution_time_ms=total,
            average_execution_time_ms=total / count if count else 0.0,
        )

    def reset_stats(self) -> None:
        with self._lock:
            self._execution_count = 0
            self._total_execution_time_ms = 0.0


# =============================================================================
# Factories
# =============================================================================


def create_sandbox(profile: str = "standard", **overrides: Any) -> Sandbox:
    """
    Create a sandbox from a named profile.

    Raises:
        KeyError: Unknown profile name
    """
    if profile not in SANDBOX_PROFILES:
        raise KeyError(f"Unknown sandbox profile: {profile!r} (expected one of {sorted(SANDBOX_PROFILES)})")
    return Sandbox(SANDBOX_PROFILES[profile], **overrides)


def sandbox_execute(
    code: str,
    bindings: dict[str, Any] | None = None,
    options: SandboxOptions | None = None,
) -> SandboxResult:
    """Run one fragment in a throwaway sandbox."""
    return Sandbox(options).execute(code, bindings)
