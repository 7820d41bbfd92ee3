"""
Worker-process side of the sandbox.

run_fragment() is the target of the child process. It applies the memory
limit, runs an already-validated fragment in the curated namespace and sends
exactly one message back over the pipe:

    ("ok", result, memory_used_bytes)
    ("error", "<ExceptionType>: <message>", memory_used_bytes)

The parent owns the deadline and kills this process when it expires.
"""

import ast
import asyncio
import inspect
import os
import sys
from multiprocessing.connection import Connection
from pathlib import Path
from typing import Any

from tollgate.sandbox.builtins import build_namespace

try:
    import resource
except ImportError:  # Not available on Windows; limits are then not applied
    resource = None


def _address_space_bytes() -> int | None:
    """Current virtual memory size of this process (Linux only)."""
    try:
        pages = int(Path("/proc/self/statm").read_text().split()[0])
    except (OSError, ValueError, IndexError):
        return None
    return pages * os.sysconf("SC_PAGE_SIZE")


def apply_memory_limit(limit_bytes: int) -> bool:
    """
    Cap the address space at the current size plus limit_bytes.

    Returns:
        True if a limit was applied
    """
    if resource is None:
        return False
    baseline = _address_space_bytes()
    if baseline is None:
        return False

    soft = baseline + limit_bytes
    _, hard = resource.getrlimit(resource.RLIMIT_AS)
    if hard != resource.RLIM_INFINITY:
        soft = min(soft, hard)
    resource.setrlimit(resource.RLIMIT_AS, (soft, hard))
    return True


def peak_memory_bytes() -> int | None:
    if resource is None:
        return None
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is KiB on Linux, bytes on macOS
    return peak if sys.platform == "darwin" else peak * 1024


def split_trailing_expression(tree: ast.Module) -> tuple[ast.Module, ast.Expression | None]:
    """Separate a trailing expression statement so its value can be returned."""
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        body = ast.Module(body=tree.body[:-1], type_ignores=[])
        expression = ast.Expression(body=tree.body[-1].value)
        return body, expression
    return tree, None


async def _run_async(body: Any, expression: Any, namespace: dict[str, Any]) -> Any:
    outcome = eval(body, namespace)
    if inspect.iscoroutine(outcome):
        await outcome
    if expression is None:
        return None
    value = eval(expression, namespace)
    if inspect.iscoroutine(value):
        value = await value
    return value


def execute_fragment(code: str, bindings: dict[str, Any], allow_async: bool, filename: str) -> Any:
    """Compile and run a fragment in the curated namespace; return its value."""
    flags = ast.PyCF_ALLOW_TOP_LEVEL_AWAIT if allow_async else 0
    tree = compile(code, filename, "exec", flags=ast.PyCF_ONLY_AST | flags, dont_inherit=True)
    body_tree, expression_tree = split_trailing_expression(tree)

    body = compile(body_tree, filename, "exec", flags=flags, dont_inherit=True)
    expression = None
    if expression_tree is not None:
        expression = compile(expression_tree, filename, "eval", flags=flags, dont_inherit=True)

    namespace = build_namespace(bindings, allow_async)
    if allow_async:
        return asyncio.run(_run_async(body, expression, namespace))

    exec(body, namespace)
    if expression is None:
        return None
    return eval(expression, namespace)


def run_fragment(
    conn: Connection,
    code: str,
    bindings: dict[str, Any],
    allow_async: bool,
    memory_limit_bytes: int,
    filename: str,
) -> None:
    """Child-process entry point."""
    try:
        apply_memory_limit(memory_limit_bytes)
        result = execute_fragment(code, bindings, allow_async, filename)
    except BaseException as e:
        conn.send(("error", f"{type(e).__name__}: {e}", peak_memory_bytes()))
        conn.close()
        return

    memory = peak_memory_bytes()
    try:
        conn.send(("ok", result, memory))
    except Exception:
        # Result could not be pickled; fall back to its repr
        conn.send(("ok", repr(result), memory))
    conn.close()
