"""
Static validation of sandbox fragments.

This is the first defense layer: a fragment that fails here is never
executed. Validation runs in three passes:

1. Forbidden-construct patterns over the raw text. This works on text that
   does not parse and catches names spelled inside strings passed to
   dynamic helpers.
2. An AST walk: import statements, forbidden names (eval, exec, open,
   getattr, globals, ...), dunder and private attributes, frame and code
   introspection attributes.
3. The nesting budget: the number of function, async function and lambda
   definition sites must not exceed max_stack_depth. This is a static proxy
   for stack-depth abuse, not a runtime guarantee.

Unparseable text that passes the first pass raises SyntaxError, which the
sandbox reports as a syntax failure.
"""

import ast
import re

from tollgate.errors import ERROR_SANDBOX_NESTING_BUDGET, SandboxRejectedError

FORBIDDEN_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\bimport\b"), "import statements"),
    (re.compile(r"__\w*__"), "dunder access"),
    (re.compile(r"\bprocess\s*\."), "process object access"),
    (re.compile(r"\b(?:os|sys|subprocess|builtins|importlib)\s*\."), "host module access"),
    (re.compile(r"\b(?:globals|locals|vars)\s*\("), "global scope access"),
    (re.compile(r"\beval\s*\("), "eval()"),
    (re.compile(r"\bexec\s*\("), "exec()"),
    (re.compile(r"\bcompile\s*\("), "compile()"),
    (re.compile(r"\bopen\s*\("), "open()"),
    (re.compile(r"\b(?:getattr|setattr|delattr)\s*\("), "dynamic attribute access"),
    (re.compile(r"\btype\s*\("), "dynamic type construction"),
    (re.compile(r"\b(?:FunctionType|LambdaType|CodeType)\b"), "dynamic function construction"),
    (re.compile(r"\.\s*format(?:_map)?\s*\("), "str.format"),
)

FORBIDDEN_NAMES = frozenset({
    "eval", "exec", "compile", "open", "input", "breakpoint",
    "getattr", "setattr", "delattr", "globals", "locals", "vars",
    "type", "memoryview", "help",
    "os", "sys", "subprocess", "builtins", "importlib", "process",
})

FORBIDDEN_ATTRIBUTES = frozenset({
    # Frames and code objects
    "gi_frame", "gi_code", "cr_frame", "cr_code", "ag_frame", "ag_code",
    "f_globals", "f_locals", "f_builtins", "f_back", "f_code",
    "tb_frame", "tb_next", "co_code", "co_consts",
    # Type system
    "mro",
    # Format strings can reach attributes by name
    "format", "format_map",
})

_FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)


def parse_fragment(code: str, allow_top_level_await: bool = False) -> ast.Module:
    """Parse a fragment to an AST. Raises SyntaxError."""
    flags = ast.PyCF_ONLY_AST
    if allow_top_level_await:
        flags |= ast.PyCF_ALLOW_TOP_LEVEL_AWAIT
    return compile(code, "<fragment>", "exec", flags=flags, dont_inherit=True)


def count_function_sites(tree: ast.AST) -> int:
    return sum(1 for node in ast.walk(tree) if isinstance(node, _FUNCTION_NODES))


def check_text(code: str) -> None:
    """Raise SandboxRejectedError for the first forbidden pattern found."""
    for pattern, construct in FORBIDDEN_PATTERNS:
        match = pattern.search(code)
        if match:
            raise SandboxRejectedError(
                construct=construct,
                line=code.count("\n", 0, match.start()) + 1,
            )


def check_tree(tree: ast.AST) -> None:
    """Raise SandboxRejectedError for the first forbidden node found."""
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise SandboxRejectedError(construct="import statements", line=node.lineno)

        if isinstance(node, ast.Name) and (node.id in FORBIDDEN_NAMES or node.id.startswith("__")):
            raise SandboxRejectedError(construct=f"name '{node.id}'", line=node.lineno)

        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES:
                raise SandboxRejectedError(construct=f"attribute '{node.attr}'", line=node.lineno)

        # Class patterns read attributes by name: case C(attr=x)
        if isinstance(node, ast.MatchClass):
            for attr in node.kwd_attrs:
                if attr.startswith("_") or attr in FORBIDDEN_ATTRIBUTES:
                    raise SandboxRejectedError(construct=f"attribute '{attr}'", line=node.lineno)


def check_nesting(tree: ast.AST, max_stack_depth: int) -> None:
    count = count_function_sites(tree)
    if count > max_stack_depth:
        raise SandboxRejectedError(
            message=f"Too many nested functions ({count} > {max_stack_depth})",
            code=ERROR_SANDBOX_NESTING_BUDGET,
            construct="function definitions",
        )


def validate_fragment(
    code: str,
    max_stack_depth: int,
    allow_top_level_await: bool = False,
) -> ast.Module:
    """
    Run every validation pass over a fragment.

    Args:
        code: Fragment source
        max_stack_depth: Maximum number of function definition sites
        allow_top_level_await: Accept `await` outside functions

    Returns:
        The parsed module

    Raises:
        SandboxRejectedError: A forbidden construct or a blown nesting budget
        SyntaxError: The fragment does not parse
    """
    check_text(code)
    tree = parse_fragment(code, allow_top_level_await)
    check_tree(tree)
    check_nesting(tree, max_stack_depth)
    return tree
