"""
Curated namespace for sandbox fragments.

Fragments see only these names (plus caller bindings). Everything here is
free of side effects: no I/O, no imports, no access to the interpreter.
Module-like groups are SimpleNamespaces holding selected functions rather
than real modules, because a real module leaks its own imports (json.codecs
reaches codecs.open, for example).
"""

import asyncio
import json
import math
import time
from datetime import date, datetime
from types import SimpleNamespace
from typing import Any
from urllib.parse import quote, unquote


def _echo(*args: Any) -> tuple[Any, ...]:
    """Console shim: hand the arguments back instead of printing them."""
    return args


SAFE_BUILTINS: dict[str, Any] = {
    # Constructors and conversions
    "bool": bool,
    "int": int,
    "float": float,
    "complex": complex,
    "str": str,
    "bytes": bytes,
    "list": list,
    "tuple": tuple,
    "dict": dict,
    "set": set,
    "frozenset": frozenset,
    "range": range,
    "slice": slice,
    # Read-only helpers
    "abs": abs,
    "all": all,
    "any": any,
    "chr": chr,
    "ord": ord,
    "divmod": divmod,
    "enumerate": enumerate,
    "filter": filter,
    "map": map,
    "zip": zip,
    "iter": iter,
    "next": next,
    "len": len,
    "max": max,
    "min": min,
    "sum": sum,
    "pow": pow,
    "round": round,
    "sorted": sorted,
    "reversed": reversed,
    "repr": repr,
    "hash": hash,
    "isinstance": isinstance,
    "print": _echo,
    # Exceptions fragments may raise or catch
    "Exception": Exception,
    "ArithmeticError": ArithmeticError,
    "AssertionError": AssertionError,
    "IndexError": IndexError,
    "KeyError": KeyError,
    "LookupError": LookupError,
    "StopIteration": StopIteration,
    "TypeError": TypeError,
    "ValueError": ValueError,
    "ZeroDivisionError": ZeroDivisionError,
}

SAFE_GLOBALS: dict[str, Any] = {
    "math": SimpleNamespace(
        abs=math.fabs,
        ceil=math.ceil,
        floor=math.floor,
        sqrt=math.sqrt,
        pow=math.pow,
        exp=math.exp,
        log=math.log,
        sin=math.sin,
        cos=math.cos,
        tan=math.tan,
        fsum=math.fsum,
        isclose=math.isclose,
        pi=math.pi,
        e=math.e,
        inf=math.inf,
    ),
    "json": SimpleNamespace(loads=json.loads, dumps=json.dumps),
    "dates": SimpleNamespace(
        now=time.time,
        parse_iso=datetime.fromisoformat,
        today_iso=lambda: date.today().isoformat(),
    ),
    "console": SimpleNamespace(log=_echo, error=_echo, warn=_echo),
    "url_quote": quote,
    "url_unquote": unquote,
}

# Extra names for execute_async fragments
ASYNC_GLOBALS: dict[str, Any] = {
    "sleep": asyncio.sleep,
    "gather": asyncio.gather,
}


def build_namespace(bindings: dict[str, Any], allow_async: bool = False) -> dict[str, Any]:
    """
    Build the globals dict a fragment runs in.

    Caller bindings override the curated globals; __builtins__ is always
    the curated table.
    """
    namespace: dict[str, Any] = dict(SAFE_GLOBALS)
    if allow_async:
        namespace.update(ASYNC_GLOBALS)
    namespace.update(bindings)
    namespace["__builtins__"] = dict(SAFE_BUILTINS)
    return namespace
