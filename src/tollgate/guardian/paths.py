"""
Path helpers shared by the guardian and the path-based policy conditions.

Paths are treated as strings, never touched on disk: the core judges
proposed operations, some of which target files that do not exist yet.
Backslashes are normalized to forward slashes so Windows-style input is
judged the same way as POSIX input.
"""

import os
import posixpath
import re

_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")


def normalize_path(path: str) -> str:
    """Replace backslash separators with forward slashes."""
    return path.replace("\\", "/")


def is_absolute_path(path: str) -> bool:
    """True for POSIX absolute paths and drive-letter paths (C:/...)."""
    normalized = normalize_path(path)
    return normalized.startswith("/") or bool(_DRIVE_LETTER.match(normalized))


def has_traversal_segment(path: str) -> bool:
    """True if any segment of the path is "..". Names like "a..b" are fine."""
    return ".." in normalize_path(path).split("/")


def resolve_against(path: str, root: str) -> str:
    """
    Lexically resolve a path against a root directory.

    Relative paths are joined onto the root; ".." and "." segments are
    collapsed. Symlinks are not followed.
    """
    normalized = normalize_path(path)
    if not is_absolute_path(normalized):
        normalized = posixpath.join(normalize_path(root), normalized)
    return posixpath.normpath(normalized)


def absolute_root(root: str) -> str:
    """A relative root is taken relative to the process working directory."""
    normalized = normalize_path(root)
    if is_absolute_path(normalized):
        return normalized
    return posixpath.join(normalize_path(os.getcwd()), normalized)


def is_within(path: str, root: str) -> bool:
    """
    Segment-wise containment check on resolved paths.

    "/repo/src" is within "/repo"; "/repo2" is not.
    """
    root = absolute_root(root)
    resolved = resolve_against(path, root)
    base = posixpath.normpath(normalize_path(root)).rstrip("/")
    if _DRIVE_LETTER.match(base):
        resolved = resolved[:1].lower() + resolved[1:]
        base = base[:1].lower() + base[1:]
    return resolved == base or resolved.startswith(base + "/")


def file_name(path: str) -> str:
    """Last segment of the path."""
    return normalize_path(path).rstrip("/").split("/")[-1]


def is_dotfile(path: str) -> bool:
    name = file_name(path)
    return name.startswith(".") and name not in (".", "..")
