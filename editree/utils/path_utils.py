"""
Logical path helpers.

Workspace paths are slash-delimited and rooted at the opened directory's own
name: ``proj``, ``proj/src``, ``proj/src/index.ts``. None of these helpers
touch storage.
"""

from typing import List, Optional

SEPARATOR = "/"


def split_path(path: str) -> List[str]:
    """Split a logical path into its non-empty segments."""
    return [part for part in path.replace("\\", SEPARATOR).split(SEPARATOR) if part]


def join_path(parent: str, name: str) -> str:
    if not parent:
        return name
    return f"{parent}{SEPARATOR}{name}"


def parent_path(path: str) -> Optional[str]:
    """
    Parent of ``path``, or None for a single-segment path (the root).
    """
    if SEPARATOR not in path:
        return None
    return path[: path.rindex(SEPARATOR)]


def base_name(path: str) -> str:
    return path.rsplit(SEPARATOR, 1)[-1]


def is_same_or_descendant(path: str, ancestor: str) -> bool:
    """True when ``path`` is ``ancestor`` itself or lies underneath it."""
    return path == ancestor or path.startswith(ancestor + SEPARATOR)


def rewrite_prefix(path: str, old_prefix: str, new_prefix: str) -> str:
    """
    Replace ``old_prefix`` at the start of ``path`` with ``new_prefix``.

    Only whole segments are matched: ``proj/src2`` is untouched when
    ``proj/src`` is renamed.
    """
    if path == old_prefix:
        return new_prefix
    if path.startswith(old_prefix + SEPARATOR):
        return new_prefix + path[len(old_prefix):]
    return path


def relative_segments(path: str, root_name: str) -> List[str]:
    """
    Segments of ``path`` below the root.

    A leading root-name segment is stripped if present, so ``proj/src`` and
    ``src`` both give ``["src"]`` for root ``proj``.
    """
    segments = split_path(path)
    if segments and segments[0] == root_name:
        segments = segments[1:]
    return segments


def normalize_path(path: str, root_name: str) -> str:
    """
    Turn a user- or AI-supplied path into a full logical path.

    ``/util.ts``, ``./util.ts``, ``util.ts`` and ``proj/util.ts`` all become
    ``proj/util.ts``. ``.`` segments are dropped; ``..`` segments raise
    ValueError because they would escape the opened root.
    """
    segments = [s for s in split_path(path.strip()) if s != "."]
    if segments and segments[0] == root_name:
        segments = segments[1:]
    if ".." in segments:
        raise ValueError(f"Path escapes the workspace root: {path}")
    return SEPARATOR.join([root_name] + segments)
