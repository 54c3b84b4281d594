"""Materialized folder paths: slash-joined ancestor names ending in the node's own name."""

import unicodedata
from typing import List, Optional

from app.paths.errors import InvalidNameError, PathMismatchError

SEPARATOR = "/"
MAX_SEGMENT_LENGTH = 255


def _is_unsafe_char(c: str) -> bool:
    """True for separators and control characters (including DEL and C1 controls)."""
    if c in "/\\":
        return True
    return unicodedata.category(c) == "Cc"


def validate_name(name: Optional[str]) -> str:
    """
    Return the stripped name if it is a valid single path segment.
    Raises InvalidNameError for empty, '.', '..', overlong names, or names with
    a separator or control characters.
    """
    if name is None:
        raise InvalidNameError("Name is required")
    name = name.strip()
    if not name:
        raise InvalidNameError("Name must not be empty")
    if name in (".", ".."):
        raise InvalidNameError(f"Invalid name: {name!r}")
    if len(name) > MAX_SEGMENT_LENGTH:
        raise InvalidNameError(
            f"Name cannot be more than {MAX_SEGMENT_LENGTH} characters"
        )
    if any(_is_unsafe_char(c) for c in name):
        raise InvalidNameError(f"Name contains invalid characters: {name!r}")
    return name


def compose(parent_path: Optional[str], name: str) -> str:
    """Path of a node called name under parent_path (root when parent_path is None)."""
    name = validate_name(name)
    if parent_path is None:
        return name
    return f"{parent_path}{SEPARATOR}{name}"


def descendant_prefix(path: str) -> str:
    """Prefix matching strict descendants of path, never path itself."""
    return path + SEPARATOR


def rewrite(candidate: str, old_prefix: str, new_prefix: str) -> str:
    """Replace the leading old_prefix of candidate with new_prefix."""
    if not candidate.startswith(old_prefix):
        raise PathMismatchError(
            f"Path {candidate!r} does not start with {old_prefix!r}"
        )
    return new_prefix + candidate[len(old_prefix):]


def is_descendant(path: str, ancestor: str) -> bool:
    """True if path lies strictly below ancestor."""
    return path.startswith(descendant_prefix(ancestor))


def parent_of(path: str) -> Optional[str]:
    """Parent path, or None for a root-level path."""
    head, sep, _ = path.rpartition(SEPARATOR)
    return head if sep else None


def leaf_of(path: str) -> str:
    """Last segment of path."""
    return path.rpartition(SEPARATOR)[2]


def ancestors_of(path: str) -> List[str]:
    """Paths of all ancestors, outermost first (empty for a root-level path)."""
    parts = path.split(SEPARATOR)
    return [SEPARATOR.join(parts[:i]) for i in range(1, len(parts))]
