"""Object store for file bytes: keys resolve to files under the storage base dir (no traversal)."""

import logging
import re
import unicodedata
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from app.auth.jwt import create_download_token
from app.clock import IdFactory, new_id
from app.config import get_settings

log = logging.getLogger(__name__)

# Safe key segment: letters, numbers, common punctuation. No / \ (traversal).
_SAFE_SEGMENT_ASCII = re.compile(r"^[a-zA-Z0-9_. \-()+~#!&',;=\[\]@]+$")


def _is_safe_path_char(c: str) -> bool:
    """True if char is allowed in a key segment (no traversal, no control chars)."""
    if len(c) != 1:
        return False
    if c in "/\\%":
        return False  # % can be used in encoding/URLs; keep key segments safe
    if ord(c) < 32:
        return False
    if ("a" <= c <= "z") or ("A" <= c <= "Z") or ("0" <= c <= "9") or c in "_. -()+~#!&',;=[]@":
        return True
    cat = unicodedata.category(c)
    # Letter, Number, or Punctuation (e.g. fullwidth parentheses （） in "Manual（CN）.pdf")
    return cat.startswith("L") or cat.startswith("N") or cat.startswith("P")


def _sanitize_segment(segment: str) -> Optional[str]:
    """Return segment if safe, else None. Rejects empty, '..', '.', and invalid chars."""
    segment = segment.strip()
    if not segment or segment in (".", ".."):
        return None
    if _SAFE_SEGMENT_ASCII.match(segment):
        return segment
    if not all(_is_safe_path_char(c) for c in segment):
        return None
    return segment


def make_storage_key(owner_id: str, filename: str, id_factory: IdFactory = new_id) -> str:
    """Unique object key owner/<id>-<filename>; the filename part is dropped if unsafe."""
    safe_owner = _sanitize_segment(owner_id)
    if not safe_owner:
        raise ValueError("Invalid owner id for storage key")
    safe_name = _sanitize_segment(filename)
    leaf = f"{id_factory()}-{safe_name}" if safe_name else id_factory()
    return f"{safe_owner}/{leaf}"


class LocalObjectStore:
    """Stores objects as files under base_path; key segments are sanitized."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path

    def resolve(self, key: str) -> Path:
        """
        Resolve a key under the base path. Rejects traversal and unsafe names.
        key uses forward slashes; segments are sanitized.
        """
        parts = key.replace("\\", "/").strip("/").split("/")
        resolved = self.base_path
        for part in parts:
            if not part:
                continue
            safe = _sanitize_segment(part)
            if not safe:
                raise ValueError(f"Unsafe key segment: {part!r}")
            resolved = resolved / safe
        if resolved == self.base_path:
            raise ValueError("Empty storage key")
        return resolved

    def put(self, key: str, data: bytes, content_type: str) -> str:
        """Write data under key; return its location."""
        target = self.resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        log.debug("put key=%s size=%d type=%s", key, len(data), content_type)
        return str(target)

    def open(self, key: str) -> Path:
        """Path of the stored object. Raises FileNotFoundError if missing."""
        target = self.resolve(key)
        if not target.is_file():
            raise FileNotFoundError(f"Object not found: {key}")
        return target

    def exists(self, key: str) -> bool:
        try:
            return self.resolve(key).is_file()
        except ValueError:
            return False

    def delete(self, key: str) -> None:
        """
        Delete an object, then remove now-empty parent directories up to (but not
        including) the base path. Raises FileNotFoundError if it does not exist.
        """
        target = self.resolve(key)
        if not target.is_file():
            raise FileNotFoundError(f"Object not found: {key}")
        target.unlink()
        parent = target.parent
        while parent != self.base_path and parent.exists():
            try:
                if not any(parent.iterdir()):
                    parent.rmdir()
                    parent = parent.parent
                else:
                    break
            except OSError:
                break

    def signed_url(self, key: str, ttl: int) -> str:
        """Download URL carrying a token that expires after ttl seconds."""
        self.resolve(key)
        token = create_download_token(key, ttl)
        base = get_settings().public_base_url.rstrip("/")
        return f"{base}/api/files/download?token={quote(token)}"


def get_object_store() -> LocalObjectStore:
    """FastAPI dependency: object store rooted at the configured base path."""
    return LocalObjectStore(get_settings().storage_base_path)
