"""Typed failures for folder path maintenance.

Each error carries the HTTP status it maps to and whether the caller may retry
the whole operation. ``state`` is filled in by the coordinator when a failure
happens after planning, so callers can tell a clean rejection from a partial
state that ``repair_folder`` can finish.
"""

from typing import Optional


class PathError(Exception):
    """Base class for path maintenance failures."""

    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.state: Optional[str] = None

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidNameError(PathError):
    """Name is empty, too long, or contains a separator or unsafe characters."""

    status_code = 400


class NameCollisionError(PathError):
    """Another live folder or file of the same owner already has the target path."""

    status_code = 409


class CyclicMoveError(PathError):
    """Target parent is the folder itself or one of its descendants."""

    status_code = 400


class CrossOwnerError(PathError):
    """Target parent belongs to a different user."""

    status_code = 403


class PathMismatchError(PathError):
    """A record selected by prefix does not carry that prefix (concurrent change)."""

    status_code = 409
    retryable = True


class NotFoundError(PathError):
    """Folder, file or target parent does not exist for this user."""

    status_code = 404


class StoreUnavailableError(PathError):
    """Record store call failed or timed out."""

    status_code = 503
    retryable = True
