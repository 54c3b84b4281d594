"""Injectable clock and id factory for records and storage keys."""

import uuid
from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]


def utc_now() -> datetime:
    """Current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Random 32-char hex id."""
    return uuid.uuid4().hex
