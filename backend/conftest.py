"""Pytest configuration: set test env before any app imports so DB and JWT use test values."""

import os
import tempfile
from itertools import count

import pytest
import pytest_asyncio

# Set before app.db.session or app.config are used so engine and settings use test paths
_tmp = tempfile.mkdtemp(prefix="skyvault_test_")
os.environ.setdefault("SKYVAULT_DB_PATH", os.path.join(_tmp, "test.db"))
os.environ.setdefault("SKYVAULT_STORAGE_BASE_PATH", os.path.join(_tmp, "objects"))
os.environ.setdefault("SKYVAULT_JWT_SECRET", "test-jwt-secret-at-least-32-characters-long")


@pytest_asyncio.fixture
async def session(tmp_path):
    """AsyncSession on a fresh SQLite database per test."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from app.db.session import Base, _register_models

    _register_models()
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as s:
        yield s
    await engine.dispose()


@pytest.fixture
def store(session):
    from app.store.records import RecordStore

    return RecordStore(session, timeout=5.0)


class RecordingActivity:
    """Activity recorder that keeps calls in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.calls = []
        self.fail = fail

    async def record(self, user_id, action, target_id, target_kind, details=None):
        if self.fail:
            raise RuntimeError("activity store down")
        self.calls.append((user_id, action, target_id, target_kind, details))

    def actions(self):
        return [c[1] for c in self.calls]


@pytest.fixture
def activity():
    return RecordingActivity()


@pytest.fixture
def failing_activity():
    return RecordingActivity(fail=True)


@pytest.fixture
def ids():
    """Deterministic id factory: id0001, id0002, ..."""
    counter = count(1)
    return lambda: f"id{next(counter):04d}"


@pytest.fixture
def locks():
    from app.paths.locks import OwnerLocks

    return OwnerLocks()
