"""Tests for the activity logger and activity queries."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.activity.service import (
    ActivityLogger,
    delete_activity,
    get_activity,
    get_activity_stats,
    get_recent_activities,
    get_user_activities,
    total_pages,
)

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _clock(start=T0):
    """Clock that advances one minute per call."""
    state = {"now": start}

    def now():
        state["now"] += timedelta(minutes=1)
        return state["now"]

    return now


@pytest.fixture
def logger(session, ids):
    return ActivityLogger(session, clock=_clock(), id_factory=ids)


@pytest.mark.asyncio
async def test_record_and_page(session, logger):
    for i in range(5):
        await logger.record("u1", "upload", f"x{i}", "File", {"size": i})
    await logger.record("u1", "rename", "f1", "Folder", {"from": "docs", "to": "archive"})
    await logger.record("u2", "upload", "y1", "File")

    page, total = await get_user_activities(session, "u1", page=1, limit=4)
    assert total == 6
    assert total_pages(total, 4) == 2
    assert [a.action for a in page] == ["rename", "upload", "upload", "upload"]
    assert page[0].details == {"from": "docs", "to": "archive"}

    second, _ = await get_user_activities(session, "u1", page=2, limit=4)
    assert [a.target_id for a in second] == ["x1", "x0"]

    renames, total = await get_user_activities(session, "u1", action="rename")
    assert total == 1
    assert renames[0].target_kind == "Folder"


@pytest.mark.asyncio
async def test_unknown_action_is_ignored(session, logger):
    assert await logger.record("u1", "explode", "x", "File") is None
    assert await logger.record("u1", "upload", "x", "Share") is None
    _, total = await get_user_activities(session, "u1")
    assert total == 0


@pytest.mark.asyncio
async def test_store_failure_is_swallowed(session, logger, monkeypatch):
    async def broken_commit():
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "commit", broken_commit)
    assert await logger.record("u1", "upload", "x", "File") is None


@pytest.mark.asyncio
async def test_recent_get_delete(session, logger):
    first = await logger.record("u1", "create", "f1", "Folder")
    await logger.record("u1", "delete", "f1", "Folder")
    recent = await get_recent_activities(session, "u1", limit=1)
    assert [a.action for a in recent] == ["delete"]

    assert (await get_activity(session, first.id, "u1")).action == "create"
    assert await get_activity(session, first.id, "u2") is None
    assert await delete_activity(session, first.id, "u2") is False
    assert await delete_activity(session, first.id, "u1") is True
    await session.commit()
    assert await get_activity(session, first.id, "u1") is None


@pytest.mark.asyncio
async def test_stats_between_dates(session, logger):
    await logger.record("u1", "upload", "x1", "File")
    await logger.record("u1", "upload", "x2", "File")
    await logger.record("u1", "move", "f1", "Folder")
    stats = await get_activity_stats(session, "u1", T0, T0 + timedelta(hours=1))
    assert stats == [("move", 1), ("upload", 2)]
    assert await get_activity_stats(session, "u1", T0 + timedelta(days=1), T0 + timedelta(days=2)) == []


def test_total_pages() -> None:
    assert total_pages(0, 20) == 0
    assert total_pages(21, 20) == 2
    assert total_pages(5, 0) == 0
