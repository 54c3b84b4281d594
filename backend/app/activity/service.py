"""Activity service: write audit records and query a user's history."""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity.models import ACTIONS, TARGET_KINDS, Activity
from app.clock import Clock, IdFactory, new_id, utc_now

log = logging.getLogger(__name__)


class ActivityLogger:
    """
    Fire-and-forget audit writer. A failed write is logged and rolled back,
    never raised, so it cannot fail the operation being audited.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = utc_now,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._session = session
        self._clock = clock
        self._new_id = id_factory

    async def record(
        self,
        user_id: str,
        action: str,
        target_id: str,
        target_kind: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[Activity]:
        """Store one activity; return it, or None if it could not be written."""
        if action not in ACTIONS or target_kind not in TARGET_KINDS:
            log.warning("Ignoring unknown activity action=%s kind=%s", action, target_kind)
            return None
        activity = Activity(
            id=self._new_id(),
            user_id=user_id,
            action=action,
            target_id=target_id,
            target_kind=target_kind,
            details=details,
            created_at=self._clock(),
        )
        try:
            self._session.add(activity)
            await self._session.commit()
        except SQLAlchemyError as e:
            log.warning("Failed to log activity %s on %s %s: %s", action, target_kind, target_id, e)
            await self._session.rollback()
            return None
        return activity


async def get_user_activities(
    session: AsyncSession,
    user_id: str,
    page: int = 1,
    limit: int = 20,
    action: Optional[str] = None,
) -> Tuple[List[Activity], int]:
    """Return (activities on this page newest first, total count)."""
    where = [Activity.user_id == user_id]
    if action:
        where.append(Activity.action == action)
    total = (
        await session.execute(select(func.count()).select_from(Activity).where(*where))
    ).scalar_one()
    result = await session.execute(
        select(Activity)
        .where(*where)
        .order_by(Activity.created_at.desc(), Activity.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total)


def total_pages(total_count: int, limit: int) -> int:
    """Number of pages needed for total_count items."""
    return math.ceil(total_count / limit) if limit > 0 else 0


async def get_recent_activities(session: AsyncSession, user_id: str, limit: int = 10) -> List[Activity]:
    activities, _ = await get_user_activities(session, user_id, page=1, limit=limit)
    return activities


async def get_activity(session: AsyncSession, activity_id: str, user_id: str) -> Optional[Activity]:
    """Return the user's activity by id or None."""
    result = await session.execute(
        select(Activity).where(Activity.id == activity_id, Activity.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def delete_activity(session: AsyncSession, activity_id: str, user_id: str) -> bool:
    """Delete one of the user's activities. Caller must commit."""
    result = await session.execute(
        delete(Activity).where(Activity.id == activity_id, Activity.user_id == user_id)
    )
    return (result.rowcount or 0) > 0


async def get_activity_stats(
    session: AsyncSession,
    user_id: str,
    start: datetime,
    end: datetime,
) -> List[Tuple[str, int]]:
    """Count the user's activities per action between start and end (inclusive)."""
    result = await session.execute(
        select(Activity.action, func.count())
        .where(
            Activity.user_id == user_id,
            Activity.created_at >= start,
            Activity.created_at <= end,
        )
        .group_by(Activity.action)
        .order_by(Activity.action)
    )
    return [(row[0], int(row[1])) for row in result.all()]
