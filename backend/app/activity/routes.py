"""Activity API routes: paginated history, recent, stats, get and delete."""

import logging
from datetime import datetime
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity.models import ActivityPage, ActivityResponse, ActivityStat
from app.activity.service import (
    delete_activity,
    get_activity,
    get_activity_stats,
    get_recent_activities,
    get_user_activities,
    total_pages,
)
from app.auth.dependencies import get_current_user
from app.db.session import get_db
from app.limiter import limiter
from app.users.models import User

router = APIRouter(prefix="/api/activity", tags=["activity"])
log = logging.getLogger(__name__)


@router.get("", response_model=ActivityPage)
@limiter.limit("60/minute")
async def list_activities(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
    action: Optional[str] = None,
) -> ActivityPage:
    """Current user's activities, newest first, optionally filtered by action."""
    activities, total = await get_user_activities(session, current_user.id, page, limit, action)
    return ActivityPage(
        activities=[ActivityResponse.model_validate(a) for a in activities],
        current_page=page,
        total_pages=total_pages(total, limit),
        total_count=total,
    )


@router.get("/recent", response_model=List[ActivityResponse])
@limiter.limit("60/minute")
async def recent_activities(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> List[ActivityResponse]:
    activities = await get_recent_activities(session, current_user.id, limit)
    return [ActivityResponse.model_validate(a) for a in activities]


@router.get("/stats", response_model=List[ActivityStat])
@limiter.limit("30/minute")
async def activity_stats(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
    start: datetime,
    end: datetime,
) -> List[ActivityStat]:
    """Per-action counts between start and end."""
    if end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="end must not be before start")
    stats = await get_activity_stats(session, current_user.id, start, end)
    return [ActivityStat(action=action, count=count) for action, count in stats]


@router.get("/{activity_id}", response_model=ActivityResponse)
@limiter.limit("60/minute")
async def get_one(
    request: Request,
    activity_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> ActivityResponse:
    activity = await get_activity(session, activity_id, current_user.id)
    if activity is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Activity not found")
    return ActivityResponse.model_validate(activity)


@router.delete("/{activity_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("60/minute")
async def delete_one(
    request: Request,
    activity_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    session: Annotated[AsyncSession, Depends(get_db)],
) -> None:
    if not await delete_activity(session, activity_id, current_user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Activity not found")
    await session.commit()
    log.info("delete_activity user=%s activity=%s", current_user.id, activity_id)
