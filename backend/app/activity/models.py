"""Activity (audit log) SQLAlchemy model and Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base

ACTIONS = (
    "upload",
    "download",
    "create",
    "update",
    "delete",
    "rename",
    "move",
    "restore",
    "repair",
    "share",
    "unshare",
)
TARGET_KINDS = ("File", "Folder")


class Activity(Base):
    """One audit record per user-visible operation."""

    __tablename__ = "activities"
    __table_args__ = (Index("ix_activities_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    target_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    target_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ActivityResponse(BaseModel):
    """Activity as returned by API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    action: str
    target_id: str
    target_kind: str
    details: Optional[Dict[str, Any]] = None
    created_at: datetime


class ActivityPage(BaseModel):
    """One page of a user's activity, newest first."""

    activities: List[ActivityResponse]
    current_page: int
    total_pages: int
    total_count: int


class ActivityStat(BaseModel):
    """Count of activities for one action."""

    action: str
    count: int
