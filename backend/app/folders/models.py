"""Folder SQLAlchemy model and Pydantic schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, DateTime, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base
from app.files.models import FileResponse

COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class Folder(Base):
    """Folder record. path is the materialized path (ancestor names + own name)."""

    __tablename__ = "folders"
    __table_args__ = (
        Index("ix_folders_owner_path", "owner_id", "path"),
        # At most one live folder per owner and path
        Index(
            "uq_folders_owner_live_path",
            "owner_id",
            "path",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
        ),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    parent_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    color: Mapped[str] = mapped_column(String(7), default="#000000", nullable=False)
    is_shared: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # Id of the folder whose soft delete trashed this record (restore batch)
    deleted_with: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


# Pydantic schemas for API
class FolderCreate(BaseModel):
    """Payload for creating a folder. parent_id None = root level."""

    name: str
    parent_id: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class FolderUpdate(BaseModel):
    """Rename and/or recolor a folder."""

    name: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)


class FolderMove(BaseModel):
    """Move a folder under parent_id (None = root level)."""

    parent_id: Optional[str] = None


class FolderResponse(BaseModel):
    """Folder as returned by API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    path: str
    owner_id: str
    parent_id: Optional[str] = None
    color: str
    is_shared: bool
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FolderOperationResponse(BaseModel):
    """Result of a rename/move/delete/restore/repair."""

    folder: FolderResponse
    descendants_touched: int


class FolderContents(BaseModel):
    """Direct children of a folder."""

    folder: FolderResponse
    subfolders: List[FolderResponse]
    files: List[FileResponse]


class Breadcrumb(BaseModel):
    """One ancestor in a folder's breadcrumb trail."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    path: str
