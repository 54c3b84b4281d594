"""File SQLAlchemy model and Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base


class File(Base):
    """
    File metadata. Bytes live in the object store under storage_key.
    path is copied from the owning folder's path when the file is written and
    rewritten by folder rename/move; it is never derived from folder_id on read.
    """

    __tablename__ = "files"
    __table_args__ = (Index("ix_files_owner_path", "owner_id", "path"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(1024), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)  # SHA-256 hex
    owner_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    folder_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_with: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class FileResponse(BaseModel):
    """File as returned by API (no storage key)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    path: str
    size: int
    mime_type: str
    content_hash: str
    owner_id: str
    folder_id: Optional[str] = None
    version: int
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FileRename(BaseModel):
    """Request body for renaming a file."""

    name: str


class FileMove(BaseModel):
    """Move a file into folder_id (None = root level)."""

    folder_id: Optional[str] = None


class DownloadLink(BaseModel):
    """Short-lived signed download URL."""

    url: str
    expires_in: int
