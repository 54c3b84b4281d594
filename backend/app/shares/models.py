"""Share SQLAlchemy models and Pydantic schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr
from sqlalchemy import DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.session import Base

Permission = Literal["read", "write", "admin"]


class FolderShare(Base):
    """A folder shared by its owner with another user."""

    __tablename__ = "folder_shares"
    __table_args__ = (UniqueConstraint("folder_id", "shared_with"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    folder_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    shared_by: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    shared_with: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    permission: Mapped[str] = mapped_column(String(16), default="read", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class FileShare(Base):
    """A file shared by its owner with another user."""

    __tablename__ = "file_shares"
    __table_args__ = (UniqueConstraint("file_id", "shared_with"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    file_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    shared_by: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    shared_with: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    permission: Mapped[str] = mapped_column(String(16), default="read", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ShareCreate(BaseModel):
    """Share a file or folder (target_id) with the user registered under email."""

    target_id: str
    email: EmailStr
    permission: Permission = "read"


class ShareUpdate(BaseModel):
    """Change the permission of an existing share."""

    permission: Permission


class ShareResponse(BaseModel):
    """Share as returned by API. target_id is the file or folder id."""

    id: str
    target_id: str
    kind: Literal["File", "Folder"]
    shared_by: str
    shared_with: str
    permission: str
    created_at: datetime
