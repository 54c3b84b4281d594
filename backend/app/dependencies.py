"""FastAPI dependencies wiring the record store, activity log and services."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.activity.service import ActivityLogger
from app.db.session import get_db
from app.files.service import FileService
from app.files.storage import LocalObjectStore, get_object_store
from app.folders.service import FolderService
from app.paths.coordinator import PathCoordinator
from app.shares.service import ShareService
from app.store.records import RecordStore


def get_record_store(session: Annotated[AsyncSession, Depends(get_db)]) -> RecordStore:
    return RecordStore(session)


def get_activity_logger(session: Annotated[AsyncSession, Depends(get_db)]) -> ActivityLogger:
    return ActivityLogger(session)


def get_coordinator(
    store: Annotated[RecordStore, Depends(get_record_store)],
    activity: Annotated[ActivityLogger, Depends(get_activity_logger)],
) -> PathCoordinator:
    """Coordinator for this request, sharing the process-wide owner locks."""
    return PathCoordinator(store, activity)


def get_folder_service(
    store: Annotated[RecordStore, Depends(get_record_store)],
    activity: Annotated[ActivityLogger, Depends(get_activity_logger)],
) -> FolderService:
    return FolderService(store, activity)


def get_file_service(
    store: Annotated[RecordStore, Depends(get_record_store)],
    objects: Annotated[LocalObjectStore, Depends(get_object_store)],
    activity: Annotated[ActivityLogger, Depends(get_activity_logger)],
) -> FileService:
    return FileService(store, objects, activity)


def get_share_service(
    session: Annotated[AsyncSession, Depends(get_db)],
    store: Annotated[RecordStore, Depends(get_record_store)],
    activity: Annotated[ActivityLogger, Depends(get_activity_logger)],
) -> ShareService:
    return ShareService(session, store, activity)
