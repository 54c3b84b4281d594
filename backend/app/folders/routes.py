"""Folder API routes: create, list, contents, breadcrumbs, rename, move, delete, restore."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.auth.dependencies import get_current_user
from app.dependencies import get_coordinator, get_folder_service, get_share_service
from app.files.models import FileResponse
from app.files.service import remove_objects
from app.files.storage import LocalObjectStore, get_object_store
from app.folders.models import (
    Breadcrumb,
    FolderContents,
    FolderCreate,
    FolderMove,
    FolderOperationResponse,
    FolderResponse,
    FolderUpdate,
)
from app.folders.service import FolderService
from app.limiter import limiter
from app.paths.coordinator import PathCoordinator, PathOperationResult
from app.paths.errors import NotFoundError
from app.shares.service import ShareService
from app.users.models import User

router = APIRouter(prefix="/api/folders", tags=["folders"])
log = logging.getLogger(__name__)


def _operation_response(result: PathOperationResult) -> FolderOperationResponse:
    return FolderOperationResponse(
        folder=FolderResponse.model_validate(result.folder),
        descendants_touched=result.descendants_touched,
    )


@router.post("", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("120/minute")
async def create_folder(
    request: Request,
    body: FolderCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
) -> FolderResponse:
    folder = await folders.create_folder(current_user.id, body.name, body.parent_id, body.color)
    return FolderResponse.model_validate(folder)


@router.get("", response_model=List[FolderResponse])
@limiter.limit("60/minute")
async def list_folders(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
    parent_id: Optional[str] = None,
) -> List[FolderResponse]:
    """Live folders directly under parent_id (root level if omitted)."""
    result = await folders.list_folders(current_user.id, parent_id)
    return [FolderResponse.model_validate(f) for f in result]


@router.get("/search", response_model=List[FolderResponse])
@limiter.limit("60/minute")
async def search_folders(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
    q: Annotated[str, Query(min_length=1)],
) -> List[FolderResponse]:
    return [FolderResponse.model_validate(f) for f in await folders.search(current_user.id, q)]


@router.get("/trash", response_model=List[FolderResponse])
@limiter.limit("60/minute")
async def list_trash(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
) -> List[FolderResponse]:
    """Folders deleted directly; their trashed subtrees come back with them on restore."""
    return [FolderResponse.model_validate(f) for f in await folders.list_trash(current_user.id)]


@router.get("/{folder_id}", response_model=FolderResponse)
@limiter.limit("60/minute")
async def get_folder(
    request: Request,
    folder_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> FolderResponse:
    folder = await _readable_folder(folder_id, current_user, folders, shares)
    return FolderResponse.model_validate(folder)


@router.get("/{folder_id}/contents", response_model=FolderContents)
@limiter.limit("60/minute")
async def get_contents(
    request: Request,
    folder_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> FolderContents:
    """Subfolders and files directly inside a folder, for its owner or a sharee."""
    folder = await _readable_folder(folder_id, current_user, folders, shares)
    subfolders, files = await folders.get_contents(folder)
    log.info(
        "get_contents user=%s folder=%s subfolders=%d files=%d",
        current_user.id, folder.id, len(subfolders), len(files),
    )
    return FolderContents(
        folder=FolderResponse.model_validate(folder),
        subfolders=[FolderResponse.model_validate(f) for f in subfolders],
        files=[FileResponse.model_validate(f) for f in files],
    )


@router.get("/{folder_id}/breadcrumbs", response_model=List[Breadcrumb])
@limiter.limit("60/minute")
async def get_breadcrumbs(
    request: Request,
    folder_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
) -> List[Breadcrumb]:
    folder = await folders.get_folder(current_user.id, folder_id)
    return [Breadcrumb(id=f.id, name=f.name, path=f.path) for f in await folders.breadcrumbs(folder)]


@router.patch("/{folder_id}", response_model=FolderOperationResponse)
@limiter.limit("120/minute")
async def update_folder(
    request: Request,
    folder_id: str,
    body: FolderUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    folders: Annotated[FolderService, Depends(get_folder_service)],
    coordinator: Annotated[PathCoordinator, Depends(get_coordinator)],
) -> FolderOperationResponse:
    """Rename (descendant paths follow) and/or recolor a folder."""
    touched = 0
    if body.name is not None:
        result = await coordinator.rename_folder(current_user.id, folder_id, body.name)
        touched = result.descendants_touched
    if body.color is not None:
        await folders.set_color(current_user.id, folder_id, body.color)
    folder = await folders.get_folder(current_user.id, folder_id)
    return FolderOperationResponse(folder=FolderResponse.model_validate(folder), descendants_touched=touched)


@router.post("/{folder_id}/move", response_model=FolderOperationResponse)
@limiter.limit("120/minute")
async def move_folder(
    request: Request,
    folder_id: str,
    body: FolderMove,
    current_user: Annotated[User, Depends(get_current_user)],
    coordinator: Annotated[PathCoordinator, Depends(get_coordinator)],
) -> FolderOperationResponse:
    """Move a folder under body.parent_id (null = root level)."""
    return _operation_response(await coordinator.move_folder(current_user.id, folder_id, body.parent_id))


@router.delete("/{folder_id}")
@limiter.limit("120/minute")
async def delete_folder(
    request: Request,
    folder_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    coordinator: Annotated[PathCoordinator, Depends(get_coordinator)],
    objects: Annotated[LocalObjectStore, Depends(get_object_store)],
    hard: bool = False,
) -> dict:
    """Move a folder and its subtree to trash; with hard=true remove them and their bytes."""
    result = await coordinator.delete_folder(current_user.id, folder_id, hard=hard)
    removed = remove_objects(objects, result.storage_keys) if hard else 0
    return {
        "id": folder_id,
        "deleted": True,
        "hard": hard,
        "descendants_touched": result.descendants_touched,
        "objects_removed": removed,
    }


@router.post("/{folder_id}/restore", response_model=FolderOperationResponse)
@limiter.limit("120/minute")
async def restore_folder(
    request: Request,
    folder_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    coordinator: Annotated[PathCoordinator, Depends(get_coordinator)],
) -> FolderOperationResponse:
    return _operation_response(await coordinator.restore_folder(current_user.id, folder_id))


@router.post("/{folder_id}/repair", response_model=FolderOperationResponse)
@limiter.limit("30/minute")
async def repair_folder(
    request: Request,
    folder_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    coordinator: Annotated[PathCoordinator, Depends(get_coordinator)],
) -> FolderOperationResponse:
    """Finish an interrupted rename/move of this folder; no-op when consistent."""
    return _operation_response(await coordinator.repair_folder(current_user.id, folder_id))


async def _readable_folder(folder_id: str, user: User, folders: FolderService, shares: ShareService):
    folder = await folders.find(folder_id)
    if folder is None or folder.is_deleted or not await shares.can_read_folder(user.id, folder):
        raise NotFoundError("Folder not found")
    return folder
