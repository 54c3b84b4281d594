"""File API routes: upload, list, rename, move, trash, restore, signed download."""

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import FileResponse as FileDownload

from app.auth.dependencies import get_current_user
from app.auth.jwt import get_key_from_download_token
from app.config import get_settings
from app.dependencies import get_file_service, get_share_service
from app.files.models import DownloadLink, FileMove, FileRename, FileResponse
from app.files.service import FileService
from app.limiter import limiter
from app.paths.errors import NotFoundError
from app.shares.service import ShareService
from app.users.models import User

router = APIRouter(prefix="/api/files", tags=["files"])
log = logging.getLogger(__name__)


@router.get("/storage")
@limiter.limit("60/minute")
async def get_storage(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
) -> dict:
    """Return current user's storage used in bytes (trash included)."""
    return {"used_bytes": await files.used_bytes(current_user.id)}


@router.post("/upload", response_model=FileResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("600/minute")
async def upload_file(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
    name: Annotated[str, Query(min_length=1)],
    folder_id: Optional[str] = None,
) -> FileResponse:
    """
    Upload a file. Query params: name, optional folder_id (root level if
    omitted). Body: raw file bytes; Content-Type is stored as the mime type.
    """
    body = await request.body()
    record = await files.upload(
        current_user.id,
        name,
        body,
        content_type=request.headers.get("content-type"),
        folder_id=folder_id,
    )
    return FileResponse.model_validate(record)


@router.get("", response_model=List[FileResponse])
@limiter.limit("60/minute")
async def list_files(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
    folder_id: Optional[str] = None,
) -> List[FileResponse]:
    """List live files in a folder (root level if folder_id is omitted)."""
    result = await files.list_files(current_user.id, folder_id)
    log.info("list_files user=%s folder=%s count=%d", current_user.id, folder_id, len(result))
    return [FileResponse.model_validate(f) for f in result]


@router.get("/search", response_model=List[FileResponse])
@limiter.limit("60/minute")
async def search_files(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
    q: Annotated[str, Query(min_length=1)],
) -> List[FileResponse]:
    return [FileResponse.model_validate(f) for f in await files.search(current_user.id, q)]


@router.get("/trash", response_model=List[FileResponse])
@limiter.limit("60/minute")
async def list_trash(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
) -> List[FileResponse]:
    """Files deleted on their own; files trashed with a folder come back with it."""
    return [FileResponse.model_validate(f) for f in await files.list_trash(current_user.id)]


@router.get("/download")
@limiter.limit("600/minute")
async def download_file(
    request: Request,
    files: Annotated[FileService, Depends(get_file_service)],
    token: str,
) -> FileDownload:
    """Serve bytes for a signed download token (no bearer auth needed)."""
    key = get_key_from_download_token(token)
    if not key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired link")
    record = await files.find_by_storage_key(key)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    try:
        target = files.open_object(record)
    except (FileNotFoundError, ValueError):
        log.error("download_file record=%s has no stored object key=%s", record.id, key)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return FileDownload(path=target, filename=record.name, media_type=record.mime_type)


@router.get("/{file_id}", response_model=FileResponse)
@limiter.limit("60/minute")
async def get_file(
    request: Request,
    file_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> FileResponse:
    """File metadata, for its owner or a user it is shared with."""
    return FileResponse.model_validate(await _readable_file(file_id, current_user, files, shares))


@router.get("/{file_id}/download-url", response_model=DownloadLink)
@limiter.limit("120/minute")
async def get_download_url(
    request: Request,
    file_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> DownloadLink:
    """Short-lived signed URL for the file's bytes."""
    record = await _readable_file(file_id, current_user, files, shares)
    ttl = get_settings().signed_url_expire_seconds
    url = await files.download_link(record, current_user.id, ttl)
    return DownloadLink(url=url, expires_in=ttl)


@router.patch("/{file_id}", response_model=FileResponse)
@limiter.limit("120/minute")
async def rename_file(
    request: Request,
    file_id: str,
    body: FileRename,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
) -> FileResponse:
    return FileResponse.model_validate(await files.rename_file(current_user.id, file_id, body.name))


@router.post("/{file_id}/move", response_model=FileResponse)
@limiter.limit("120/minute")
async def move_file(
    request: Request,
    file_id: str,
    body: FileMove,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
) -> FileResponse:
    """Move a file into body.folder_id (null = root level)."""
    return FileResponse.model_validate(await files.move_file(current_user.id, file_id, body.folder_id))


@router.delete("/{file_id}")
@limiter.limit("600/minute")
async def delete_file(
    request: Request,
    file_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
    hard: bool = False,
) -> dict:
    """Move a file to trash; with hard=true remove it and its bytes for good."""
    await files.delete_file(current_user.id, file_id, hard=hard)
    return {"id": file_id, "deleted": True, "hard": hard}


@router.post("/{file_id}/restore", response_model=FileResponse)
@limiter.limit("120/minute")
async def restore_file(
    request: Request,
    file_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    files: Annotated[FileService, Depends(get_file_service)],
) -> FileResponse:
    return FileResponse.model_validate(await files.restore_file(current_user.id, file_id))


async def _readable_file(file_id: str, user: User, files: FileService, shares: ShareService):
    record = await files.find(file_id)
    if record is None or not await shares.can_read_file(user.id, record):
        raise NotFoundError("File not found")
    if record.is_deleted:
        raise NotFoundError("File not found")
    return record
