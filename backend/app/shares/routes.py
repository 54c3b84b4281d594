"""Share API routes: share folders and files, list, change permission, unshare."""

import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.auth.dependencies import get_current_user
from app.dependencies import get_share_service
from app.limiter import limiter
from app.shares.models import FileShare, FolderShare, ShareCreate, ShareResponse, ShareUpdate
from app.shares.service import ShareService, to_response
from app.users.models import User

router = APIRouter(prefix="/api/shares", tags=["shares"])
log = logging.getLogger(__name__)

_MODELS = {"folders": FolderShare, "files": FileShare}


def _model_for(kind: str):
    model = _MODELS.get(kind)
    if model is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown share kind")
    return model


@router.post("/{kind}", response_model=ShareResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def create_share(
    request: Request,
    kind: str,
    body: ShareCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> ShareResponse:
    """Share a folder (kind=folders) or file (kind=files) with another user by email."""
    model = _model_for(kind)
    try:
        if model is FolderShare:
            share = await shares.share_folder(current_user.id, body.target_id, body.email, body.permission)
        else:
            share = await shares.share_file(current_user.id, body.target_id, body.email, body.permission)
    except ValueError as e:
        log.warning("create_share rejected user=%s target=%s: %s", current_user.id, body.target_id, e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return to_response(share)


@router.get("/shared-with-me", response_model=List[ShareResponse])
@limiter.limit("60/minute")
async def shared_with_me(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> List[ShareResponse]:
    return [to_response(s) for s in await shares.shared_with_me(current_user.id)]


@router.get("/shared-by-me", response_model=List[ShareResponse])
@limiter.limit("60/minute")
async def shared_by_me(
    request: Request,
    current_user: Annotated[User, Depends(get_current_user)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> List[ShareResponse]:
    return [to_response(s) for s in await shares.shared_by_me(current_user.id)]


@router.patch("/{kind}/{share_id}", response_model=ShareResponse)
@limiter.limit("60/minute")
async def update_share(
    request: Request,
    kind: str,
    share_id: str,
    body: ShareUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> ShareResponse:
    share = await shares.update_permission(_model_for(kind), current_user.id, share_id, body.permission)
    return to_response(share)


@router.delete("/{kind}/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("60/minute")
async def delete_share(
    request: Request,
    kind: str,
    share_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    shares: Annotated[ShareService, Depends(get_share_service)],
) -> None:
    await shares.unshare(_model_for(kind), current_user.id, share_id)
