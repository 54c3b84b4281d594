"""Share service: share folders and files with other users, check read access."""

import logging
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import IdFactory, new_id
from app.folders.models import Folder
from app.paths.coordinator import ActivityRecorder
from app.paths.errors import NotFoundError
from app.paths.model import ancestors_of
from app.shares.models import FileShare, FolderShare, Permission, ShareResponse
from app.store.records import RecordFilter, RecordStore
from app.users.service import get_user_by_email

log = logging.getLogger(__name__)

AnyShare = Union[FolderShare, FileShare]


def to_response(share: AnyShare) -> ShareResponse:
    if isinstance(share, FolderShare):
        target_id, kind = share.folder_id, "Folder"
    else:
        target_id, kind = share.file_id, "File"
    return ShareResponse(
        id=share.id,
        target_id=target_id,
        kind=kind,
        shared_by=share.shared_by,
        shared_with=share.shared_with,
        permission=share.permission,
        created_at=share.created_at,
    )


class ShareService:
    """Shares are keyed by target id and recipient user id; only the owner shares."""

    def __init__(
        self,
        session: AsyncSession,
        store: RecordStore,
        activity: Optional[ActivityRecorder] = None,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._session = session
        self._store = store
        self._activity = activity
        self._new_id = id_factory

    async def _recipient_id(self, owner_id: str, email: str) -> str:
        user = await get_user_by_email(self._session, email)
        if user is None:
            raise NotFoundError("User not found")
        if user.id == owner_id:
            raise ValueError("Cannot share with yourself")
        return user.id

    async def _save(self, share: AnyShare) -> AnyShare:
        self._session.add(share)
        await self._session.commit()
        await self._session.refresh(share)
        return share

    async def share_folder(self, owner_id: str, folder_id: str, email: str, permission: Permission = "read") -> FolderShare:
        """Share a live folder (and so its subtree) with the user registered under email."""
        folder = await self._store.folders.find_by_id(folder_id)
        if folder is None or folder.owner_id != owner_id or folder.is_deleted:
            raise NotFoundError("Folder not found")
        recipient = await self._recipient_id(owner_id, email)
        existing = await self._session.execute(
            select(FolderShare).where(FolderShare.folder_id == folder_id, FolderShare.shared_with == recipient)
        )
        if existing.scalar_one_or_none() is not None:
            raise ValueError("Folder is already shared with this user")
        share = await self._save(
            FolderShare(
                id=self._new_id(),
                folder_id=folder_id,
                shared_by=owner_id,
                shared_with=recipient,
                permission=permission,
            )
        )
        if not folder.is_shared:
            await self._store.folders.update_one(folder_id, {"is_shared": True})
        await self._audit(owner_id, "share", folder_id, "Folder", {"with": recipient, "permission": permission})
        log.info("share_folder user=%s folder=%s with=%s permission=%s", owner_id, folder_id, recipient, permission)
        return share

    async def share_file(self, owner_id: str, file_id: str, email: str, permission: Permission = "read") -> FileShare:
        """Share a live file with the user registered under email."""
        record = await self._store.files.find_by_id(file_id)
        if record is None or record.owner_id != owner_id or record.is_deleted:
            raise NotFoundError("File not found")
        recipient = await self._recipient_id(owner_id, email)
        existing = await self._session.execute(
            select(FileShare).where(FileShare.file_id == file_id, FileShare.shared_with == recipient)
        )
        if existing.scalar_one_or_none() is not None:
            raise ValueError("File is already shared with this user")
        share = await self._save(
            FileShare(
                id=self._new_id(),
                file_id=file_id,
                shared_by=owner_id,
                shared_with=recipient,
                permission=permission,
            )
        )
        await self._audit(owner_id, "share", file_id, "File", {"with": recipient, "permission": permission})
        log.info("share_file user=%s file=%s with=%s permission=%s", owner_id, file_id, recipient, permission)
        return share

    async def _get(self, model, share_id: str, owner_id: str) -> AnyShare:
        share = await self._session.get(model, share_id)
        if share is None or share.shared_by != owner_id:
            raise NotFoundError("Share not found")
        return share

    async def update_permission(self, model, owner_id: str, share_id: str, permission: Permission) -> AnyShare:
        share = await self._get(model, share_id, owner_id)
        share.permission = permission
        await self._session.commit()
        await self._session.refresh(share)
        return share

    async def unshare(self, model, owner_id: str, share_id: str) -> None:
        """Remove a share; a folder with no shares left is no longer marked shared."""
        share = await self._get(model, share_id, owner_id)
        recipient = share.shared_with
        if isinstance(share, FolderShare):
            target_id, kind = share.folder_id, "Folder"
        else:
            target_id, kind = share.file_id, "File"
        await self._session.delete(share)
        await self._session.commit()
        if kind == "Folder":
            left = await self._session.execute(
                select(FolderShare.id).where(FolderShare.folder_id == target_id).limit(1)
            )
            if left.first() is None:
                await self._store.folders.update_one(target_id, {"is_shared": False})
        await self._audit(owner_id, "unshare", target_id, kind, {"with": recipient})
        log.info("unshare user=%s %s=%s with=%s", owner_id, kind.lower(), target_id, recipient)

    async def shared_with_me(self, user_id: str) -> List[AnyShare]:
        folders = await self._session.execute(
            select(FolderShare).where(FolderShare.shared_with == user_id).order_by(FolderShare.created_at)
        )
        files = await self._session.execute(
            select(FileShare).where(FileShare.shared_with == user_id).order_by(FileShare.created_at)
        )
        return list(folders.scalars().all()) + list(files.scalars().all())

    async def shared_by_me(self, user_id: str) -> List[AnyShare]:
        folders = await self._session.execute(select(FolderShare).where(FolderShare.shared_by == user_id))
        files = await self._session.execute(select(FileShare).where(FileShare.shared_by == user_id))
        return list(folders.scalars().all()) + list(files.scalars().all())

    async def can_read_folder(self, user_id: str, folder: Folder) -> bool:
        """
        True if user owns folder, or folder or one of its live ancestors is
        shared with user. Ancestors are found by path, so access follows a
        shared folder's subtree through renames and moves.
        """
        if folder.owner_id == user_id:
            return True
        if folder.is_deleted:
            return False
        ids = [folder.id]
        paths = ancestors_of(folder.path)
        if paths:
            ancestors = await self._store.folders.find(
                RecordFilter(owner_id=folder.owner_id, paths=paths, is_deleted=False)
            )
            ids.extend(a.id for a in ancestors)
        hit = await self._session.execute(
            select(FolderShare.id)
            .where(FolderShare.shared_with == user_id, FolderShare.folder_id.in_(ids))
            .limit(1)
        )
        return hit.first() is not None

    async def can_read_file(self, user_id: str, record) -> bool:
        """Owner, a direct file share, or read access to the file's folder."""
        if record.owner_id == user_id:
            return True
        if record.is_deleted:
            return False
        hit = await self._session.execute(
            select(FileShare.id).where(FileShare.file_id == record.id, FileShare.shared_with == user_id).limit(1)
        )
        if hit.first() is not None:
            return True
        if record.folder_id is None:
            return False
        folder = await self._store.folders.find_by_id(record.folder_id)
        return folder is not None and await self.can_read_folder(user_id, folder)

    async def _audit(self, user_id: str, action: str, target_id: str, kind: str, details: dict) -> None:
        if self._activity is not None:
            await self._activity.record(user_id, action, target_id, kind, details)
