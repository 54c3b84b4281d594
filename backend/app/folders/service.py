"""Folder service: create, list, contents, breadcrumbs, search, trash, color."""

import logging
from typing import List, Optional, Tuple

from app.clock import IdFactory, new_id
from app.files.models import File
from app.folders.models import Folder
from app.paths.coordinator import ActivityRecorder
from app.paths.errors import NameCollisionError, NotFoundError
from app.paths.locks import OwnerLocks, owner_locks
from app.paths.model import ancestors_of, compose, leaf_of
from app.store.records import RecordFilter, RecordStore

log = logging.getLogger(__name__)


class FolderService:
    """Folder reads and the writes that do not move a subtree."""

    def __init__(
        self,
        store: RecordStore,
        activity: Optional[ActivityRecorder] = None,
        locks: Optional[OwnerLocks] = None,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._store = store
        self._activity = activity
        self._locks = locks if locks is not None else owner_locks
        self._new_id = id_factory

    async def get_folder(self, owner_id: str, folder_id: str, include_deleted: bool = False) -> Folder:
        """Return the owner's folder or raise NotFoundError."""
        folder = await self._store.folders.find_by_id(folder_id)
        if folder is None or folder.owner_id != owner_id:
            raise NotFoundError("Folder not found")
        if folder.is_deleted and not include_deleted:
            raise NotFoundError("Folder not found")
        return folder

    async def find(self, folder_id: str) -> Optional[Folder]:
        """Folder by id regardless of owner; callers check access."""
        return await self._store.folders.find_by_id(folder_id)

    async def create_folder(
        self,
        owner_id: str,
        name: str,
        parent_id: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Folder:
        """
        Create a folder under parent_id (None = root). The path is derived from
        the parent's path now, under the owner's tree lock.
        """
        async with self._locks.hold(owner_id):
            parent = None
            if parent_id is not None:
                try:
                    parent = await self.get_folder(owner_id, parent_id)
                except NotFoundError:
                    raise NotFoundError("Parent folder not found") from None
            path = compose(parent.path if parent is not None else None, name)
            occupant = await self._store.folders.find_one(
                RecordFilter(owner_id=owner_id, path=path, is_deleted=False)
            )
            if occupant is not None:
                raise NameCollisionError(f"A folder named {path!r} already exists")
            fields = dict(
                id=self._new_id(),
                name=leaf_of(path),
                path=path,
                owner_id=owner_id,
                parent_id=parent.id if parent is not None else None,
            )
            if color:
                fields["color"] = color
            folder = await self._store.folders.create(**fields)
        await self._audit(owner_id, "create", folder.id, {"path": folder.path})
        log.info("create_folder user=%s folder=%s path=%r", owner_id, folder.id, folder.path)
        return folder

    async def list_folders(self, owner_id: str, parent_id: Optional[str] = None) -> List[Folder]:
        """Live folders directly under parent_id (None = root level)."""
        if parent_id is not None:
            await self.get_folder(owner_id, parent_id)
        return await self._store.folders.find(
            RecordFilter(
                owner_id=owner_id,
                parent_id=parent_id,
                root_only=parent_id is None,
                is_deleted=False,
            )
        )

    async def get_contents(self, folder: Folder) -> Tuple[List[Folder], List[File]]:
        """Live subfolders and files directly inside folder."""
        flt = RecordFilter(owner_id=folder.owner_id, parent_id=folder.id, is_deleted=False)
        return await self._store.folders.find(flt), await self._store.files.find(flt)

    async def breadcrumbs(self, folder: Folder) -> List[Folder]:
        """Ancestors of folder (outermost first) followed by folder itself."""
        paths = ancestors_of(folder.path)
        if not paths:
            return [folder]
        ancestors = await self._store.folders.find(
            RecordFilter(owner_id=folder.owner_id, paths=paths, is_deleted=False)
        )
        return sorted(ancestors, key=lambda f: len(f.path)) + [folder]

    async def search(self, owner_id: str, query: str) -> List[Folder]:
        """Live folders whose name contains query (case-insensitive)."""
        return await self._store.folders.find(
            RecordFilter(owner_id=owner_id, name_contains=query, is_deleted=False)
        )

    async def list_trash(self, owner_id: str) -> List[Folder]:
        """Folders deleted directly (not along with a trashed ancestor)."""
        trashed = await self._store.folders.find(RecordFilter(owner_id=owner_id, is_deleted=True))
        return [f for f in trashed if f.deleted_with == f.id]

    async def set_color(self, owner_id: str, folder_id: str, color: str) -> Folder:
        await self.get_folder(owner_id, folder_id)
        await self._store.folders.update_one(folder_id, {"color": color})
        await self._audit(owner_id, "update", folder_id, {"color": color})
        return await self.get_folder(owner_id, folder_id)

    async def _audit(self, owner_id: str, action: str, folder_id: str, details: dict) -> None:
        if self._activity is not None:
            await self._activity.record(owner_id, action, folder_id, "Folder", details)
