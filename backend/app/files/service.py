"""File service: upload, list, rename, move, trash, restore, download links, usage."""

import hashlib
import logging
from typing import Iterable, List, Optional

from app.clock import Clock, IdFactory, new_id, utc_now
from app.files.models import File
from app.files.storage import LocalObjectStore, make_storage_key
from app.folders.models import Folder
from app.paths.coordinator import ActivityRecorder
from app.paths.errors import NameCollisionError, NotFoundError
from app.paths.locks import OwnerLocks, owner_locks
from app.paths.model import compose, validate_name
from app.store.records import RecordFilter, RecordStore

log = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


def compute_hash(body: bytes) -> str:
    """SHA-256 hex digest of file body."""
    return hashlib.sha256(body).hexdigest()


def remove_objects(objects: LocalObjectStore, keys: Iterable[str]) -> int:
    """Delete stored bytes for keys; missing or invalid keys are logged and skipped."""
    removed = 0
    for key in keys:
        try:
            objects.delete(key)
            removed += 1
        except (FileNotFoundError, ValueError) as e:
            log.warning("Could not remove object key=%s: %s", key, e)
    return removed


class FileService:
    """
    File records plus their bytes. A file's path is copied from its folder's
    path whenever the file is written, under the owner's tree lock.
    """

    def __init__(
        self,
        store: RecordStore,
        objects: LocalObjectStore,
        activity: Optional[ActivityRecorder] = None,
        locks: Optional[OwnerLocks] = None,
        clock: Clock = utc_now,
        id_factory: IdFactory = new_id,
    ) -> None:
        self._store = store
        self._objects = objects
        self._activity = activity
        self._locks = locks if locks is not None else owner_locks
        self._clock = clock
        self._new_id = id_factory

    async def get_file(self, owner_id: str, file_id: str, include_deleted: bool = False) -> File:
        """Return the owner's file or raise NotFoundError."""
        record = await self._store.files.find_by_id(file_id)
        if record is None or record.owner_id != owner_id:
            raise NotFoundError("File not found")
        if record.is_deleted and not include_deleted:
            raise NotFoundError("File not found")
        return record

    async def _live_folder(self, owner_id: str, folder_id: Optional[str]) -> Optional[Folder]:
        if folder_id is None:
            return None
        folder = await self._store.folders.find_by_id(folder_id)
        if folder is None or folder.owner_id != owner_id or folder.is_deleted:
            raise NotFoundError("Folder not found")
        return folder

    async def upload(
        self,
        owner_id: str,
        name: str,
        data: bytes,
        content_type: Optional[str] = None,
        folder_id: Optional[str] = None,
    ) -> File:
        """
        Store bytes and create the file record at folder.path/name. Uploading
        to a path that already holds a live file replaces it as a new version.
        """
        name = validate_name(name)
        content_type = content_type or DEFAULT_MIME_TYPE
        async with self._locks.hold(owner_id):
            folder = await self._live_folder(owner_id, folder_id)
            path = compose(folder.path if folder is not None else None, name)
            key = make_storage_key(owner_id, name, self._new_id)
            self._objects.put(key, data, content_type)
            existing = await self._store.files.find_one(
                RecordFilter(owner_id=owner_id, path=path, is_deleted=False)
            )
            if existing is not None:
                old_key = existing.storage_key
                await self._store.files.update_one(
                    existing.id,
                    {
                        "size": len(data),
                        "mime_type": content_type,
                        "storage_key": key,
                        "content_hash": compute_hash(data),
                        "version": existing.version + 1,
                    },
                )
                remove_objects(self._objects, [old_key])
                record = await self._store.files.find_by_id(existing.id)
            else:
                record = await self._store.files.create(
                    id=self._new_id(),
                    name=name,
                    path=path,
                    size=len(data),
                    mime_type=content_type,
                    storage_key=key,
                    content_hash=compute_hash(data),
                    owner_id=owner_id,
                    folder_id=folder.id if folder is not None else None,
                )
        await self._audit(owner_id, "upload", record.id, {"path": record.path, "size": record.size})
        log.info(
            "upload user=%s file=%s path=%r size=%d version=%d",
            owner_id, record.id, record.path, record.size, record.version,
        )
        return record

    async def list_files(self, owner_id: str, folder_id: Optional[str] = None) -> List[File]:
        """Live files directly inside folder_id (None = root level)."""
        if folder_id is not None:
            await self._live_folder(owner_id, folder_id)
        return await self._store.files.find(
            RecordFilter(
                owner_id=owner_id,
                parent_id=folder_id,
                root_only=folder_id is None,
                is_deleted=False,
            )
        )

    async def search(self, owner_id: str, query: str) -> List[File]:
        return await self._store.files.find(
            RecordFilter(owner_id=owner_id, name_contains=query, is_deleted=False)
        )

    async def _ensure_free(self, owner_id: str, path: str, file_id: str) -> None:
        """Raise NameCollisionError if another live file already sits at path."""
        occupant = await self._store.files.find_one(
            RecordFilter(owner_id=owner_id, path=path, is_deleted=False)
        )
        if occupant is not None and occupant.id != file_id:
            raise NameCollisionError(f"A file named {path!r} already exists")

    async def _relocate(self, owner_id: str, record: File, name: str, folder: Optional[Folder], action: str) -> File:
        path = compose(folder.path if folder is not None else None, name)
        await self._ensure_free(owner_id, path, record.id)
        await self._store.files.update_one(
            record.id,
            {"name": validate_name(name), "path": path, "folder_id": folder.id if folder else None},
        )
        await self._audit(owner_id, action, record.id, {"from": record.path, "to": path})
        log.info("%s user=%s file=%s %r -> %r", action, owner_id, record.id, record.path, path)
        return await self.get_file(owner_id, record.id)

    async def rename_file(self, owner_id: str, file_id: str, new_name: str) -> File:
        """Rename a file; its path is re-derived from its folder's current path."""
        async with self._locks.hold(owner_id):
            record = await self.get_file(owner_id, file_id)
            folder = await self._live_folder(owner_id, record.folder_id)
            return await self._relocate(owner_id, record, new_name, folder, "rename")

    async def move_file(self, owner_id: str, file_id: str, folder_id: Optional[str]) -> File:
        """Move a file into folder_id (None = root level)."""
        async with self._locks.hold(owner_id):
            record = await self.get_file(owner_id, file_id)
            folder = await self._live_folder(owner_id, folder_id)
            return await self._relocate(owner_id, record, record.name, folder, "move")

    async def delete_file(self, owner_id: str, file_id: str, hard: bool = False) -> None:
        """Move a file to trash, or remove its record and bytes for good."""
        record = await self.get_file(owner_id, file_id, include_deleted=hard)
        if hard:
            await self._store.files.delete_one(record.id)
            remove_objects(self._objects, [record.storage_key])
        else:
            await self._store.files.update_one(
                record.id, {"is_deleted": True, "deleted_at": self._clock(), "deleted_with": None}
            )
        await self._audit(owner_id, "delete", record.id, {"path": record.path, "hard": hard})
        log.info("delete_file user=%s file=%s path=%r hard=%s", owner_id, record.id, record.path, hard)

    async def restore_file(self, owner_id: str, file_id: str) -> File:
        """
        Restore a trashed file into its folder's current path, or to root level
        if that folder no longer exists.
        """
        async with self._locks.hold(owner_id):
            record = await self.get_file(owner_id, file_id, include_deleted=True)
            if not record.is_deleted:
                raise NotFoundError("File is not in trash")
            try:
                folder = await self._live_folder(owner_id, record.folder_id)
            except NotFoundError:
                folder = None
            path = compose(folder.path if folder is not None else None, record.name)
            await self._ensure_free(owner_id, path, record.id)
            await self._store.files.update_one(
                record.id,
                {
                    "path": path,
                    "folder_id": folder.id if folder is not None else None,
                    "is_deleted": False,
                    "deleted_at": None,
                    "deleted_with": None,
                },
            )
        await self._audit(owner_id, "restore", record.id, {"path": path})
        return await self.get_file(owner_id, record.id)

    async def list_trash(self, owner_id: str) -> List[File]:
        """Files trashed on their own (not along with a folder)."""
        trashed = await self._store.files.find(RecordFilter(owner_id=owner_id, is_deleted=True))
        return [f for f in trashed if f.deleted_with is None]

    async def download_link(self, record: File, user_id: str, ttl: int) -> str:
        """Signed URL for record's bytes; logged as a download by user_id."""
        url = self._objects.signed_url(record.storage_key, ttl)
        await self._audit(user_id, "download", record.id, {"path": record.path})
        return url

    async def find(self, file_id: str) -> Optional[File]:
        """File by id regardless of owner; callers check access."""
        return await self._store.files.find_by_id(file_id)

    async def find_by_storage_key(self, key: str) -> Optional[File]:
        return await self._store.files.find_one(RecordFilter(storage_key=key, is_deleted=False))

    def open_object(self, record: File):
        return self._objects.open(record.storage_key)

    async def used_bytes(self, owner_id: str) -> int:
        """Bytes used by the owner's files, trash included."""
        return await self._store.files.sum("size", RecordFilter(owner_id=owner_id))

    async def _audit(self, user_id: str, action: str, file_id: str, details: dict) -> None:
        if self._activity is not None:
            await self._activity.record(user_id, action, file_id, "File", details)
