"""
Folder path maintenance: rename, move, delete, restore and repair.

The record store has per-record atomic writes and filtered bulk updates but no
multi-record transaction, so every operation follows the same order:

    PLANNED -> DESCENDANTS_REWRITING -> DESCENDANTS_COMMITTED
            -> ANCESTOR_COMMITTED -> DONE

Descendants are written before the folder's own record. If the process stops
in between, the folder still shows its old path while its children already
assume the new one; repair_folder detects that and finishes the operation.
Failures are raised with the state they happened in and never retried here.
Re-running an operation recomputes the plan from current state, which is a
no-op once it has been fully applied.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Tuple

from app.clock import Clock, utc_now
from app.paths.errors import NotFoundError, PathError, PathMismatchError
from app.paths.locks import OwnerLocks, owner_locks
from app.paths.model import compose, leaf_of, parent_of
from app.paths.planner import (
    DeletePlan,
    PathPlan,
    apply_plan,
    ensure_free,
    plan_delete,
    plan_move,
    plan_rename,
    plan_repair,
    plan_restore,
)
from app.store.records import RecordFilter, RecordStore

log = logging.getLogger(__name__)


class OperationState(str, Enum):
    PLANNED = "planned"
    DESCENDANTS_REWRITING = "descendants_rewriting"
    DESCENDANTS_COMMITTED = "descendants_committed"
    ANCESTOR_COMMITTED = "ancestor_committed"
    DONE = "done"


class ActivityRecorder(Protocol):
    async def record(
        self,
        user_id: str,
        action: str,
        target_id: str,
        target_kind: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> Any: ...


@dataclass
class PathOperationResult:
    """Folder after the operation (None once hard-deleted) and how many descendants changed."""

    folder: Optional[Any]
    descendants_touched: int
    # Object-store keys of hard-deleted files, for the caller to remove
    storage_keys: List[str] = field(default_factory=list)


class _Operation:
    """Tracks the state of one running operation for logging and error reporting."""

    def __init__(self, name: str, owner_id: str, folder_id: str) -> None:
        self.name = name
        self.owner_id = owner_id
        self.folder_id = folder_id
        self.state = OperationState.PLANNED

    def advance(self, state: OperationState) -> None:
        log.debug("%s folder=%s: %s -> %s", self.name, self.folder_id, self.state.value, state.value)
        self.state = state


class PathCoordinator:
    """Runs folder tree mutations against the record store in a fixed, repairable order."""

    def __init__(
        self,
        store: RecordStore,
        activity: Optional[ActivityRecorder] = None,
        locks: Optional[OwnerLocks] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._activity = activity
        self._locks = locks if locks is not None else owner_locks
        self._clock = clock

    # Lookups

    async def _owned_folder(self, owner_id: str, folder_id: str) -> Any:
        folder = await self._store.folders.find_by_id(folder_id)
        if folder is None or folder.owner_id != owner_id:
            raise NotFoundError("Folder not found")
        return folder

    async def _live_folder(self, owner_id: str, folder_id: str) -> Any:
        folder = await self._owned_folder(owner_id, folder_id)
        if folder.is_deleted:
            raise NotFoundError("Folder not found")
        return folder

    async def _live_parent(self, owner_id: str, parent_id: Optional[str]) -> Optional[Any]:
        """Live parent folder of the owner, or None if missing or trashed."""
        if parent_id is None:
            return None
        parent = await self._store.folders.find_by_id(parent_id)
        if parent is None or parent.is_deleted or parent.owner_id != owner_id:
            return None
        return parent

    async def _check_free(self, plan: PathPlan) -> None:
        occupant = await self._store.folders.find_one(
            RecordFilter(owner_id=plan.owner_id, path=plan.new_path, is_deleted=False)
        )
        ensure_free(plan, occupant)

    async def _target_parent(self, owner_id: str, parent_id: Optional[str]) -> Optional[Any]:
        if parent_id is None:
            return None
        parent = await self._store.folders.find_by_id(parent_id)
        if parent is None or parent.is_deleted:
            raise NotFoundError("Target folder not found")
        return parent

    async def _repair_plan(self, folder: Any) -> Optional[PathPlan]:
        """
        The target path is the one the folder's children already assume;
        failing that, the path derived from its live parent. None when consistent.
        """
        target = await self._assumed_path(folder)
        if target is not None:
            new_parent = None
            parent_path = parent_of(target)
            if parent_path is not None:
                new_parent = await self._store.folders.find_one(
                    RecordFilter(owner_id=folder.owner_id, path=parent_path, is_deleted=False)
                )
                if new_parent is None:
                    raise NotFoundError(f"No folder at {parent_path!r} to hold {target!r}")
        else:
            new_parent = await self._live_parent(folder.owner_id, folder.parent_id)
            target = compose(new_parent.path if new_parent is not None else None, folder.name)
            if target == folder.path and (new_parent is not None or folder.parent_id is None):
                return None
        return plan_repair(folder, target, new_parent)

    async def _replan(self, folder: Any, plan: PathPlan) -> Optional[PathPlan]:
        """Recompute plan from the folder's current record."""
        if plan.kind == "restore":
            if not folder.is_deleted:
                raise NotFoundError("Folder is not in trash")
            return plan_restore(folder, await self._live_parent(folder.owner_id, folder.parent_id))
        if folder.is_deleted:
            raise NotFoundError("Folder not found")
        if plan.kind == "rename":
            return plan_rename(folder, plan.new_name)
        if plan.kind == "move":
            return plan_move(folder, await self._target_parent(folder.owner_id, plan.new_parent_id))
        if plan.kind == "repair":
            return await self._repair_plan(folder)
        raise PathMismatchError(f"Cannot re-run a {plan.kind!r} plan")

    # Exposed operations

    async def rename_folder(self, owner_id: str, folder_id: str, new_name: str) -> PathOperationResult:
        """Rename a folder; every descendant path follows."""
        async with self._locks.hold(owner_id):
            folder = await self._live_folder(owner_id, folder_id)
            plan = plan_rename(folder, new_name)
            await self._check_free(plan)
            return await self._execute(plan, "rename", folder)

    async def move_folder(
        self, owner_id: str, folder_id: str, new_parent_id: Optional[str]
    ) -> PathOperationResult:
        """Move a folder under new_parent_id (None = root level)."""
        async with self._locks.hold(owner_id):
            folder = await self._live_folder(owner_id, folder_id)
            plan = plan_move(folder, await self._target_parent(owner_id, new_parent_id))
            await self._check_free(plan)
            return await self._execute(plan, "move", folder)

    async def restore_folder(self, owner_id: str, folder_id: str) -> PathOperationResult:
        """
        Bring a trashed folder and the records trashed with it back. The folder
        goes under its parent's current path, or to root if the parent is gone.
        """
        async with self._locks.hold(owner_id):
            folder = await self._owned_folder(owner_id, folder_id)
            if not folder.is_deleted:
                raise NotFoundError("Folder is not in trash")
            parent = await self._live_parent(owner_id, folder.parent_id)
            plan = plan_restore(folder, parent)
            await self._check_free(plan)
            return await self._execute(plan, "restore", folder, batch_id=folder.deleted_with)

    async def repair_folder(self, owner_id: str, folder_id: str) -> PathOperationResult:
        """Detect and finish an interrupted operation on a folder. No-op when consistent."""
        async with self._locks.hold(owner_id):
            folder = await self._live_folder(owner_id, folder_id)
            plan = await self._repair_plan(folder)
            if plan is None:
                log.debug("repair folder=%s: consistent at %r", folder.id, folder.path)
                return PathOperationResult(folder=folder, descendants_touched=0)
            await self._check_free(plan)
            log.info("repair folder=%s: %r -> %r", folder.id, folder.path, plan.new_path)
            return await self._execute(plan, "repair", folder)

    async def delete_folder(self, owner_id: str, folder_id: str, hard: bool = False) -> PathOperationResult:
        """
        Soft delete moves the folder and its live subtree to trash. Hard delete
        removes the folder, its live subtree and whatever was trashed out of
        that subtree; for a folder already in trash it removes only what was
        trashed with it.
        """
        async with self._locks.hold(owner_id):
            folder = await self._owned_folder(owner_id, folder_id)
            if folder.is_deleted and not hard:
                raise NotFoundError("Folder not found")
            plan = plan_delete(folder, hard)
            return await self._execute_delete(plan)

    async def execute(self, plan: PathPlan, action: Optional[str] = None) -> PathOperationResult:
        """
        Re-run a plan made earlier (e.g. after a failure). The folder must still
        be at the plan's old or new path. A plan that is already applied is a
        no-op; otherwise it is recomputed from the folder's current record.
        """
        async with self._locks.hold(plan.owner_id):
            folder = await self._owned_folder(plan.owner_id, plan.folder_id)
            if folder.path not in (plan.old_path, plan.new_path):
                raise PathMismatchError(
                    f"Folder moved to {folder.path!r} since the plan was made"
                )
            applied = (
                not folder.is_deleted
                and folder.path == plan.new_path
                and folder.name == plan.new_name
                and folder.parent_id == plan.new_parent_id
            )
            current = None if applied else await self._replan(folder, plan)
            if current is None:
                log.info("%s folder=%s: already at %r, nothing to do", plan.kind, folder.id, folder.path)
                return PathOperationResult(folder=folder, descendants_touched=0)
            await self._check_free(current)
            batch_id = folder.deleted_with if current.undelete else None
            return await self._execute(current, action or current.kind, folder, batch_id=batch_id)

    # Execution

    async def _execute(
        self, plan: PathPlan, action: str, folder: Any, batch_id: Optional[str] = None
    ) -> PathOperationResult:
        op = _Operation(action, plan.owner_id, plan.folder_id)
        if plan.is_noop:
            log.info("%s folder=%s: already at %r, nothing to do", action, plan.folder_id, plan.new_path)
            return PathOperationResult(folder=folder, descendants_touched=0)
        try:
            op.advance(OperationState.DESCENDANTS_REWRITING)
            if plan.undelete:
                selector = RecordFilter(
                    owner_id=plan.owner_id, path_prefix=plan.old_prefix, deleted_with=batch_id
                )
                extra = {"is_deleted": False, "deleted_at": None, "deleted_with": None}
            else:
                selector = RecordFilter(
                    owner_id=plan.owner_id, path_prefix=plan.old_prefix, is_deleted=False
                )
                extra = {}
            folders = await self._store.folders.find(selector)
            files = await self._store.files.find(selector)
            patches = apply_plan(plan, folders, files)
            await self._store.folders.update_paths(patches.folder_paths, extra)
            await self._store.files.update_paths(patches.file_paths, extra)
            op.advance(OperationState.DESCENDANTS_COMMITTED)

            if not await self._store.folders.update_one(plan.folder_id, patches.folder_patch):
                raise NotFoundError("Folder disappeared during update")
            op.advance(OperationState.ANCESTOR_COMMITTED)
            folder = await self._store.folders.find_by_id(plan.folder_id)
        except PathError as e:
            e.state = op.state.value
            log.warning(
                "%s folder=%s failed in state %s: %s",
                action, plan.folder_id, op.state.value, e.message,
            )
            raise
        except asyncio.CancelledError:
            log.warning("%s folder=%s cancelled in state %s", action, plan.folder_id, op.state.value)
            raise

        await self._audit(
            plan.owner_id,
            action,
            plan.folder_id,
            {"from": plan.old_path, "to": plan.new_path, "descendants": patches.descendants_touched},
        )
        op.advance(OperationState.DONE)
        log.info(
            "%s user=%s folder=%s %r -> %r descendants=%d",
            action, plan.owner_id, plan.folder_id, plan.old_path, plan.new_path,
            patches.descendants_touched,
        )
        return PathOperationResult(folder=folder, descendants_touched=patches.descendants_touched)

    async def _execute_delete(self, plan: DeletePlan) -> PathOperationResult:
        op = _Operation("delete", plan.owner_id, plan.folder_id)
        storage_keys: List[str] = []
        try:
            op.advance(OperationState.DESCENDANTS_REWRITING)
            if plan.hard and not plan.purge:
                folders, files = await self._subtree_with_trash(plan)
            else:
                if plan.purge:
                    selector = RecordFilter(
                        owner_id=plan.owner_id, path_prefix=plan.prefix, deleted_with=plan.batch_id
                    )
                else:
                    selector = RecordFilter(owner_id=plan.owner_id, path_prefix=plan.prefix, is_deleted=False)
                folders = await self._store.folders.find(selector)
                files = await self._store.files.find(selector)
            folder_ids = [f.id for f in folders if f.id != plan.folder_id]
            file_ids = [f.id for f in files]
            if plan.hard:
                storage_keys = [f.storage_key for f in files]
                touched = await self._store.files.delete_ids(file_ids)
                touched += await self._store.folders.delete_ids(folder_ids)
            else:
                trash = {
                    "is_deleted": True,
                    "deleted_at": self._clock(),
                    "deleted_with": plan.folder_id,
                }
                touched = await self._store.files.update_ids(file_ids, trash)
                touched += await self._store.folders.update_ids(folder_ids, trash)
            op.advance(OperationState.DESCENDANTS_COMMITTED)

            if plan.hard:
                await self._store.folders.delete_one(plan.folder_id)
            elif not await self._store.folders.update_one(plan.folder_id, trash):
                raise NotFoundError("Folder disappeared during delete")
            op.advance(OperationState.ANCESTOR_COMMITTED)
            folder = None if plan.hard else await self._store.folders.find_by_id(plan.folder_id)
        except PathError as e:
            e.state = op.state.value
            log.warning("delete folder=%s failed in state %s: %s", plan.folder_id, op.state.value, e.message)
            raise
        except asyncio.CancelledError:
            log.warning("delete folder=%s cancelled in state %s", plan.folder_id, op.state.value)
            raise

        await self._audit(
            plan.owner_id,
            "delete",
            plan.folder_id,
            {"path": plan.path, "hard": plan.hard, "descendants": touched},
        )
        op.advance(OperationState.DONE)
        log.info(
            "delete user=%s folder=%s path=%r hard=%s descendants=%d",
            plan.owner_id, plan.folder_id, plan.path, plan.hard, touched,
        )
        return PathOperationResult(folder=folder, descendants_touched=touched, storage_keys=storage_keys)

    async def _subtree_with_trash(self, plan: DeletePlan) -> Tuple[List[Any], List[Any]]:
        """
        Live records under the folder's path, plus trashed records whose parent
        chain leads into that subtree. Trashed records keep the path they had
        when trashed, so they are followed by parent, never matched by path.
        """
        live = RecordFilter(owner_id=plan.owner_id, path_prefix=plan.prefix, is_deleted=False)
        folders = await self._store.folders.find(live)
        files = await self._store.files.find(live)
        seen = {plan.folder_id} | {f.id for f in folders}
        frontier = set(seen)
        while frontier:
            trashed = RecordFilter(owner_id=plan.owner_id, parent_ids=frontier, is_deleted=True)
            found = [f for f in await self._store.folders.find(trashed) if f.id not in seen]
            files += await self._store.files.find(trashed)
            folders += found
            frontier = {f.id for f in found}
            seen |= frontier
        return folders, files

    async def _assumed_path(self, folder: Any) -> Optional[str]:
        """
        Path the folder's direct children assume for it, when that differs from
        the folder's stored path; None when every child agrees with it.
        """
        flt = RecordFilter(owner_id=folder.owner_id, parent_id=folder.id, is_deleted=False)
        children = await self._store.folders.find(flt) + await self._store.files.find(flt)
        assumed: Counter = Counter()
        for child in children:
            if leaf_of(child.path) != child.name:
                continue
            head = parent_of(child.path)
            if head is not None and head != folder.path:
                assumed[head] += 1
        if not assumed:
            return None
        return assumed.most_common(1)[0][0]

    async def _audit(self, owner_id: str, action: str, folder_id: str, details: Dict[str, Any]) -> None:
        if self._activity is None:
            return
        try:
            await self._activity.record(owner_id, action, folder_id, "Folder", details)
        except Exception as e:
            log.warning("Activity log failed for %s folder=%s: %s", action, folder_id, e)
