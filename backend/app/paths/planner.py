"""
Plans for folder rename, move, delete, restore and repair.

Planners work on folder snapshots only and never touch the record store, so a
plan can be computed and checked before anything is written. The coordinator
selects descendants by the plan's old prefix and hands them to apply_plan.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from app.paths.errors import (
    CrossOwnerError,
    CyclicMoveError,
    NameCollisionError,
    PathMismatchError,
)
from app.paths.model import compose, descendant_prefix, is_descendant, leaf_of, parent_of, rewrite


@dataclass(frozen=True)
class PathPlan:
    """Old and new name/path/parent of one folder whose subtree must follow."""

    kind: str
    folder_id: str
    owner_id: str
    old_name: str
    new_name: str
    old_path: str
    new_path: str
    old_parent_id: Optional[str]
    new_parent_id: Optional[str]
    undelete: bool = False

    @property
    def old_prefix(self) -> str:
        return descendant_prefix(self.old_path)

    @property
    def new_prefix(self) -> str:
        return descendant_prefix(self.new_path)

    @property
    def is_noop(self) -> bool:
        return (
            not self.undelete
            and self.old_path == self.new_path
            and self.old_name == self.new_name
            and self.old_parent_id == self.new_parent_id
        )


@dataclass
class PlanPatches:
    """Writes produced by a plan: the folder's own patch and new descendant paths by id."""

    folder_patch: Dict[str, Any]
    folder_paths: Dict[str, str] = field(default_factory=dict)
    file_paths: Dict[str, str] = field(default_factory=dict)

    @property
    def descendants_touched(self) -> int:
        return len(self.folder_paths) + len(self.file_paths)


@dataclass(frozen=True)
class DeletePlan:
    """A folder and everything under its descendant prefix, to trash or remove."""

    folder_id: str
    owner_id: str
    path: str
    hard: bool
    # Already in trash: a hard delete then purges only its trash batch
    purge: bool = False
    batch_id: Optional[str] = None

    @property
    def prefix(self) -> str:
        return descendant_prefix(self.path)


def _plan(kind: str, folder: Any, new_name: str, new_parent: Optional[Any], undelete: bool = False) -> PathPlan:
    parent_path = new_parent.path if new_parent is not None else None
    new_path = compose(parent_path, new_name)
    return PathPlan(
        kind=kind,
        folder_id=folder.id,
        owner_id=folder.owner_id,
        old_name=folder.name,
        new_name=leaf_of(new_path),
        old_path=folder.path,
        new_path=new_path,
        old_parent_id=folder.parent_id,
        new_parent_id=new_parent.id if new_parent is not None else None,
        undelete=undelete,
    )


def plan_rename(folder: Any, new_name: str) -> PathPlan:
    """Rename in place: the parent path is the folder's own path minus its leaf."""
    new_path = compose(parent_of(folder.path), new_name)
    return PathPlan(
        kind="rename",
        folder_id=folder.id,
        owner_id=folder.owner_id,
        old_name=folder.name,
        new_name=leaf_of(new_path),
        old_path=folder.path,
        new_path=new_path,
        old_parent_id=folder.parent_id,
        new_parent_id=folder.parent_id,
    )


def plan_move(folder: Any, new_parent: Optional[Any]) -> PathPlan:
    """
    Move under new_parent (None = root level).
    Rejects moving a folder into itself or its own subtree, and across owners.
    """
    if new_parent is not None:
        if new_parent.id == folder.id:
            raise CyclicMoveError("Cannot move a folder into itself")
        if new_parent.owner_id != folder.owner_id:
            raise CrossOwnerError("Cannot move a folder into another user's folder")
        if is_descendant(new_parent.path, folder.path):
            raise CyclicMoveError(
                f"Cannot move {folder.path!r} into its own subfolder {new_parent.path!r}"
            )
    return _plan("move", folder, folder.name, new_parent)


def plan_restore(folder: Any, parent: Optional[Any]) -> PathPlan:
    """Bring a trashed folder back under parent (None = root when the parent is gone)."""
    return _plan("restore", folder, folder.name, parent, undelete=True)


def plan_repair(folder: Any, target_path: str, new_parent: Optional[Any]) -> PathPlan:
    """Finish an interrupted operation: move the folder record to target_path."""
    plan = _plan("repair", folder, leaf_of(target_path), new_parent)
    if plan.new_path != target_path:
        raise PathMismatchError(
            f"Parent {plan.new_path!r} does not lead to repaired path {target_path!r}"
        )
    return plan


def plan_delete(folder: Any, hard: bool) -> DeletePlan:
    """Select the folder plus everything under its descendant prefix."""
    return DeletePlan(
        folder_id=folder.id,
        owner_id=folder.owner_id,
        path=folder.path,
        hard=hard,
        purge=bool(folder.is_deleted),
        batch_id=folder.deleted_with,
    )


def ensure_free(plan: PathPlan, occupant: Optional[Any]) -> None:
    """Raise NameCollisionError if another live folder already sits at plan.new_path."""
    if occupant is not None and occupant.id != plan.folder_id:
        raise NameCollisionError(f"A folder named {plan.new_path!r} already exists")


def apply_plan(plan: PathPlan, folders: Iterable[Any], files: Iterable[Any]) -> PlanPatches:
    """
    Compute the folder patch and the rewritten path of every selected descendant.
    Descendant names are never changed, only their paths.
    """
    folder_patch: Dict[str, Any] = {
        "name": plan.new_name,
        "path": plan.new_path,
        "parent_id": plan.new_parent_id,
    }
    if plan.undelete:
        folder_patch.update(is_deleted=False, deleted_at=None, deleted_with=None)
    patches = PlanPatches(folder_patch=folder_patch)
    for f in folders:
        if f.id == plan.folder_id:
            continue
        patches.folder_paths[f.id] = rewrite(f.path, plan.old_prefix, plan.new_prefix)
    for f in files:
        patches.file_paths[f.id] = rewrite(f.path, plan.old_prefix, plan.new_prefix)
    return patches
