"""
Record store: folder and file collections over SQLAlchemy async.

Every write commits on its own, so a caller sees per-call atomicity and no
cross-record transaction. Reads always repopulate identity-map objects so that
records fetched after a bulk update carry the stored values.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Collection, Dict, List, Optional, TypeVar

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.files.models import File
from app.folders.models import Folder
from app.paths.errors import NameCollisionError, StoreUnavailableError

log = logging.getLogger(__name__)

T = TypeVar("T")

# stay under SQLite parameter limit
_CHUNK = 500


@dataclass
class RecordFilter:
    """
    Filter for find/update/delete. Unset fields do not constrain.
    parent_id matches the folder's parent (folders) or owning folder (files),
    parent_ids any of a set of them; root_only selects records whose parent is NULL.
    """

    owner_id: Optional[str] = None
    ids: Optional[Collection[str]] = None
    parent_id: Optional[str] = None
    parent_ids: Optional[Collection[str]] = None
    root_only: bool = False
    path: Optional[str] = None
    path_prefix: Optional[str] = None
    paths: Optional[Collection[str]] = None
    is_deleted: Optional[bool] = None
    deleted_with: Optional[str] = None
    name_contains: Optional[str] = None
    storage_key: Optional[str] = None


def _chunks(items: List[str]) -> List[List[str]]:
    return [items[i : i + _CHUNK] for i in range(0, len(items), _CHUNK)]


class SqlCollection:
    """One record kind (folders or files) with filter-based reads and writes."""

    def __init__(self, session: AsyncSession, model: Any, parent_column: Any, timeout: float) -> None:
        self._session = session
        self.model = model
        self._parent = parent_column
        self._timeout = timeout

    @property
    def kind(self) -> str:
        return self.model.__name__

    def _where(self, flt: RecordFilter) -> list:
        m = self.model
        clauses = []
        if flt.owner_id is not None:
            clauses.append(m.owner_id == flt.owner_id)
        if flt.ids is not None:
            clauses.append(m.id.in_(list(flt.ids)))
        if flt.root_only:
            clauses.append(self._parent.is_(None))
        elif flt.parent_ids is not None:
            clauses.append(self._parent.in_(list(flt.parent_ids)))
        elif flt.parent_id is not None:
            clauses.append(self._parent == flt.parent_id)
        if flt.path is not None:
            clauses.append(m.path == flt.path)
        if flt.paths is not None:
            clauses.append(m.path.in_(list(flt.paths)))
        if flt.path_prefix is not None:
            # LIKE is case-insensitive in SQLite; substr keeps the match exact
            clauses.append(m.path.startswith(flt.path_prefix, autoescape=True))
            clauses.append(func.substr(m.path, 1, len(flt.path_prefix)) == flt.path_prefix)
        if flt.is_deleted is not None:
            clauses.append(m.is_deleted == flt.is_deleted)
        if flt.deleted_with is not None:
            clauses.append(m.deleted_with == flt.deleted_with)
        if flt.storage_key is not None:
            clauses.append(m.storage_key == flt.storage_key)
        if flt.name_contains:
            clauses.append(
                func.lower(m.name).contains(flt.name_contains.lower(), autoescape=True)
            )
        return clauses

    async def _run(self, what: str, op: Callable[[], Awaitable[T]]) -> T:
        """Run one store call under the timeout; map driver failures to store errors."""
        try:
            return await asyncio.wait_for(op(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            log.warning("Record store %s on %s timed out after %.1fs", what, self.kind, self._timeout)
            await self._reset()
            raise StoreUnavailableError(f"Record store timed out during {what}") from e
        except IntegrityError as e:
            log.warning("Record store %s on %s violated a constraint: %s", what, self.kind, e.orig)
            await self._reset()
            raise NameCollisionError(f"{self.kind} conflicts with an existing record") from e
        except (OperationalError, DBAPIError) as e:
            log.error("Record store %s on %s failed: %s", what, self.kind, e)
            await self._reset()
            raise StoreUnavailableError(f"Record store unavailable during {what}") from e

    async def _reset(self) -> None:
        try:
            await self._session.rollback()
        except (OperationalError, DBAPIError) as e:
            log.warning("Rollback after store failure also failed: %s", e)

    async def find(self, flt: RecordFilter) -> List[Any]:
        """Records matching flt, ordered by path."""
        stmt = (
            select(self.model)
            .where(*self._where(flt))
            .order_by(self.model.path)
            .execution_options(populate_existing=True)
        )

        async def op() -> List[Any]:
            result = await self._session.execute(stmt)
            return list(result.scalars().all())

        return await self._run("find", op)

    async def find_one(self, flt: RecordFilter) -> Optional[Any]:
        """First record matching flt, or None."""
        found = await self.find(flt)
        return found[0] if found else None

    async def find_by_id(self, record_id: str) -> Optional[Any]:
        """Record by id, or None."""
        return await self.find_one(RecordFilter(ids=[record_id]))

    async def count(self, flt: RecordFilter) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._where(flt))

        async def op() -> int:
            return int((await self._session.execute(stmt)).scalar_one())

        return await self._run("count", op)

    async def sum(self, column: str, flt: RecordFilter) -> int:
        """Sum of a numeric column over matching records (0 when none)."""
        stmt = select(func.coalesce(func.sum(getattr(self.model, column)), 0)).where(
            *self._where(flt)
        )

        async def op() -> int:
            return int((await self._session.execute(stmt)).scalar_one())

        return await self._run("sum", op)

    async def create(self, **fields: Any) -> Any:
        """Insert one record and return it with server defaults loaded."""
        record = self.model(**fields)

        async def op() -> Any:
            self._session.add(record)
            await self._session.commit()
            await self._session.refresh(record)
            return record

        return await self._run("create", op)

    async def update_one(self, record_id: str, patch: Dict[str, Any]) -> bool:
        """Apply patch to one record. False if it does not exist."""
        return await self.update_many(RecordFilter(ids=[record_id]), patch) > 0

    async def update_many(self, flt: RecordFilter, patch: Dict[str, Any]) -> int:
        """Apply the same patch to every matching record; return count."""
        stmt = (
            update(self.model)
            .where(*self._where(flt))
            .values(**patch)
            .execution_options(synchronize_session=False)
        )

        async def op() -> int:
            result = await self._session.execute(stmt)
            await self._session.commit()
            return result.rowcount or 0

        return await self._run("update_many", op)

    async def update_ids(self, ids: Collection[str], patch: Dict[str, Any]) -> int:
        """Apply the same patch to records by id set (chunked); return count."""
        total = 0
        for chunk in _chunks(list(ids)):
            total += await self.update_many(RecordFilter(ids=chunk), patch)
        return total

    async def update_paths(self, new_paths: Dict[str, str], patch: Optional[Dict[str, Any]] = None) -> int:
        """
        Set each record's path to new_paths[id] (plus an optional common patch).
        Selects by id set only, so a record is written at most once even if its
        new path still matches the prefix it was selected by.
        """
        total = 0
        for ids in _chunks(list(new_paths)):
            mapping = {i: new_paths[i] for i in ids}
            stmt = (
                update(self.model)
                .where(self.model.id.in_(ids))
                .values(path=case(mapping, value=self.model.id), **(patch or {}))
                .execution_options(synchronize_session=False)
            )

            async def op(stmt=stmt) -> int:
                result = await self._session.execute(stmt)
                await self._session.commit()
                return result.rowcount or 0

            total += await self._run("update_paths", op)
        return total

    async def delete_one(self, record_id: str) -> bool:
        return await self.delete_ids([record_id]) > 0

    async def delete_many(self, flt: RecordFilter) -> int:
        """Delete every matching record; return count."""
        stmt = delete(self.model).where(*self._where(flt)).execution_options(
            synchronize_session=False
        )

        async def op() -> int:
            result = await self._session.execute(stmt)
            await self._session.commit()
            return result.rowcount or 0

        return await self._run("delete_many", op)

    async def delete_ids(self, ids: Collection[str]) -> int:
        """Delete records by id set (chunked); return count."""
        total = 0
        for chunk in _chunks(list(ids)):
            total += await self.delete_many(RecordFilter(ids=chunk))
        return total


class RecordStore:
    """Folder and file collections sharing one session."""

    def __init__(self, session: AsyncSession, timeout: Optional[float] = None) -> None:
        if timeout is None:
            timeout = get_settings().store_timeout_seconds
        self.session = session
        self.folders = SqlCollection(session, Folder, Folder.parent_id, timeout)
        self.files = SqlCollection(session, File, File.folder_id, timeout)
