"""Tests for the SQLAlchemy record store."""

import asyncio

import pytest

from app.paths.errors import NameCollisionError, StoreUnavailableError
from app.store.records import RecordFilter, RecordStore


async def _folders(store, owner, *paths):
    created = {}
    for i, path in enumerate(paths):
        parent = created.get(path.rpartition("/")[0])
        created[path] = await store.folders.create(
            id=f"{owner}-{i}",
            name=path.rpartition("/")[2],
            path=path,
            owner_id=owner,
            parent_id=parent.id if parent else None,
        )
    return created


@pytest.mark.asyncio
async def test_prefix_matches_only_descendants(store):
    await _folders(store, "u1", "docs", "docs/2024", "docs-old", "docsx")
    found = await store.folders.find(RecordFilter(owner_id="u1", path_prefix="docs/"))
    assert [f.path for f in found] == ["docs/2024"]


@pytest.mark.asyncio
async def test_prefix_escapes_like_wildcards(store):
    """A folder named 50%_off must not match 50XYoff/..."""
    await _folders(store, "u1", "50%_off", "50%_off/a", "50XYoff", "50XYoff/b")
    found = await store.folders.find(RecordFilter(owner_id="u1", path_prefix="50%_off/"))
    assert [f.path for f in found] == ["50%_off/a"]


@pytest.mark.asyncio
async def test_prefix_is_case_sensitive(store):
    await _folders(store, "u1", "Docs", "Docs/a", "docs", "docs/b")
    found = await store.folders.find(RecordFilter(owner_id="u1", path_prefix="docs/"))
    assert [f.path for f in found] == ["docs/b"]


@pytest.mark.asyncio
async def test_update_paths_writes_each_record_by_id(store):
    created = await _folders(store, "u1", "a", "a/b", "a/b/c")
    n = await store.folders.update_paths({created["a/b"].id: "ab/b", created["a/b/c"].id: "ab/b/c"})
    assert n == 2
    assert (await store.folders.find_by_id(created["a/b"].id)).path == "ab/b"
    assert (await store.folders.find_by_id(created["a/b/c"].id)).path == "ab/b/c"
    assert (await store.folders.find_by_id(created["a"].id)).path == "a"


@pytest.mark.asyncio
async def test_update_paths_applies_common_patch(store):
    created = await _folders(store, "u1", "a", "a/b")
    await store.folders.update_ids([created["a/b"].id], {"is_deleted": True, "deleted_with": "x"})
    await store.folders.update_paths(
        {created["a/b"].id: "a/b"}, {"is_deleted": False, "deleted_with": None}
    )
    record = await store.folders.find_by_id(created["a/b"].id)
    assert record.is_deleted is False
    assert record.deleted_with is None


@pytest.mark.asyncio
async def test_update_one_missing_returns_false(store):
    assert await store.folders.update_one("nope", {"name": "x"}) is False


@pytest.mark.asyncio
async def test_live_path_is_unique_per_owner(store):
    await _folders(store, "u1", "docs")
    await _folders(store, "u2", "docs")
    with pytest.raises(NameCollisionError):
        await store.folders.create(id="dup", name="docs", path="docs", owner_id="u1")
    # the session is still usable after the rollback
    assert await store.folders.count(RecordFilter(owner_id="u1")) == 1


@pytest.mark.asyncio
async def test_trashed_path_may_repeat(store):
    created = await _folders(store, "u1", "docs")
    await store.folders.update_one(created["docs"].id, {"is_deleted": True})
    again = await store.folders.create(id="new", name="docs", path="docs", owner_id="u1")
    assert again.path == "docs"


@pytest.mark.asyncio
async def test_delete_ids_and_root_only(store):
    created = await _folders(store, "u1", "a", "a/b", "c")
    roots = await store.folders.find(RecordFilter(owner_id="u1", root_only=True))
    assert [f.path for f in roots] == ["a", "c"]
    assert await store.folders.delete_ids([created["a/b"].id, created["c"].id]) == 2
    assert await store.folders.count(RecordFilter(owner_id="u1")) == 1


@pytest.mark.asyncio
async def test_name_contains_is_case_insensitive(store):
    await _folders(store, "u1", "Reports", "misc")
    found = await store.folders.find(RecordFilter(owner_id="u1", name_contains="rep"))
    assert [f.path for f in found] == ["Reports"]


@pytest.mark.asyncio
async def test_sum_of_file_sizes(store):
    assert await store.files.sum("size", RecordFilter(owner_id="u1")) == 0
    for i, size in enumerate((10, 32)):
        await store.files.create(
            id=f"x{i}",
            name=f"f{i}",
            path=f"f{i}",
            size=size,
            mime_type="text/plain",
            storage_key=f"u1/x{i}",
            content_hash="0" * 64,
            owner_id="u1",
        )
    assert await store.files.sum("size", RecordFilter(owner_id="u1")) == 42


@pytest.mark.asyncio
async def test_timeout_maps_to_store_unavailable(session):
    store = RecordStore(session, timeout=0.01)

    async def slow(*args, **kwargs):
        await asyncio.sleep(1)

    session.execute = slow
    with pytest.raises(StoreUnavailableError):
        await store.folders.find(RecordFilter(owner_id="u1"))
