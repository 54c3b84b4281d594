"""Tests for file upload, versioning, rename/move, trash and download links."""

import pytest

from app.files.service import FileService, compute_hash
from app.files.storage import LocalObjectStore
from app.folders.service import FolderService
from app.paths.coordinator import PathCoordinator
from app.paths.errors import InvalidNameError, NameCollisionError, NotFoundError


@pytest.fixture
def objects(tmp_path):
    return LocalObjectStore(tmp_path / "objects")


@pytest.fixture
def files(store, objects, activity, locks, ids):
    return FileService(store, objects, activity, locks=locks, id_factory=ids)


@pytest.fixture
def folders(store, locks, ids):
    return FolderService(store, locks=locks, id_factory=ids)


@pytest.mark.asyncio
async def test_upload_into_folder(files, folders, objects, activity):
    docs = await folders.create_folder("u1", "docs")
    record = await files.upload("u1", "report.pdf", b"%PDF-1", "application/pdf", docs.id)
    assert record.path == "docs/report.pdf"
    assert record.folder_id == docs.id
    assert record.size == 6
    assert record.mime_type == "application/pdf"
    assert record.content_hash == compute_hash(b"%PDF-1")
    assert record.version == 1
    assert objects.open(record.storage_key).read_bytes() == b"%PDF-1"
    assert activity.actions() == ["upload"]


@pytest.mark.asyncio
async def test_upload_to_root_defaults_mime_type(files):
    record = await files.upload("u1", "blob", b"x")
    assert record.path == "blob"
    assert record.folder_id is None
    assert record.mime_type == "application/octet-stream"


@pytest.mark.asyncio
async def test_upload_same_path_creates_new_version(files, objects):
    first = await files.upload("u1", "a.txt", b"one")
    old_key = first.storage_key
    second = await files.upload("u1", "a.txt", b"second")
    assert second.id == first.id
    assert second.version == 2
    assert second.size == 6
    assert not objects.exists(old_key)
    assert objects.open(second.storage_key).read_bytes() == b"second"


@pytest.mark.asyncio
async def test_upload_rejects_bad_name_and_trashed_folder(files, folders, store):
    with pytest.raises(InvalidNameError):
        await files.upload("u1", "../x", b"x")
    docs = await folders.create_folder("u1", "docs")
    await store.folders.update_one(docs.id, {"is_deleted": True})
    with pytest.raises(NotFoundError):
        await files.upload("u1", "a.txt", b"x", folder_id=docs.id)


@pytest.mark.asyncio
async def test_file_path_follows_folder_rename(files, folders, store, locks):
    docs = await folders.create_folder("u1", "docs")
    record = await files.upload("u1", "a.txt", b"x", folder_id=docs.id)
    await PathCoordinator(store, locks=locks).rename_folder("u1", docs.id, "archive")
    assert (await files.get_file("u1", record.id)).path == "archive/a.txt"
    renamed = await files.rename_file("u1", record.id, "b.txt")
    assert renamed.path == "archive/b.txt"
    assert renamed.name == "b.txt"


@pytest.mark.asyncio
async def test_move_file(files, folders):
    docs = await folders.create_folder("u1", "docs")
    music = await folders.create_folder("u1", "music")
    record = await files.upload("u1", "a.txt", b"x", folder_id=docs.id)
    moved = await files.move_file("u1", record.id, music.id)
    assert moved.path == "music/a.txt"
    assert moved.folder_id == music.id
    to_root = await files.move_file("u1", record.id, None)
    assert to_root.path == "a.txt"
    assert [f.path for f in await files.list_files("u1")] == ["a.txt"]


@pytest.mark.asyncio
async def test_rename_or_move_onto_live_file_rejected(files, folders):
    """A live path identifies one file; rename, move and restore cannot take it."""
    docs = await folders.create_folder("u1", "docs")
    a = await files.upload("u1", "a.txt", b"a")
    b = await files.upload("u1", "b.txt", b"b")
    with pytest.raises(NameCollisionError):
        await files.rename_file("u1", b.id, "a.txt")
    assert (await files.get_file("u1", b.id)).path == "b.txt"

    nested = await files.upload("u1", "a.txt", b"nested", folder_id=docs.id)
    with pytest.raises(NameCollisionError):
        await files.move_file("u1", nested.id, None)
    assert (await files.get_file("u1", nested.id)).path == "docs/a.txt"

    await files.delete_file("u1", a.id)
    await files.rename_file("u1", b.id, "a.txt")
    with pytest.raises(NameCollisionError):
        await files.restore_file("u1", a.id)
    assert [f.id for f in await files.list_files("u1")] == [b.id]

    # renaming to its own name is not a collision
    assert (await files.rename_file("u1", b.id, "a.txt")).path == "a.txt"


@pytest.mark.asyncio
async def test_soft_delete_restore_and_hard_delete(files, objects, activity):
    record = await files.upload("u1", "a.txt", b"x")
    await files.delete_file("u1", record.id)
    assert [f.id for f in await files.list_trash("u1")] == [record.id]
    assert await files.list_files("u1") == []
    with pytest.raises(NotFoundError):
        await files.get_file("u1", record.id)

    restored = await files.restore_file("u1", record.id)
    assert restored.is_deleted is False
    with pytest.raises(NotFoundError, match="not in trash"):
        await files.restore_file("u1", record.id)

    await files.delete_file("u1", record.id, hard=True)
    assert await files.find(record.id) is None
    assert not objects.exists(record.storage_key)
    assert activity.actions() == ["upload", "delete", "restore", "delete"]


@pytest.mark.asyncio
async def test_restore_file_to_root_when_folder_gone(files, folders, store):
    docs = await folders.create_folder("u1", "docs")
    record = await files.upload("u1", "a.txt", b"x", folder_id=docs.id)
    await files.delete_file("u1", record.id)
    await store.folders.delete_one(docs.id)
    restored = await files.restore_file("u1", record.id)
    assert restored.path == "a.txt"
    assert restored.folder_id is None


@pytest.mark.asyncio
async def test_other_owner_cannot_touch_file(files):
    record = await files.upload("u1", "a.txt", b"x")
    with pytest.raises(NotFoundError):
        await files.get_file("u2", record.id)
    with pytest.raises(NotFoundError):
        await files.delete_file("u2", record.id)


@pytest.mark.asyncio
async def test_download_link_and_usage(files, activity, monkeypatch):
    from app.files import storage

    monkeypatch.setattr(storage, "create_download_token", lambda key, ttl: f"tok-{key}")
    record = await files.upload("u1", "a.txt", b"12345")
    url = await files.download_link(record, "u1", 60)
    assert url.endswith("/api/files/download?token=tok-" + record.storage_key)
    assert (await files.find_by_storage_key(record.storage_key)).id == record.id
    assert await files.used_bytes("u1") == 5
    assert activity.actions() == ["upload", "download"]
