"""Tests for folder create/list/contents/breadcrumbs/search/color."""

import pytest

from app.folders.service import FolderService
from app.paths.errors import InvalidNameError, NameCollisionError, NotFoundError


@pytest.fixture
def folders(store, activity, locks, ids):
    return FolderService(store, activity, locks=locks, id_factory=ids)


@pytest.mark.asyncio
async def test_create_derives_path_from_parent(folders, activity):
    docs = await folders.create_folder("u1", "docs")
    year = await folders.create_folder("u1", " 2024 ", docs.id, color="#ff0000")
    assert docs.path == "docs"
    assert docs.parent_id is None
    assert docs.color == "#000000"
    assert year.path == "docs/2024"
    assert year.name == "2024"
    assert year.parent_id == docs.id
    assert year.color == "#ff0000"
    assert activity.actions() == ["create", "create"]


@pytest.mark.asyncio
async def test_create_rejects_invalid_name(folders):
    with pytest.raises(InvalidNameError):
        await folders.create_folder("u1", "a/b")


@pytest.mark.asyncio
async def test_create_rejects_existing_path(folders):
    await folders.create_folder("u1", "docs")
    with pytest.raises(NameCollisionError):
        await folders.create_folder("u1", "docs")
    # another owner may use the same path
    other = await folders.create_folder("u2", "docs")
    assert other.path == "docs"


@pytest.mark.asyncio
async def test_create_under_missing_or_foreign_parent(folders):
    foreign = await folders.create_folder("u2", "theirs")
    with pytest.raises(NotFoundError, match="Parent folder not found"):
        await folders.create_folder("u1", "x", "missing")
    with pytest.raises(NotFoundError):
        await folders.create_folder("u1", "x", foreign.id)


@pytest.mark.asyncio
async def test_list_contents_and_breadcrumbs(folders, store):
    docs = await folders.create_folder("u1", "docs")
    year = await folders.create_folder("u1", "2024", docs.id)
    old = await folders.create_folder("u1", "old", year.id)
    await folders.create_folder("u1", "music")
    await store.files.create(
        id="x1",
        name="report.pdf",
        path="docs/2024/report.pdf",
        size=3,
        mime_type="application/pdf",
        storage_key="u1/x1-report.pdf",
        content_hash="0" * 64,
        owner_id="u1",
        folder_id=year.id,
    )
    assert [f.path for f in await folders.list_folders("u1")] == ["docs", "music"]
    assert [f.path for f in await folders.list_folders("u1", docs.id)] == ["docs/2024"]

    subfolders, files = await folders.get_contents(year)
    assert [f.path for f in subfolders] == ["docs/2024/old"]
    assert [f.path for f in files] == ["docs/2024/report.pdf"]

    crumbs = await folders.breadcrumbs(old)
    assert [c.name for c in crumbs] == ["docs", "2024", "old"]
    assert [c.name for c in await folders.breadcrumbs(docs)] == ["docs"]


@pytest.mark.asyncio
async def test_search_is_case_insensitive_and_owner_scoped(folders):
    await folders.create_folder("u1", "Reports")
    await folders.create_folder("u2", "reports")
    found = await folders.search("u1", "REP")
    assert [f.path for f in found] == ["Reports"]


@pytest.mark.asyncio
async def test_set_color(folders, activity):
    docs = await folders.create_folder("u1", "docs")
    updated = await folders.set_color("u1", docs.id, "#00ff00")
    assert updated.color == "#00ff00"
    assert activity.actions() == ["create", "update"]
    with pytest.raises(NotFoundError):
        await folders.set_color("u2", docs.id, "#00ff00")
