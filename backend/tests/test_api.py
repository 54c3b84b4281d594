"""API tests with TestClient: health, auth, folders, files, shares, activity."""

import uuid

import pytest
from fastapi.testclient import TestClient

from app.limiter import limiter
from app.main import app


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient for the FastAPI app. Use as context manager so lifespan runs (init_db).
    Override storage path so uploads land in a per-test directory."""
    monkeypatch.setenv("SKYVAULT_STORAGE_BASE_PATH", str(tmp_path))
    limiter.reset()
    with TestClient(app) as c:
        yield c


def _register(client: TestClient, name: str = "user") -> tuple[str, dict]:
    """Register a fresh user and return (email, auth headers)."""
    email = f"{name}-{uuid.uuid4().hex[:8]}@example.com"
    r = client.post("/api/auth/register", json={"email": email, "name": name, "password": "testpass123"})
    assert r.status_code == 201, r.text
    login = client.post("/api/auth/login", json={"email": email, "password": "testpass123"})
    assert login.status_code == 200
    return email, {"Authorization": f"Bearer {login.json()['access_token']}"}


def test_health(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_register_login_refresh_me(client: TestClient) -> None:
    email, headers = _register(client, "alice")
    me = client.get("/api/users/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == email
    assert "password_hash" not in me.json()

    dup = client.post("/api/auth/register", json={"email": email, "name": "x", "password": "testpass123"})
    assert dup.status_code == 409

    login = client.post("/api/auth/login", json={"email": email, "password": "testpass123"})
    refreshed = client.post("/api/auth/refresh", json={"refresh_token": login.json()["refresh_token"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["token_type"] == "bearer"


def test_login_invalid_password(client: TestClient) -> None:
    email, _ = _register(client)
    r = client.post("/api/auth/login", json={"email": email, "password": "wrong"})
    assert r.status_code == 401
    assert "Invalid" in (r.json().get("detail") or "")


def test_me_requires_auth(client: TestClient) -> None:
    assert client.get("/api/users/me").status_code == 401
    assert client.get("/api/folders").status_code == 401


def test_rename_propagates_to_files(client: TestClient) -> None:
    _, headers = _register(client)
    docs = client.post("/api/folders", json={"name": "docs"}, headers=headers).json()
    year = client.post("/api/folders", json={"name": "2024", "parent_id": docs["id"]}, headers=headers).json()
    assert year["path"] == "docs/2024"
    up = client.post(
        "/api/files/upload",
        params={"name": "report.pdf", "folder_id": year["id"]},
        content=b"%PDF-1.4",
        headers={**headers, "Content-Type": "application/pdf"},
    )
    assert up.status_code == 201, up.text
    assert up.json()["path"] == "docs/2024/report.pdf"
    assert "storage_key" not in up.json()

    r = client.patch(f"/api/folders/{docs['id']}", json={"name": "archive"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["folder"]["path"] == "archive"
    assert r.json()["descendants_touched"] == 2

    f = client.get(f"/api/files/{up.json()['id']}", headers=headers).json()
    assert f["path"] == "archive/2024/report.pdf"
    crumbs = client.get(f"/api/folders/{year['id']}/breadcrumbs", headers=headers).json()
    assert [c["path"] for c in crumbs] == ["archive", "archive/2024"]
    contents = client.get(f"/api/folders/{year['id']}/contents", headers=headers).json()
    assert [x["name"] for x in contents["files"]] == ["report.pdf"]


def test_error_mapping(client: TestClient) -> None:
    _, headers = _register(client)
    docs = client.post("/api/folders", json={"name": "docs"}, headers=headers).json()
    sub = client.post("/api/folders", json={"name": "sub", "parent_id": docs["id"]}, headers=headers).json()

    cyclic = client.post(f"/api/folders/{docs['id']}/move", json={"parent_id": sub["id"]}, headers=headers)
    assert cyclic.status_code == 400
    assert cyclic.json()["error"] == "CyclicMoveError"
    assert cyclic.json()["retryable"] is False

    dup = client.post("/api/folders", json={"name": "docs"}, headers=headers)
    assert dup.status_code == 409
    assert dup.json()["error"] == "NameCollisionError"

    bad = client.patch(f"/api/folders/{docs['id']}", json={"name": "a/b"}, headers=headers)
    assert bad.status_code == 400
    assert bad.json()["error"] == "InvalidNameError"

    missing = client.get("/api/folders/nope", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFoundError"

    bad_color = client.patch(f"/api/folders/{docs['id']}", json={"color": "red"}, headers=headers)
    assert bad_color.status_code == 422


def test_signed_download(client: TestClient) -> None:
    _, headers = _register(client)
    up = client.post(
        "/api/files/upload",
        params={"name": "hello.txt"},
        content=b"hello world",
        headers={**headers, "Content-Type": "text/plain"},
    ).json()
    link = client.get(f"/api/files/{up['id']}/download-url", headers=headers)
    assert link.status_code == 200
    assert link.json()["expires_in"] == 60
    got = client.get(link.json()["url"])
    assert got.status_code == 200
    assert got.content == b"hello world"
    assert client.get("/api/files/download", params={"token": "forged"}).status_code == 403


def test_trash_restore_and_hard_delete(client: TestClient) -> None:
    _, headers = _register(client)
    docs = client.post("/api/folders", json={"name": "docs"}, headers=headers).json()
    up = client.post(
        "/api/files/upload",
        params={"name": "a.txt", "folder_id": docs["id"]},
        content=b"a",
        headers=headers,
    ).json()

    r = client.delete(f"/api/folders/{docs['id']}", headers=headers)
    assert r.status_code == 200
    assert [f["id"] for f in client.get("/api/folders/trash", headers=headers).json()] == [docs["id"]]
    assert client.get(f"/api/files/{up['id']}", headers=headers).status_code == 404

    restored = client.post(f"/api/folders/{docs['id']}/restore", headers=headers)
    assert restored.status_code == 200
    assert restored.json()["descendants_touched"] == 1
    assert client.get(f"/api/files/{up['id']}", headers=headers).status_code == 200

    hard = client.delete(f"/api/folders/{docs['id']}", params={"hard": "true"}, headers=headers)
    assert hard.json()["objects_removed"] == 1
    assert client.get("/api/folders", headers=headers).json() == []


def test_share_folder_gives_read_access(client: TestClient) -> None:
    _, alice = _register(client, "alice")
    bob_email, bob = _register(client, "bob")
    docs = client.post("/api/folders", json={"name": "docs"}, headers=alice).json()
    private = client.post("/api/folders", json={"name": "private"}, headers=alice).json()

    assert client.get(f"/api/folders/{docs['id']}/contents", headers=bob).status_code == 404
    share = client.post(
        "/api/shares/folders",
        json={"target_id": docs["id"], "email": bob_email, "permission": "read"},
        headers=alice,
    )
    assert share.status_code == 201, share.text
    assert share.json()["kind"] == "Folder"
    assert client.get(f"/api/folders/{docs['id']}/contents", headers=bob).status_code == 200
    assert client.get(f"/api/folders/{private['id']}/contents", headers=bob).status_code == 404
    mine = client.get("/api/shares/shared-with-me", headers=bob).json()
    assert [s["target_id"] for s in mine] == [docs["id"]]

    again = client.post(
        "/api/shares/folders", json={"target_id": docs["id"], "email": bob_email}, headers=alice
    )
    assert again.status_code == 400

    gone = client.delete(f"/api/shares/folders/{share.json()['id']}", headers=alice)
    assert gone.status_code == 204
    assert client.get(f"/api/folders/{docs['id']}/contents", headers=bob).status_code == 404


def test_activity_history(client: TestClient) -> None:
    _, headers = _register(client)
    docs = client.post("/api/folders", json={"name": "docs"}, headers=headers).json()
    client.patch(f"/api/folders/{docs['id']}", json={"name": "archive"}, headers=headers)
    page = client.get("/api/activity", params={"limit": 10}, headers=headers).json()
    assert page["total_count"] == 2
    assert [a["action"] for a in page["activities"]] == ["rename", "create"]
    assert page["activities"][0]["details"]["to"] == "archive"

    one = page["activities"][0]["id"]
    assert client.get(f"/api/activity/{one}", headers=headers).status_code == 200
    assert client.delete(f"/api/activity/{one}", headers=headers).status_code == 204
    assert client.get(f"/api/activity/{one}", headers=headers).status_code == 404
