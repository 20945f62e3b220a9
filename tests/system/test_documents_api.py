"""文档接口的集成测试：上传、元数据、下载、替换、恢复与授权。"""

from fastapi.testclient import TestClient

from app.packages.dms.core.exceptions import StorageWriteFailedError
from app.packages.dms.db import session as db_session
from app.packages.dms.models import Document, Folder
from app.packages.dms.services.blob_storage import BlobStore, set_blob_store


def _upload(client, headers, folder_id, name="report.pdf", content=b"%PDF-1.4 v1", **form):
    data = {"folder_id": str(folder_id), **form}
    return client.post(
        "/api/v1/documents",
        headers=headers,
        data=data,
        files={"file": (name, content, "application/pdf")},
    )


def _replace(client, headers, document_id, name="report.pdf", content=b"%PDF-1.4 next", note=None):
    data = {"note": note} if note else {}
    return client.put(
        f"/api/v1/documents/{document_id}/file",
        headers=headers,
        data=data,
        files={"file": (name, content, "application/pdf")},
    )


def test_upload_requires_upload_right(client: TestClient, make_department, make_folder, make_user, auth_headers):
    dept = make_department()
    viewer = make_user(department_id=dept.id)
    uploader = make_user(department_id=dept.id)
    folder = make_folder(dept.id, grants={viewer.id: ["view"], uploader.id: ["view", "upload"]})

    assert _upload(client, auth_headers(viewer), folder.id).status_code == 403

    response = _upload(
        client,
        auth_headers(uploader),
        folder.id,
        title="Q1 Report",
        tags="Finance, q1 ,finance",
        metadata='{"owner": "finance"}',
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["title"] == "Q1 Report"
    assert data["version"] == 1
    assert data["file_type"] == "pdf"
    assert data["tags"] == ["finance", "q1"]
    assert data["metadata"] == {"owner": "finance"}
    assert data["uploaded_by"] == uploader.id
    assert data["department_id"] == dept.id


def test_upload_rejects_unsupported_type_and_empty_file(client: TestClient, admin_headers, make_department, make_folder):
    dept = make_department()
    folder = make_folder(dept.id)

    unsupported = _upload(client, admin_headers, folder.id, name="script.exe")
    assert unsupported.status_code == 400
    empty = _upload(client, admin_headers, folder.id, content=b"")
    assert empty.status_code == 400


def test_document_inherits_only_from_immediate_folder(
    client: TestClient, admin_headers, make_department, make_folder, make_user, auth_headers
):
    dept = make_department()
    user = make_user(department_id=dept.id)
    grandparent = make_folder(dept.id, grants={user.id: ["view", "download"]})
    parent = make_folder(dept.id, parent_id=grandparent.id)
    document_id = _upload(client, admin_headers, parent.id).json()["data"]["id"]
    headers = auth_headers(user)

    assert client.get(f"/api/v1/documents/{document_id}", headers=headers).status_code == 403
    probe = client.get(f"/api/v1/documents/{document_id}/access", headers=headers, params={"right": "view"})
    assert probe.json()["data"] == {"document_id": document_id, "right": "view", "allowed": False}

    client.put(
        f"/api/v1/folders/{parent.id}/permissions",
        headers=admin_headers,
        json={"user_id": user.id, "rights": ["view"]},
    )
    assert client.get(f"/api/v1/documents/{document_id}", headers=headers).status_code == 200
    probe = client.get(f"/api/v1/documents/{document_id}/access", headers=headers, params={"right": "download"})
    assert probe.json()["data"]["allowed"] is False

    # 文档上的用户条目优先于文件夹条目
    client.put(
        f"/api/v1/documents/{document_id}/permissions",
        headers=admin_headers,
        json={"user_id": user.id, "rights": ["view", "download"]},
    )
    probe = client.get(f"/api/v1/documents/{document_id}/access", headers=headers, params={"right": "download"})
    assert probe.json()["data"]["allowed"] is True

    bad = client.get(f"/api/v1/documents/{document_id}/access", headers=headers, params={"right": "share"})
    assert bad.status_code == 400


def test_update_metadata_keeps_version(client: TestClient, admin_headers, make_department, make_folder):
    dept = make_department()
    folder = make_folder(dept.id)
    document_id = _upload(client, admin_headers, folder.id).json()["data"]["id"]

    response = client.patch(
        f"/api/v1/documents/{document_id}",
        headers=admin_headers,
        json={"title": "Renamed", "tags": ["A", "b", "a"]},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["title"] == "Renamed"
    assert data["tags"] == ["a", "b"]
    assert data["version"] == 1


def test_replace_restore_and_download_flow(client: TestClient, admin_headers, make_department, make_folder):
    dept = make_department()
    folder = make_folder(dept.id)
    document = _upload(client, admin_headers, folder.id, content=b"one").json()["data"]
    document_id = document["id"]

    first = _replace(client, admin_headers, document_id, content=b"two", note="fixed typo")
    assert first.status_code == 200, first.text
    body = first.json()["data"]
    assert body["document"]["version"] == 2
    assert body["snapshot"]["version_number"] == 1
    assert body["snapshot"]["change_note"] == "fixed typo"
    _replace(client, admin_headers, document_id, content=b"three")

    versions = client.get(f"/api/v1/documents/{document_id}/versions", headers=admin_headers).json()["data"]
    assert versions["current_version"] == 3
    assert [item["version_number"] for item in versions["items"]] == [2, 1]
    v1_id = versions["items"][-1]["id"]

    restored = client.post(f"/api/v1/documents/{document_id}/versions/{v1_id}/restore", headers=admin_headers)
    assert restored.status_code == 200
    restored_body = restored.json()["data"]
    assert restored_body["document"]["version"] == 4
    assert restored_body["snapshot"]["version_number"] == 3

    download = client.get(f"/api/v1/documents/{document_id}/download", headers=admin_headers)
    assert download.status_code == 200
    assert download.content == b"one"

    old = client.get(
        f"/api/v1/documents/{document_id}/download", headers=admin_headers, params={"version_id": v1_id}
    )
    assert old.content == b"one"


def test_replace_rejects_different_type(client: TestClient, admin_headers, make_department, make_folder):
    dept = make_department()
    folder = make_folder(dept.id)
    document_id = _upload(client, admin_headers, folder.id).json()["data"]["id"]

    response = _replace(client, admin_headers, document_id, name="photo.png")
    assert response.status_code == 400


def test_restore_with_foreign_version_is_a_conflict(client: TestClient, admin_headers, make_department, make_folder):
    dept = make_department()
    folder = make_folder(dept.id)
    first_id = _upload(client, admin_headers, folder.id).json()["data"]["id"]
    second_id = _upload(client, admin_headers, folder.id).json()["data"]["id"]
    snapshot_id = _replace(client, admin_headers, second_id).json()["data"]["snapshot"]["id"]

    response = client.post(f"/api/v1/documents/{first_id}/versions/{snapshot_id}/restore", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["data"]["kind"] == "version_mismatch"


class _BrokenStore(BlobStore):
    def __init__(self):
        super().__init__(timeout_seconds=1.0)

    def put(self, key, data, *, content_type=None):
        raise StorageWriteFailedError()


def test_storage_failure_returns_502_and_keeps_document(
    client: TestClient, admin_headers, make_department, make_folder, blob_store
):
    dept = make_department()
    folder = make_folder(dept.id)
    document_id = _upload(client, admin_headers, folder.id).json()["data"]["id"]

    set_blob_store(_BrokenStore())
    try:
        response = _replace(client, admin_headers, document_id)
    finally:
        set_blob_store(blob_store)

    assert response.status_code == 502
    assert response.json()["data"] == {"kind": "storage_write_failed", "category": "upstream-failure"}
    current = client.get(f"/api/v1/documents/{document_id}", headers=admin_headers).json()["data"]
    assert current["version"] == 1
    versions = client.get(f"/api/v1/documents/{document_id}/versions", headers=admin_headers).json()["data"]
    assert versions["items"] == []


def test_delete_document_is_soft(client: TestClient, admin_headers, make_department, make_folder, make_user, auth_headers):
    dept = make_department()
    user = make_user(department_id=dept.id)
    folder = make_folder(dept.id, grants={user.id: ["view", "upload"]})
    document_id = _upload(client, auth_headers(user), folder.id).json()["data"]["id"]

    denied = client.delete(f"/api/v1/documents/{document_id}", headers=auth_headers(user))
    assert denied.status_code == 403

    assert client.delete(f"/api/v1/documents/{document_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/v1/documents/{document_id}", headers=admin_headers).status_code == 404
    children = client.get(f"/api/v1/folders/{folder.id}/children", headers=admin_headers).json()["data"]
    assert children["documents"] == []


class _FolderRemovedDuringWrite(BlobStore):
    """写入对象后立即停用目标文件夹，模拟上传过程中文件夹被并发删除。"""

    def __init__(self, inner: BlobStore, folder_id: int):
        super().__init__(timeout_seconds=inner.timeout_seconds)
        self.inner = inner
        self.folder_id = folder_id

    def put(self, key, data, *, content_type=None):
        locator = self.inner.put(key, data, content_type=content_type)
        session = db_session.SessionLocal()
        try:
            session.query(Folder).filter(Folder.id == self.folder_id).update({"is_active": False})
            session.commit()
        finally:
            session.close()
        return locator

    def exists(self, key):
        return self.inner.exists(key)

    def delete(self, key):
        self.inner.delete(key)


def test_upload_into_folder_deleted_mid_write_is_rejected(
    client: TestClient, admin_headers, make_department, make_folder, blob_store, db_session_fixture
):
    dept = make_department()
    folder = make_folder(dept.id)

    set_blob_store(_FolderRemovedDuringWrite(blob_store, folder.id))
    try:
        response = _upload(client, admin_headers, folder.id)
    finally:
        set_blob_store(blob_store)

    assert response.status_code == 404
    assert db_session_fixture.query(Document).filter(Document.folder_id == folder.id).count() == 0
    assert [p for p in blob_store.root.rglob("*") if p.is_file()] == []
