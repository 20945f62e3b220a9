"""文档版本管理的测试：替换、恢复、失败回滚、超时重试与并发替换。"""

import os
import threading
import time
import uuid

import pytest

from app.packages.dms.core.exceptions import (
    NotFoundError,
    OperationTimeoutError,
    StorageWriteFailedError,
    VersionMismatchError,
)
from app.packages.dms.db import session as db_session
from app.packages.dms.models.document import Document, DocumentVersion
from app.packages.dms.services.blob_storage import BlobLocator, BlobStore, LocalBlobStore, build_object_key
from app.packages.dms.services.version_service import VersionService, version_service


@pytest.fixture()
def document_factory(db_session_fixture, make_department, make_folder, make_user, blob_store):
    def _make(content: bytes = b"v1") -> Document:
        dept = make_department()
        folder = make_folder(dept.id)
        owner = make_user(department_id=dept.id)
        locator = blob_store.put(build_object_key(department_id=dept.id, filename="report.pdf"), content)
        document = Document(
            title="report",
            original_filename="report.pdf",
            storage_url=locator.url,
            storage_key=locator.key,
            file_type="pdf",
            size_bytes=locator.size,
            uploaded_by=owner.id,
            folder_id=folder.id,
            department_id=dept.id,
        )
        db_session_fixture.add(document)
        db_session_fixture.commit()
        db_session_fixture.refresh(document)
        return document

    return _make


class FlakyStore(BlobStore):
    """前 ``timeouts`` 次写入超时，之后写入成功；``fail`` 为真时始终写入失败。"""

    def __init__(self, timeouts: int = 0, fail: bool = False):
        super().__init__(timeout_seconds=1.0)
        self.timeouts = timeouts
        self.fail = fail
        self.attempts = 0
        self.deleted = []

    def put(self, key, data, *, content_type=None):
        self.attempts += 1
        if self.fail:
            raise StorageWriteFailedError()
        if self.attempts <= self.timeouts:
            raise OperationTimeoutError()
        return BlobLocator(url=f"mem://{key}", key=key, size=len(data))

    def delete(self, key):
        self.deleted.append(key)


def _versions(db, document_id):
    return (
        db.query(DocumentVersion)
        .filter(DocumentVersion.document_id == document_id)
        .order_by(DocumentVersion.version_number)
        .all()
    )


def test_replace_and_restore_scenario(db_session_fixture, document_factory, make_user, blob_store):
    document = document_factory(b"first")
    key_v1 = document.storage_key
    alice, bob, carol = make_user(), make_user(), make_user()

    snap1 = version_service.replace(
        db_session_fixture, document.id, content=b"second", filename="report.pdf", actor_id=alice.id, note="fixed typo"
    )
    db_session_fixture.refresh(document)
    key_v2 = document.storage_key
    assert document.version == 2
    assert document.uploaded_by == alice.id
    assert (snap1.version_number, snap1.storage_key, snap1.change_note) == (1, key_v1, "fixed typo")

    snap2 = version_service.replace(
        db_session_fixture, document.id, content=b"third", filename="report.pdf", actor_id=bob.id, note="added section"
    )
    db_session_fixture.refresh(document)
    key_v3 = document.storage_key
    assert document.version == 3
    assert (snap2.version_number, snap2.storage_key) == (2, key_v2)

    backup = version_service.restore(db_session_fixture, document.id, snap1.id, actor_id=carol.id)
    db_session_fixture.refresh(document)
    assert (backup.version_number, backup.storage_key) == (3, key_v3)
    assert backup.change_note == "Backup before restoring version 1"
    assert document.version == 4
    assert document.storage_key == key_v1
    assert blob_store.read(document.storage_key) == b"first"

    assert [item.version_number for item in _versions(db_session_fixture, document.id)] == [1, 2, 3]
    listed = version_service.list_versions(db_session_fixture, document.id)
    assert [item.version_number for item in listed] == [3, 2, 1]


def test_sequential_replaces_grow_history_by_one_each(db_session_fixture, document_factory, make_user):
    document = document_factory()
    actor = make_user()
    for i in range(5):
        version_service.replace(
            db_session_fixture, document.id, content=f"rev-{i}".encode(), filename="report.pdf", actor_id=actor.id
        )
    db_session_fixture.refresh(document)
    history = _versions(db_session_fixture, document.id)
    assert document.version == 6
    assert [item.version_number for item in history] == [1, 2, 3, 4, 5]
    assert all(item.change_note == "File replaced" for item in history)


def test_failed_blob_write_leaves_document_untouched(db_session_fixture, document_factory, make_user):
    document = document_factory()
    before = (document.version, document.storage_key)
    store = FlakyStore(fail=True)
    service = VersionService(store_factory=lambda: store, sleep=lambda _: None)

    with pytest.raises(StorageWriteFailedError):
        service.replace(db_session_fixture, document.id, content=b"new", filename="report.pdf", actor_id=make_user().id)

    db_session_fixture.refresh(document)
    assert (document.version, document.storage_key) == before
    assert _versions(db_session_fixture, document.id) == []
    # 非超时错误不重试
    assert store.attempts == 1


def test_transient_timeout_is_retried_with_backoff(db_session_fixture, document_factory, make_user):
    document = document_factory()
    store = FlakyStore(timeouts=2)
    delays = []
    service = VersionService(store_factory=lambda: store, sleep=delays.append)

    service.replace(db_session_fixture, document.id, content=b"new", filename="report.pdf", actor_id=make_user().id)

    db_session_fixture.refresh(document)
    assert store.attempts == 3
    assert delays == [0.5, 1.0]
    assert document.version == 2
    assert document.storage_url.startswith("mem://")


def test_timeouts_exhausting_retries_surface_as_timeout(db_session_fixture, document_factory, make_user):
    document = document_factory()
    store = FlakyStore(timeouts=10)
    service = VersionService(store_factory=lambda: store, sleep=lambda _: None)

    with pytest.raises(OperationTimeoutError) as exc_info:
        service.replace(db_session_fixture, document.id, content=b"new", filename="report.pdf", actor_id=make_user().id)

    assert exc_info.value.status_code == 504
    db_session_fixture.refresh(document)
    assert document.version == 1


def test_local_store_timeout_retries_under_a_fresh_key(tmp_path, monkeypatch):
    store = LocalBlobStore(tmp_path, timeout_seconds=0.2)
    real_fsync = os.fsync
    calls = []
    first_done = threading.Event()

    def _slow_first_fsync(fd):
        calls.append(fd)
        if len(calls) == 1:
            time.sleep(0.6)
            real_fsync(fd)
            first_done.set()
            return
        real_fsync(fd)

    monkeypatch.setattr(os, "fsync", _slow_first_fsync)
    keys = iter(["documents/1/first/report.pdf", "documents/1/second/report.pdf"])
    service = VersionService(store_factory=lambda: store, sleep=lambda _: None)

    locator = service.write_blob(lambda: next(keys), b"data")

    assert locator.key == "documents/1/second/report.pdf"
    assert store.read(locator.key) == b"data"
    # 等待超时的首次写入结束，它不能留下任何对象或临时文件
    assert first_done.wait(2.0)
    time.sleep(0.1)
    stored = sorted(p.relative_to(tmp_path).as_posix() for p in tmp_path.rglob("*") if p.is_file())
    assert stored == ["documents/1/second/report.pdf"]


def test_restore_rejects_version_of_other_document(db_session_fixture, document_factory, make_user):
    actor = make_user()
    first = document_factory()
    second = document_factory()
    snapshot = version_service.replace(
        db_session_fixture, second.id, content=b"x", filename="report.pdf", actor_id=actor.id
    )

    with pytest.raises(VersionMismatchError):
        version_service.restore(db_session_fixture, first.id, snapshot.id, actor_id=actor.id)
    with pytest.raises(NotFoundError):
        version_service.restore(db_session_fixture, first.id, 987654, actor_id=actor.id)
    with pytest.raises(NotFoundError):
        version_service.replace(db_session_fixture, 987654, content=b"x", filename="a.pdf", actor_id=actor.id)

    db_session_fixture.refresh(first)
    assert first.version == 1


def test_concurrent_replaces_each_advance_exactly_once(db_session_fixture, document_factory, make_user):
    document = document_factory()
    actor = make_user()
    workers = 6
    errors = []

    def _replace(index: int) -> None:
        session = db_session.SessionLocal()
        try:
            version_service.replace(
                session,
                document.id,
                content=f"{index}-{uuid.uuid4().hex}".encode(),
                filename="report.pdf",
                actor_id=actor.id,
            )
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=_replace, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    db_session_fixture.refresh(document)
    history = _versions(db_session_fixture, document.id)
    assert document.version == workers + 1
    assert [item.version_number for item in history] == list(range(1, workers + 1))
    assert len({item.storage_key for item in history}) == workers
