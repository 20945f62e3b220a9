"""对象存储的测试：唯一 key、落盘确认、超时与路径越权。"""

import os
import threading
import time

import pytest

from app.packages.dms.core.exceptions import (
    AppException,
    NotFoundError,
    OperationTimeoutError,
    StorageWriteFailedError,
)
from app.packages.dms.services.blob_storage import LocalBlobStore, _bounded, build_object_key


def test_object_keys_are_unique_and_sanitized():
    first = build_object_key(department_id=7, filename="../../etc/Quarterly Report.pdf")
    second = build_object_key(department_id=7, filename="../../etc/Quarterly Report.pdf")
    assert first != second
    assert first.startswith("documents/7/")
    assert first.endswith("/Quarterly_Report.pdf")
    assert ".." not in first


def test_local_put_confirms_and_reads_back(tmp_path):
    store = LocalBlobStore(tmp_path, public_base_url="/files/")
    locator = store.put("documents/1/abc/a.pdf", b"hello")

    assert locator.key == "documents/1/abc/a.pdf"
    assert locator.url == "/files/documents/1/abc/a.pdf"
    assert locator.size == 5
    assert store.exists(locator.key)
    assert store.read(locator.key) == b"hello"
    assert list(tmp_path.rglob("*.part")) == []

    store.delete(locator.key)
    assert not store.exists(locator.key)
    with pytest.raises(NotFoundError):
        store.read(locator.key)


def test_local_put_never_overwrites_existing_object(tmp_path):
    store = LocalBlobStore(tmp_path)
    (tmp_path / "documents").mkdir()
    (tmp_path / "documents" / "x.pdf").write_bytes(b"original")

    with pytest.raises(StorageWriteFailedError):
        store.put("documents/x.pdf", b"data")
    assert store.read("documents/x.pdf") == b"original"
    assert list(tmp_path.rglob("*.part")) == []


def test_local_put_after_timeout_leaves_no_trace(tmp_path, monkeypatch):
    store = LocalBlobStore(tmp_path, timeout_seconds=0.1)
    real_fsync = os.fsync
    finished = threading.Event()

    def _slow_fsync(fd):
        time.sleep(0.4)
        real_fsync(fd)
        finished.set()

    monkeypatch.setattr(os, "fsync", _slow_fsync)
    with pytest.raises(OperationTimeoutError):
        store.put("documents/1/abc/late.pdf", b"late")

    assert finished.wait(2.0)
    time.sleep(0.1)
    assert not store.exists("documents/1/abc/late.pdf")
    assert list(tmp_path.rglob("*.part")) == []


def test_local_store_rejects_path_traversal(tmp_path):
    store = LocalBlobStore(tmp_path / "root")
    with pytest.raises(AppException):
        store.put("../escape.pdf", b"data")


def test_bounded_call_times_out():
    with pytest.raises(OperationTimeoutError):
        _bounded("write", lambda: time.sleep(0.5), timeout=0.05)


def test_bounded_call_maps_unexpected_errors():
    def _boom():
        raise OSError("disk full")

    with pytest.raises(StorageWriteFailedError) as exc_info:
        _bounded("write", _boom, timeout=1.0)
    assert exc_info.value.status_code == 502
    assert "disk full" not in exc_info.value.detail
