"""对象存储抽象与实现：统一封装本地文件系统与 S3 的文档文件读写。

- 每个对象使用唯一 key 写入，从不覆盖已有对象；
- ``put`` 在写入后确认对象存在才返回定位信息，未确认视为写入失败；
- 所有 I/O 都受 ``BLOB_TIMEOUT_SECONDS`` 约束，超时抛出 ``Timeout``，
  其余失败抛出 ``StorageWriteFailed``，底层错误文本只写日志。
"""

from __future__ import annotations

import os
import re
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

from fastapi.responses import FileResponse, RedirectResponse

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.exceptions import (
    AppException,
    DomainError,
    NotFoundError,
    OperationTimeoutError,
    StorageWriteFailedError,
)
from app.packages.dms.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_INTERNAL_SERVER_ERROR
from app.packages.dms.core.logger import logger

T = TypeVar("T")

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="blob-io")
_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class BlobLocator:
    """已确认落盘的对象定位信息。"""

    url: str
    key: str
    size: int


def _bounded(action: str, fn: Callable[[], T], timeout: float) -> T:
    """在超时约束内执行存储调用，统一转换异常类型。"""
    future = _executor.submit(fn)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        future.cancel()
        logger.warning("Blob %s timed out after %.1fs", action, timeout)
        raise OperationTimeoutError() from exc
    except DomainError:
        raise
    except Exception as exc:
        logger.exception("Blob %s failed: %s", action, exc)
        raise StorageWriteFailedError() from exc


def build_object_key(*, department_id: int, filename: str) -> str:
    """生成唯一对象 key：``documents/{部门}/{uuid}/{安全文件名}``。"""
    base = os.path.basename(filename or "").strip() or "file"
    safe = _SAFE_NAME.sub("_", base).strip("._") or "file"
    return f"documents/{department_id}/{uuid.uuid4().hex}/{safe}"


class BlobStore:
    """对象存储接口。"""

    def __init__(self, *, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds

    def put(self, key: str, data: bytes, *, content_type: Optional[str] = None) -> BlobLocator:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def read(self, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def download(self, key: str, *, filename: str, media_type: Optional[str] = None):
        raise NotImplementedError

    def _confirmed(self, key: str, size: int, url: str) -> BlobLocator:
        if not self.exists(key):
            logger.error("Blob write for %s was not confirmed by the store", key)
            raise StorageWriteFailedError()
        return BlobLocator(url=url, key=key, size=size)


class LocalBlobStore(BlobStore):
    """本地文件系统实现，对象 key 映射为根目录下的相对路径。"""

    def __init__(self, root: str | Path, *, public_base_url: str = "/files", timeout_seconds: float = 30.0):
        super().__init__(timeout_seconds=timeout_seconds)
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover - 极端情况下可能失败
            raise AppException("无法创建本地存储根目录", HTTP_STATUS_INTERNAL_SERVER_ERROR) from exc

    def _resolve(self, key: str) -> Path:
        candidate = (self.root / key.lstrip("/")).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise AppException("非法路径: 越权访问", HTTP_STATUS_BAD_REQUEST) from exc
        return candidate

    def put(self, key: str, data: bytes, *, content_type: Optional[str] = None) -> BlobLocator:
        target = self._resolve(key)
        abandoned = threading.Event()

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            # 每次写入使用独立的临时文件，超时后仍在进行的写入不会与重试互相干扰
            tmp = target.with_name(f"{target.name}.{uuid.uuid4().hex}.part")
            try:
                with open(tmp, "xb") as fh:
                    fh.write(data)
                    fh.flush()
                    os.fsync(fh.fileno())
                if abandoned.is_set():
                    logger.info("Discarding late blob write for %s after timeout", key)
                    return
                # 硬链接在目标已存在时失败，已有对象永不被覆盖
                os.link(tmp, target)
            finally:
                tmp.unlink(missing_ok=True)

        try:
            _bounded("write", _write, self.timeout_seconds)
        except OperationTimeoutError:
            abandoned.set()
            raise
        return self._confirmed(key, len(data), f"{self.public_base_url}/{key}")

    def exists(self, key: str) -> bool:
        target = self._resolve(key)
        return _bounded("head", target.is_file, self.timeout_seconds)

    def read(self, key: str) -> bytes:
        target = self._resolve(key)
        if not self.exists(key):
            raise NotFoundError("文件不存在")
        return _bounded("read", target.read_bytes, self.timeout_seconds)

    def delete(self, key: str) -> None:
        target = self._resolve(key)
        _bounded("delete", lambda: target.unlink(missing_ok=True), self.timeout_seconds)

    def download(self, key: str, *, filename: str, media_type: Optional[str] = None):
        target = self._resolve(key)
        if not self.exists(key):
            raise NotFoundError("文件不存在")
        return FileResponse(str(target), media_type=media_type or "application/octet-stream", filename=filename)


class S3BlobStore(BlobStore):
    """S3 实现（boto3），写入后通过 ``head_object`` 确认。"""

    def __init__(
        self,
        *,
        bucket: str,
        region: Optional[str],
        access_key_id: Optional[str],
        secret_access_key: Optional[str],
        endpoint_url: Optional[str] = None,
        prefix: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(timeout_seconds=timeout_seconds)
        import boto3
        from botocore.config import Config

        self.bucket = bucket
        self.prefix = (prefix or "").strip("/")
        self._client = boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(
                connect_timeout=timeout_seconds,
                read_timeout=timeout_seconds,
                retries={"max_attempts": 1},
            ),
        )

    def _join_key(self, key: str) -> str:
        key = key.lstrip("/")
        return f"{self.prefix}/{key}" if self.prefix else key

    def _url(self, full_key: str) -> str:
        return f"s3://{self.bucket}/{full_key}"

    def put(self, key: str, data: bytes, *, content_type: Optional[str] = None) -> BlobLocator:
        full_key = self._join_key(key)
        extra = {"ContentType": content_type} if content_type else {}
        _bounded(
            "write",
            lambda: self._client.put_object(Bucket=self.bucket, Key=full_key, Body=data, **extra),
            self.timeout_seconds,
        )
        return self._confirmed(key, len(data), self._url(full_key))

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        full_key = self._join_key(key)

        def _head() -> bool:
            try:
                self._client.head_object(Bucket=self.bucket, Key=full_key)
            except ClientError as exc:
                code = str(exc.response.get("Error", {}).get("Code", ""))
                if code in {"404", "NoSuchKey", "NotFound"}:
                    return False
                raise
            return True

        return _bounded("head", _head, self.timeout_seconds)

    def read(self, key: str) -> bytes:
        if not self.exists(key):
            raise NotFoundError("文件不存在")
        full_key = self._join_key(key)
        return _bounded(
            "read",
            lambda: self._client.get_object(Bucket=self.bucket, Key=full_key)["Body"].read(),
            self.timeout_seconds,
        )

    def delete(self, key: str) -> None:
        full_key = self._join_key(key)
        _bounded("delete", lambda: self._client.delete_object(Bucket=self.bucket, Key=full_key), self.timeout_seconds)

    def download(self, key: str, *, filename: str, media_type: Optional[str] = None):
        params = {
            "Bucket": self.bucket,
            "Key": self._join_key(key),
            "ResponseContentDisposition": f'attachment; filename="{filename}"',
        }
        url = _bounded(
            "presign",
            lambda: self._client.generate_presigned_url("get_object", Params=params, ExpiresIn=300),
            self.timeout_seconds,
        )
        return RedirectResponse(url)


def build_blob_store() -> BlobStore:
    """根据配置创建对象存储实例。"""
    settings = get_settings()
    backend = (settings.storage_backend or "").upper()
    if backend == "LOCAL":
        return LocalBlobStore(
            settings.storage_local_directory,
            public_base_url=settings.storage_public_base_url,
            timeout_seconds=settings.blob_timeout_seconds,
        )
    if backend == "S3":
        if not settings.s3_bucket_name:
            raise AppException("S3 配置不完整", HTTP_STATUS_BAD_REQUEST)
        return S3BlobStore(
            bucket=settings.s3_bucket_name,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            endpoint_url=settings.s3_endpoint_url,
            prefix=settings.s3_path_prefix,
            timeout_seconds=settings.blob_timeout_seconds,
        )
    raise AppException("不支持的存储类型", HTTP_STATUS_BAD_REQUEST)


_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    global _store
    if _store is None:
        _store = build_blob_store()
        logger.info("Blob store initialized: %s", type(_store).__name__)
    return _store


def set_blob_store(store: Optional[BlobStore]) -> None:
    """替换全局对象存储实例，传入 ``None`` 时下次调用按配置重建。"""
    global _store
    _store = store
