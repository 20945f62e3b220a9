"""文档版本服务：替换、恢复与历史查询。

不变量：
- 文档的 ``version`` 在每次替换/恢复时严格加一，从不回退；
- 任一被覆盖的存储状态都会先写入且只写入一条 ``DocumentVersion``；
- 历史版本创建后不再修改。

并发控制分三层：进程内按文档 ID 分段加锁；数据库行锁
（``SELECT ... FOR UPDATE``）；以及 ``UPDATE ... WHERE version = :expected``
的比较写入，配合 ``(document_id, version_number)`` 唯一约束，
保证并发写入时每次提交恰好递增一次、快照不丢不重。
"""

from __future__ import annotations

import threading
import time
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.constants import DEFAULT_REPLACE_NOTE, RESTORE_BACKUP_NOTE
from app.packages.dms.core.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    OperationTimeoutError,
    VersionMismatchError,
)
from app.packages.dms.core.logger import logger
from app.packages.dms.crud.documents import document_crud, document_version_crud
from app.packages.dms.models.document import Document, DocumentVersion
from app.packages.dms.services.blob_storage import BlobLocator, BlobStore, build_object_key, get_blob_store

_LOCK_STRIPES = 64


class VersionService:
    """维护文档的只追加版本历史，并原子地更新当前文件指针。"""

    def __init__(
        self,
        store_factory: Callable[[], BlobStore] = get_blob_store,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store_factory = store_factory
        self._sleep = sleep
        self._locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    def _lock_for(self, document_id: int) -> threading.Lock:
        return self._locks[document_id % _LOCK_STRIPES]

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def get_document(self, db: Session, document_id: int) -> Document:
        document = document_crud.get(db, document_id)
        if document is None:
            raise NotFoundError("文档不存在")
        return document

    def list_versions(self, db: Session, document_id: int) -> List[DocumentVersion]:
        """按版本号倒序返回文档的历史版本。"""
        self.get_document(db, document_id)
        return document_version_crud.list_for_document(db, document_id=document_id)

    # ------------------------------------------------------------------
    # 替换与恢复
    # ------------------------------------------------------------------

    def replace(
        self,
        db: Session,
        document_id: int,
        *,
        content: bytes,
        filename: str,
        actor_id: int,
        note: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> DocumentVersion:
        """写入新文件并替换文档当前文件，返回被覆盖状态的快照。

        新对象必须先确认落盘，之后才会修改文档记录；写入失败时文档保持不变。
        """
        document = self.get_document(db, document_id)
        locator = self.write_blob(
            lambda: build_object_key(department_id=document.department_id, filename=filename),
            content,
            content_type=content_type,
        )

        try:
            with self._lock_for(document_id):
                return self._snapshot_and_point(
                    db,
                    document_id,
                    locator=locator,
                    actor_id=actor_id,
                    note=(note or "").strip() or DEFAULT_REPLACE_NOTE,
                )
        except Exception:
            self._discard_blob(locator.key)
            raise

    def restore(self, db: Session, document_id: int, version_id: int, *, actor_id: int) -> DocumentVersion:
        """把文档恢复为某个历史版本的文件，以新版本号的形式记录，返回恢复前的备份快照。"""
        self.get_document(db, document_id)
        target = document_version_crud.get(db, version_id)
        if target is None:
            raise NotFoundError("版本不存在")
        if target.document_id != document_id:
            raise VersionMismatchError()

        locator = BlobLocator(url=target.storage_url, key=target.storage_key, size=target.size_bytes)
        with self._lock_for(document_id):
            return self._snapshot_and_point(
                db,
                document_id,
                locator=locator,
                actor_id=actor_id,
                note=RESTORE_BACKUP_NOTE.format(version=target.version_number),
            )

    def write_blob(
        self,
        make_key: Callable[[], str],
        content: bytes,
        *,
        content_type: Optional[str] = None,
    ) -> BlobLocator:
        """写入对象存储，仅对超时做有限次指数退避重试；每次尝试使用新的对象 key。"""
        settings = get_settings()
        attempts = max(settings.blob_write_retries, 0) + 1
        store = self._store_factory()
        for attempt in range(1, attempts + 1):
            key = make_key()
            try:
                return store.put(key, content, content_type=content_type)
            except OperationTimeoutError:
                # 超时的写入可能稍后才落地，按孤儿对象清理
                self._discard_blob(key)
                if attempt >= attempts:
                    raise
                delay = settings.blob_retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning("Blob write for %s timed out (attempt %s/%s), retrying in %.2fs", key, attempt, attempts, delay)
                self._sleep(delay)
        raise OperationTimeoutError()  # pragma: no cover - loop always returns or raises

    def _snapshot_and_point(
        self,
        db: Session,
        document_id: int,
        *,
        locator: BlobLocator,
        actor_id: int,
        note: str,
    ) -> DocumentVersion:
        retries = max(get_settings().version_lock_retries, 1)
        for attempt in range(1, retries + 1):
            document = document_crud.get_for_update(db, document_id)
            if document is None or not document.is_active:
                db.rollback()
                raise NotFoundError("文档不存在")

            expected = document.version
            snapshot = DocumentVersion(
                document_id=document.id,
                version_number=expected,
                storage_url=document.storage_url,
                storage_key=document.storage_key,
                size_bytes=document.size_bytes,
                uploaded_by=document.uploaded_by,
                change_note=note,
            )
            db.add(snapshot)
            applied = document_crud.compare_and_set(
                db,
                document_id=document_id,
                expected_version=expected,
                values={
                    "version": expected + 1,
                    "storage_url": locator.url,
                    "storage_key": locator.key,
                    "size_bytes": locator.size,
                    "uploaded_by": actor_id,
                },
            )
            if not applied:
                db.rollback()
                logger.info("Document %s changed concurrently (attempt %s/%s)", document_id, attempt, retries)
                continue
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info("Snapshot v%s of document %s already exists, retrying", expected, document_id)
                continue

            db.refresh(snapshot)
            db.refresh(document)
            logger.info("Document %s advanced to version %s", document_id, expected + 1)
            return snapshot

        raise ConcurrentModificationError()

    def _discard_blob(self, key: str) -> None:
        try:
            self._store_factory().delete(key)
        except Exception:
            logger.warning("Failed to clean up orphan blob %s", key, exc_info=True)


version_service = VersionService()
