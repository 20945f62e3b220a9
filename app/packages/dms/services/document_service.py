"""文档业务服务：上传、元数据维护、下载、版本替换与恢复、显式授权。

版本相关的写入全部委托给 ``version_service``，本模块只负责权限校验、
参数规范化以及审计与通知的分发。
"""

from __future__ import annotations

import mimetypes
import os
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_OK,
    HTTP_STATUS_PAYLOAD_TOO_LARGE,
)
from app.packages.dms.core.config import get_settings
from app.packages.dms.core.enums import (
    AccessRight,
    AuditActionEnum,
    DocumentTypeEnum,
    NotificationTypeEnum,
    ResourceTypeEnum,
)
from app.packages.dms.core.exceptions import AppException, NotFoundError
from app.packages.dms.core.logger import logger
from app.packages.dms.core.responses import create_response
from app.packages.dms.core.timezone import format_datetime
from app.packages.dms.crud.documents import document_crud, document_version_crud
from app.packages.dms.crud.folders import folder_crud
from app.packages.dms.models.document import Document, DocumentVersion
from app.packages.dms.models.folder import Folder
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta, audit_service
from app.packages.dms.services.blob_storage import build_object_key, get_blob_store
from app.packages.dms.services.notification_service import notification_service
from app.packages.dms.services.permission_service import Principal, permission_service, serialize_entries
from app.packages.dms.services.version_service import version_service

# 扩展名到文档类型的映射，未列出的扩展名一律拒绝
_EXTENSION_TYPES = {
    ".pdf": DocumentTypeEnum.PDF,
    ".docx": DocumentTypeEnum.DOCX,
    ".xlsx": DocumentTypeEnum.XLSX,
    ".jpg": DocumentTypeEnum.JPG,
    ".jpeg": DocumentTypeEnum.JPG,
    ".png": DocumentTypeEnum.PNG,
    ".zip": DocumentTypeEnum.ZIP,
}


def detect_file_type(filename: str) -> DocumentTypeEnum:
    """根据文件扩展名识别文档类型。"""
    ext = os.path.splitext(filename or "")[1].lower()
    try:
        return _EXTENSION_TYPES[ext]
    except KeyError:
        allowed = ", ".join(item.value for item in DocumentTypeEnum)
        raise AppException(f"不支持的文件类型，仅允许: {allowed}", HTTP_STATUS_BAD_REQUEST) from None


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """标签去除首尾空白、转为小写并按首次出现顺序去重。"""
    result: List[str] = []
    for raw in tags or []:
        tag = (raw or "").strip().lower()
        if tag and tag not in result:
            result.append(tag)
    return result


def _guess_media_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename or "")
    return guessed or "application/octet-stream"


def _check_content(content: bytes) -> None:
    if not content:
        raise AppException("上传文件不能为空", HTTP_STATUS_BAD_REQUEST)
    limit = get_settings().max_upload_size_bytes
    if len(content) > limit:
        raise AppException(
            f"文件大小超过限制（最大 {limit // (1024 * 1024)} MB）",
            HTTP_STATUS_PAYLOAD_TOO_LARGE,
        )


class DocumentService:
    def upload(
        self,
        db: Session,
        *,
        actor: User,
        folder_id: int,
        filename: str,
        content: bytes,
        title: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """把文件上传到指定文件夹，成功后文档版本为 1。"""
        principal = Principal.from_user(actor)
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError("文件夹不存在")
        permission_service.require_access(principal, folder, AccessRight.UPLOAD)

        filename = os.path.basename(filename or "").strip()
        file_type = detect_file_type(filename)
        _check_content(content)

        key = build_object_key(department_id=folder.department_id, filename=filename)
        locator = get_blob_store().put(key, content, content_type=_guess_media_type(filename))

        # 写入文档前锁定文件夹行并确认仍有效，与并发的文件夹删除串行化
        folder = folder_crud.get_for_update(db, folder_id)
        if folder is None or not folder.is_active:
            db.rollback()
            self._discard_blob(locator.key)
            raise NotFoundError("文件夹不存在")

        document = Document(
            title=(title or "").strip() or os.path.splitext(filename)[0] or filename,
            original_filename=filename,
            storage_url=locator.url,
            storage_key=locator.key,
            file_type=file_type.value,
            size_bytes=locator.size,
            tags=normalize_tags(tags),
            extra_metadata=dict(metadata or {}),
            uploaded_by=actor.id,
            version=1,
            folder_id=folder.id,
            department_id=folder.department_id,
            created_by=actor.id,
        )
        try:
            db.add(document)
            db.commit()
        except Exception:
            db.rollback()
            self._discard_blob(locator.key)
            raise
        db.refresh(document)
        logger.info("Document %s uploaded to folder %s by user %s", document.id, folder.id, actor.id)

        audit_service.record(
            action=AuditActionEnum.DOCUMENT_UPLOAD,
            resource_type=ResourceTypeEnum.DOCUMENT,
            actor=actor,
            resource_id=document.id,
            resource_name=document.title,
            department_id=document.department_id,
            client=client,
            details={"folder_id": folder.id, "size_bytes": document.size_bytes, "file_type": document.file_type},
        )
        notification_service.notify(
            self._explicit_users(folder),
            type=NotificationTypeEnum.DOCUMENT_UPLOADED,
            title=f"文件夹「{folder.name}」中上传了新文档「{document.title}」",
            document_id=document.id,
            folder_id=folder.id,
            exclude_user_id=actor.id,
        )
        return create_response("文档上传成功", self.serialize(document, principal), HTTP_STATUS_OK)

    def get_document(self, db: Session, *, actor: User, document_id: int) -> dict:
        principal = Principal.from_user(actor)
        document = self._load(db, document_id)
        permission_service.require_access(principal, document, AccessRight.VIEW)
        return create_response("获取文档成功", self.serialize(document, principal), HTTP_STATUS_OK)

    def update_metadata(
        self,
        db: Session,
        *,
        actor: User,
        document_id: int,
        title: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """修改标题、标签或自定义元数据；不影响文件与版本号。"""
        principal = Principal.from_user(actor)
        document = self._load(db, document_id)
        permission_service.require_access(principal, document, AccessRight.EDIT)

        changed: Dict[str, Any] = {}
        if title is not None:
            title = title.strip()
            if not title:
                raise AppException("文档标题不能为空", HTTP_STATUS_BAD_REQUEST)
            document.title = title
            changed["title"] = title
        if tags is not None:
            document.tags = normalize_tags(tags)
            changed["tags"] = document.tags
        if metadata is not None:
            document.extra_metadata = dict(metadata)
            changed["metadata"] = sorted(document.extra_metadata)
        if changed:
            document_crud.save(db, document)
            audit_service.record(
                action=AuditActionEnum.DOCUMENT_UPDATE,
                resource_type=ResourceTypeEnum.DOCUMENT,
                actor=actor,
                resource_id=document.id,
                resource_name=document.title,
                department_id=document.department_id,
                client=client,
                details=changed,
            )
        return create_response("文档信息已更新", self.serialize(document, principal), HTTP_STATUS_OK)

    def download(
        self,
        db: Session,
        *,
        actor: User,
        document_id: int,
        version_id: Optional[int] = None,
        client: Optional[ClientMeta] = None,
    ):
        """返回当前文件或指定历史版本的下载响应。"""
        document = self._load(db, document_id)
        permission_service.require_access(Principal.from_user(actor), document, AccessRight.DOWNLOAD)

        storage_key = document.storage_key
        version_number = document.version
        if version_id is not None:
            version = document_version_crud.get(db, version_id)
            if version is None or version.document_id != document.id:
                raise NotFoundError("版本不存在")
            storage_key = version.storage_key
            version_number = version.version_number

        response = get_blob_store().download(
            storage_key,
            filename=document.original_filename,
            media_type=_guess_media_type(document.original_filename),
        )
        audit_service.record(
            action=AuditActionEnum.DOCUMENT_DOWNLOAD,
            resource_type=ResourceTypeEnum.DOCUMENT,
            actor=actor,
            resource_id=document.id,
            resource_name=document.title,
            department_id=document.department_id,
            client=client,
            details={"version": version_number},
        )
        return response

    def replace_file(
        self,
        db: Session,
        *,
        actor: User,
        document_id: int,
        filename: str,
        content: bytes,
        note: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """上传新文件替换当前文件，被覆盖的状态写入版本历史。"""
        principal = Principal.from_user(actor)
        document = self._load(db, document_id)
        permission_service.require_access(principal, document, AccessRight.EDIT)

        filename = os.path.basename(filename or "").strip()
        if detect_file_type(filename).value != document.file_type:
            raise AppException(f"替换文件的类型必须与原文档一致（{document.file_type}）", HTTP_STATUS_BAD_REQUEST)
        _check_content(content)

        snapshot = version_service.replace(
            db,
            document.id,
            content=content,
            filename=filename,
            actor_id=actor.id,
            note=note,
            content_type=_guess_media_type(filename),
        )
        document = self._load(db, document_id)
        self._after_version_change(
            actor,
            document,
            action=AuditActionEnum.DOCUMENT_REPLACE,
            snapshot=snapshot,
            client=client,
        )
        return create_response(
            "文件替换成功",
            {"document": self.serialize(document, principal), "snapshot": self.serialize_version(snapshot)},
            HTTP_STATUS_OK,
        )

    def restore_version(
        self,
        db: Session,
        *,
        actor: User,
        document_id: int,
        version_id: int,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """恢复到历史版本；恢复本身产生新的版本号，当前状态先行备份。"""
        principal = Principal.from_user(actor)
        document = self._load(db, document_id)
        permission_service.require_access(principal, document, AccessRight.EDIT)

        snapshot = version_service.restore(db, document.id, version_id, actor_id=actor.id)
        document = self._load(db, document_id)
        self._after_version_change(
            actor,
            document,
            action=AuditActionEnum.DOCUMENT_RESTORE,
            snapshot=snapshot,
            client=client,
            details={"restored_version_id": version_id},
        )
        return create_response(
            "版本恢复成功",
            {"document": self.serialize(document, principal), "snapshot": self.serialize_version(snapshot)},
            HTTP_STATUS_OK,
        )

    def list_versions(self, db: Session, *, actor: User, document_id: int) -> dict:
        document = self._load(db, document_id)
        permission_service.require_access(Principal.from_user(actor), document, AccessRight.VIEW)
        versions = version_service.list_versions(db, document.id)
        data = {
            "document_id": document.id,
            "current_version": document.version,
            "items": [self.serialize_version(item) for item in versions],
        }
        return create_response("获取版本历史成功", data, HTTP_STATUS_OK)

    def delete_document(
        self,
        db: Session,
        *,
        actor: User,
        document_id: int,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """停用文档；文件与历史版本保留。"""
        document = self._load(db, document_id)
        permission_service.require_access(Principal.from_user(actor), document, AccessRight.DELETE)
        recipients = [document.uploaded_by, *self._explicit_users(document, document.folder)]

        document_crud.deactivate(db, document)
        audit_service.record(
            action=AuditActionEnum.DOCUMENT_DELETE,
            resource_type=ResourceTypeEnum.DOCUMENT,
            actor=actor,
            resource_id=document.id,
            resource_name=document.title,
            department_id=document.department_id,
            client=client,
        )
        notification_service.notify(
            recipients,
            type=NotificationTypeEnum.DOCUMENT_DELETED,
            title=f"文档「{document.title}」已被删除",
            document_id=document.id,
            folder_id=document.folder_id,
            exclude_user_id=actor.id,
        )
        return create_response("文档删除成功", None, HTTP_STATUS_OK)

    def check_access(self, db: Session, *, actor: User, document_id: int, right: str) -> dict:
        """权限探测：返回当前主体对文档是否具备某项权限。"""
        principal = Principal.from_user(actor)
        document = self._load(db, document_id)
        try:
            right_value = AccessRight(right).value
        except ValueError:
            raise AppException(f"无效的权限类型: {right}", HTTP_STATUS_BAD_REQUEST) from None
        data = {
            "document_id": document.id,
            "right": right_value,
            "allowed": permission_service.can_access(principal, document, right_value),
        }
        return create_response("权限检查完成", data, HTTP_STATUS_OK)

    def set_permission(
        self,
        db: Session,
        *,
        actor: User,
        document_id: int,
        rights: Iterable[str],
        user_id: Optional[int] = None,
        role: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        document = self._load(db, document_id)
        permission_service.require_access(Principal.from_user(actor), document, AccessRight.EDIT)
        entry = permission_service.grant(db, document, rights=rights, user_id=user_id, role=role)

        audit_service.record(
            action=AuditActionEnum.PERMISSION_GRANT,
            resource_type=ResourceTypeEnum.DOCUMENT,
            actor=actor,
            resource_id=document.id,
            resource_name=document.title,
            department_id=document.department_id,
            client=client,
            details={"user_id": entry.user_id, "role": entry.role, "rights": entry.rights},
        )
        notification_service.notify(
            [entry.user_id],
            type=NotificationTypeEnum.PERMISSION_GRANTED,
            title=f"您获得了文档「{document.title}」的访问权限",
            message=", ".join(entry.rights),
            document_id=document.id,
            exclude_user_id=actor.id,
        )
        return create_response("权限设置成功", serialize_entries(document.permissions), HTTP_STATUS_OK)

    def remove_permission(
        self,
        db: Session,
        *,
        actor: User,
        document_id: int,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        document = self._load(db, document_id)
        permission_service.require_access(Principal.from_user(actor), document, AccessRight.EDIT)
        if not permission_service.revoke(db, document, user_id=user_id, role=role):
            raise NotFoundError("权限条目不存在")
        audit_service.record(
            action=AuditActionEnum.PERMISSION_REVOKE,
            resource_type=ResourceTypeEnum.DOCUMENT,
            actor=actor,
            resource_id=document.id,
            resource_name=document.title,
            department_id=document.department_id,
            client=client,
            details={"user_id": user_id, "role": role},
        )
        return create_response("权限移除成功", serialize_entries(document.permissions), HTTP_STATUS_OK)

    # ------------------------------------------------------------------
    # 序列化与内部工具
    # ------------------------------------------------------------------

    def serialize(self, document: Document, principal: Optional[Principal] = None) -> dict[str, Any]:
        data = {
            "id": document.id,
            "title": document.title,
            "original_filename": document.original_filename,
            "file_type": document.file_type,
            "size_bytes": document.size_bytes,
            "storage_url": document.storage_url,
            "tags": list(document.tags or []),
            "metadata": dict(document.extra_metadata or {}),
            "version": document.version,
            "uploaded_by": document.uploaded_by,
            "folder_id": document.folder_id,
            "department_id": document.department_id,
            "is_active": document.is_active,
            "create_time": format_datetime(document.create_time),
            "update_time": format_datetime(document.update_time),
            "permissions": serialize_entries(document.permissions),
        }
        if principal is not None:
            data["rights"] = permission_service.effective_rights(principal, document)
        return data

    @staticmethod
    def serialize_version(version: DocumentVersion) -> dict[str, Any]:
        return {
            "id": version.id,
            "document_id": version.document_id,
            "version_number": version.version_number,
            "storage_url": version.storage_url,
            "size_bytes": version.size_bytes,
            "uploaded_by": version.uploaded_by,
            "change_note": version.change_note,
            "create_time": format_datetime(version.create_time),
        }

    def _after_version_change(
        self,
        actor: User,
        document: Document,
        *,
        action: AuditActionEnum,
        snapshot: DocumentVersion,
        client: Optional[ClientMeta],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        audit_service.record(
            action=action,
            resource_type=ResourceTypeEnum.DOCUMENT,
            actor=actor,
            resource_id=document.id,
            resource_name=document.title,
            department_id=document.department_id,
            client=client,
            details={
                "snapshot_version": snapshot.version_number,
                "current_version": document.version,
                **(details or {}),
            },
        )
        notification_service.notify(
            [snapshot.uploaded_by, *self._explicit_users(document, document.folder)],
            type=NotificationTypeEnum.VERSION_UPDATED,
            title=f"文档「{document.title}」已更新到第 {document.version} 版",
            message=snapshot.change_note,
            document_id=document.id,
            folder_id=document.folder_id,
            exclude_user_id=actor.id,
        )

    @staticmethod
    def _explicit_users(*resources: Optional[Folder | Document]) -> List[int]:
        return [
            entry.user_id
            for resource in resources
            if resource is not None
            for entry in resource.permissions
            if entry.user_id is not None
        ]

    @staticmethod
    def _discard_blob(key: str) -> None:
        try:
            get_blob_store().delete(key)
        except Exception:
            logger.warning("Failed to clean up orphan blob %s", key, exc_info=True)

    @staticmethod
    def _load(db: Session, document_id: int) -> Document:
        document = document_crud.get(db, document_id)
        if document is None:
            raise NotFoundError("文档不存在")
        return document


document_service = DocumentService()
