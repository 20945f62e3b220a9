"""文件夹业务服务：创建、浏览、移动、删除与显式授权。

删除策略：文件夹内仍有有效的子文件夹或文档时拒绝删除（``FolderNotEmpty``），
删除本身为停用，不做物理删除。
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_OK
from app.packages.dms.core.enums import AccessRight, AuditActionEnum, NotificationTypeEnum, ResourceTypeEnum
from app.packages.dms.core.exceptions import (
    AppException,
    CrossDepartmentError,
    DomainError,
    FolderNotEmptyError,
    NotFoundError,
    PermissionDeniedError,
)
from app.packages.dms.core.responses import create_response
from app.packages.dms.core.timezone import format_datetime
from app.packages.dms.crud.departments import department_crud
from app.packages.dms.crud.documents import document_crud
from app.packages.dms.crud.folders import folder_crud
from app.packages.dms.models.folder import Folder, FolderPermission
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta, audit_service
from app.packages.dms.services.document_service import document_service
from app.packages.dms.services.hierarchy_service import hierarchy_service
from app.packages.dms.services.notification_service import notification_service
from app.packages.dms.services.permission_service import Principal, permission_service, serialize_entries


class FolderService:
    def create_folder(
        self,
        db: Session,
        *,
        actor: User,
        name: str,
        parent_id: Optional[int] = None,
        department_id: Optional[int] = None,
        copy_parent_permissions: bool = False,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """在父文件夹下创建子文件夹；不指定父文件夹时创建部门根目录（仅超级管理员）。"""
        principal = Principal.from_user(actor)
        name = (name or "").strip()
        if not name:
            raise AppException("文件夹名称不能为空", HTTP_STATUS_BAD_REQUEST)

        parent: Optional[Folder] = None
        if parent_id is not None:
            parent = self._load(db, parent_id)
            permission_service.require_access(principal, parent, AccessRight.UPLOAD, AccessRight.EDIT)
            if department_id is not None and department_id != parent.department_id:
                raise CrossDepartmentError("子文件夹必须与父文件夹属于同一部门")
            department_id = parent.department_id
        else:
            if not permission_service.is_superadmin(principal):
                raise PermissionDeniedError("只有超级管理员可以创建部门根目录")
            if department_id is None:
                raise AppException("请指定所属部门", HTTP_STATUS_BAD_REQUEST)
            department = department_crud.get(db, department_id)
            if department is None:
                raise NotFoundError("部门不存在或已停用")

        folder = Folder(name=name, parent_id=parent_id, department_id=department_id, created_by=actor.id)
        if parent is not None and copy_parent_permissions:
            permission_service.copy_entries(parent, folder)
        # 文件夹之间不继承授权，创建者获得新文件夹的完整权限
        if not permission_service.is_superadmin(principal) and not any(
            entry.user_id == actor.id for entry in folder.permissions
        ):
            folder.permissions.append(
                FolderPermission(user_id=actor.id, rights=[right.value for right in AccessRight])
            )
        db.add(folder)
        db.commit()
        db.refresh(folder)

        audit_service.record(
            action=AuditActionEnum.FOLDER_CREATE,
            resource_type=ResourceTypeEnum.FOLDER,
            actor=actor,
            resource_id=folder.id,
            resource_name=folder.name,
            department_id=folder.department_id,
            client=client,
            details={"parent_id": parent_id, "copy_parent_permissions": copy_parent_permissions},
        )
        return create_response("文件夹创建成功", self.serialize(folder, principal), HTTP_STATUS_OK)

    def get_folder(self, db: Session, *, actor: User, folder_id: int) -> dict:
        principal = Principal.from_user(actor)
        folder = self._load(db, folder_id)
        permission_service.require_access(principal, folder, AccessRight.VIEW)
        data = self.serialize(folder, principal)
        data["breadcrumb"] = hierarchy_service.resolve_breadcrumb(db, folder.id)
        return create_response("获取文件夹成功", data, HTTP_STATUS_OK)

    def list_roots(self, db: Session, *, actor: User, department_id: Optional[int] = None) -> dict:
        principal = Principal.from_user(actor)
        roots = permission_service.filter_accessible(
            principal, folder_crud.list_roots(db, department_id=department_id)
        )
        return create_response("获取根目录成功", [self.serialize(item, principal) for item in roots], HTTP_STATUS_OK)

    def list_children(self, db: Session, *, actor: User, folder_id: int) -> dict:
        """返回当前主体可见的子文件夹与文档。"""
        principal = Principal.from_user(actor)
        folder = self._load(db, folder_id)
        permission_service.require_access(principal, folder, AccessRight.VIEW)

        folders = permission_service.filter_accessible(principal, folder_crud.list_children(db, parent_id=folder.id))
        documents = permission_service.filter_accessible(principal, document_crud.list_in_folder(db, folder_id=folder.id))
        data = {
            "folder": self.serialize(folder, principal),
            "folders": [self.serialize(item, principal) for item in folders],
            "documents": [document_service.serialize(item, principal) for item in documents],
        }
        return create_response("获取文件夹内容成功", data, HTTP_STATUS_OK)

    def breadcrumb(self, db: Session, *, actor: User, folder_id: int) -> dict:
        folder = self._load(db, folder_id)
        permission_service.require_access(Principal.from_user(actor), folder, AccessRight.VIEW)
        return create_response("获取路径成功", hierarchy_service.resolve_breadcrumb(db, folder.id), HTTP_STATUS_OK)

    def check_move(self, db: Session, *, actor: User, folder_id: int, new_parent_id: Optional[int]) -> dict:
        """预检移动是否合法；结构性错误以 ``valid=False`` 返回而不是抛出。"""
        folder = self._load(db, folder_id)
        permission_service.require_access(Principal.from_user(actor), folder, AccessRight.VIEW)
        try:
            hierarchy_service.validate_move(db, folder_id, new_parent_id)
        except DomainError as exc:
            return create_response(
                "移动校验未通过",
                {"valid": False, "reason": exc.kind, "message": exc.detail},
                HTTP_STATUS_OK,
            )
        return create_response("移动校验通过", {"valid": True, "reason": None, "message": None}, HTTP_STATUS_OK)

    def move_folder(
        self,
        db: Session,
        *,
        actor: User,
        folder_id: int,
        new_parent_id: Optional[int],
        client: Optional[ClientMeta] = None,
    ) -> dict:
        principal = Principal.from_user(actor)
        folder = self._load(db, folder_id)
        permission_service.require_access(principal, folder, AccessRight.EDIT)
        if new_parent_id is None:
            if not permission_service.is_superadmin(principal):
                raise PermissionDeniedError("只有超级管理员可以将文件夹移动到部门根目录")
        else:
            target = self._load(db, new_parent_id)
            permission_service.require_access(principal, target, AccessRight.UPLOAD, AccessRight.EDIT)

        previous_parent_id = folder.parent_id
        folder = hierarchy_service.move_folder(db, folder_id, new_parent_id)
        audit_service.record(
            action=AuditActionEnum.FOLDER_MOVE,
            resource_type=ResourceTypeEnum.FOLDER,
            actor=actor,
            resource_id=folder.id,
            resource_name=folder.name,
            department_id=folder.department_id,
            client=client,
            details={"from_parent_id": previous_parent_id, "to_parent_id": new_parent_id},
        )
        return create_response("文件夹移动成功", self.serialize(folder, principal), HTTP_STATUS_OK)

    def delete_folder(
        self,
        db: Session,
        *,
        actor: User,
        folder_id: int,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        folder = self._load(db, folder_id)
        permission_service.require_access(Principal.from_user(actor), folder, AccessRight.DELETE)
        # 加行锁后再统计，与并发上传串行化，避免文件夹停用后仍有文档落入
        folder = folder_crud.get_for_update(db, folder_id)
        if folder is None or not folder.is_active:
            db.rollback()
            raise NotFoundError("文件夹不存在")
        folders, documents = folder_crud.count_active_contents(db, folder_id=folder.id)
        if folders or documents:
            db.rollback()
            raise FolderNotEmptyError(data={"folders": folders, "documents": documents})

        folder_crud.deactivate(db, folder)
        audit_service.record(
            action=AuditActionEnum.FOLDER_DELETE,
            resource_type=ResourceTypeEnum.FOLDER,
            actor=actor,
            resource_id=folder.id,
            resource_name=folder.name,
            department_id=folder.department_id,
            client=client,
        )
        return create_response("文件夹删除成功", None, HTTP_STATUS_OK)

    def set_permission(
        self,
        db: Session,
        *,
        actor: User,
        folder_id: int,
        rights: Iterable[str],
        user_id: Optional[int] = None,
        role: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        principal = Principal.from_user(actor)
        folder = self._load(db, folder_id)
        permission_service.require_access(principal, folder, AccessRight.EDIT)
        entry = permission_service.grant(db, folder, rights=rights, user_id=user_id, role=role)

        audit_service.record(
            action=AuditActionEnum.PERMISSION_GRANT,
            resource_type=ResourceTypeEnum.FOLDER,
            actor=actor,
            resource_id=folder.id,
            resource_name=folder.name,
            department_id=folder.department_id,
            client=client,
            details={"user_id": entry.user_id, "role": entry.role, "rights": entry.rights},
        )
        notification_service.notify(
            [entry.user_id],
            type=NotificationTypeEnum.PERMISSION_GRANTED,
            title=f"您获得了文件夹「{folder.name}」的访问权限",
            message=", ".join(entry.rights),
            folder_id=folder.id,
            exclude_user_id=actor.id,
        )
        return create_response("权限设置成功", serialize_entries(folder.permissions), HTTP_STATUS_OK)

    def remove_permission(
        self,
        db: Session,
        *,
        actor: User,
        folder_id: int,
        user_id: Optional[int] = None,
        role: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        folder = self._load(db, folder_id)
        permission_service.require_access(Principal.from_user(actor), folder, AccessRight.EDIT)
        if not permission_service.revoke(db, folder, user_id=user_id, role=role):
            raise NotFoundError("权限条目不存在")
        audit_service.record(
            action=AuditActionEnum.PERMISSION_REVOKE,
            resource_type=ResourceTypeEnum.FOLDER,
            actor=actor,
            resource_id=folder.id,
            resource_name=folder.name,
            department_id=folder.department_id,
            client=client,
            details={"user_id": user_id, "role": role},
        )
        return create_response("权限移除成功", serialize_entries(folder.permissions), HTTP_STATUS_OK)

    def serialize(self, folder: Folder, principal: Optional[Principal] = None) -> dict[str, Any]:
        data = {
            "id": folder.id,
            "name": folder.name,
            "parent_id": folder.parent_id,
            "department_id": folder.department_id,
            "created_by": folder.created_by,
            "is_active": folder.is_active,
            "create_time": format_datetime(folder.create_time),
            "permissions": serialize_entries(folder.permissions),
        }
        if principal is not None:
            data["rights"] = permission_service.effective_rights(principal, folder)
        return data

    @staticmethod
    def _load(db: Session, folder_id: int) -> Folder:
        folder = folder_crud.get(db, folder_id)
        if folder is None:
            raise NotFoundError("文件夹不存在")
        return folder


folder_service = FolderService()
