"""部门服务：部门的查询、创建与停用。"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_CONFLICT, HTTP_STATUS_OK
from app.packages.dms.core.enums import AuditActionEnum, ResourceTypeEnum
from app.packages.dms.core.exceptions import AppException, NotFoundError
from app.packages.dms.core.responses import create_response
from app.packages.dms.core.timezone import format_datetime
from app.packages.dms.crud.departments import department_crud
from app.packages.dms.models.department import Department
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta, audit_service


class DepartmentService:
    def list_departments(self, db: Session, *, include_inactive: bool = False) -> dict:
        items = department_crud.list_all(db, include_inactive=include_inactive)
        return create_response("获取部门列表成功", [self._serialize(item) for item in items], HTTP_STATUS_OK)

    def create_department(
        self,
        db: Session,
        *,
        actor: User,
        name: str,
        description: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        name = (name or "").strip()
        if not name:
            raise AppException("部门名称不能为空", HTTP_STATUS_BAD_REQUEST)
        if department_crud.get_by_name(db, name) is not None:
            raise AppException("部门名称已存在", HTTP_STATUS_CONFLICT)

        department = department_crud.create(
            db,
            {"name": name, "description": description, "created_by": actor.id},
        )
        audit_service.record(
            action=AuditActionEnum.DEPARTMENT_CREATE,
            resource_type=ResourceTypeEnum.DEPARTMENT,
            actor=actor,
            resource_id=department.id,
            resource_name=department.name,
            department_id=department.id,
            client=client,
        )
        return create_response("部门创建成功", self._serialize(department), HTTP_STATUS_OK)

    def deactivate_department(
        self,
        db: Session,
        *,
        actor: User,
        department_id: int,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """停用部门；部门下的文件夹与文档保持原状。"""
        department = department_crud.get(db, department_id)
        if department is None:
            raise NotFoundError("部门不存在或已停用")
        department_crud.deactivate(db, department)
        audit_service.record(
            action=AuditActionEnum.DEPARTMENT_DEACTIVATE,
            resource_type=ResourceTypeEnum.DEPARTMENT,
            actor=actor,
            resource_id=department.id,
            resource_name=department.name,
            department_id=department.id,
            client=client,
        )
        return create_response("部门已停用", self._serialize(department), HTTP_STATUS_OK)

    @staticmethod
    def _serialize(item: Department) -> dict[str, Any]:
        return {
            "id": item.id,
            "name": item.name,
            "description": item.description,
            "is_active": item.is_active,
            "create_time": format_datetime(item.create_time),
        }


department_service = DepartmentService()
