"""用户服务：账号资料查询与超级管理员的账号维护。"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_CONFLICT, HTTP_STATUS_OK
from app.packages.dms.core.enums import AuditActionEnum, ResourceTypeEnum, RoleEnum
from app.packages.dms.core.exceptions import AppException, NotFoundError
from app.packages.dms.core.responses import create_response
from app.packages.dms.core.security import get_password_hash
from app.packages.dms.core.timezone import format_datetime
from app.packages.dms.crud.departments import department_crud
from app.packages.dms.crud.users import user_crud
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta, audit_service


class UserService:
    """聚合用户相关的业务能力。"""

    def build_user_profile(self, user: User) -> dict:
        return create_response("获取用户信息成功", self._serialize(user), HTTP_STATUS_OK)

    def list_users(self, db: Session, *, department_id: Optional[int] = None) -> dict:
        query = user_crud.query(db)
        if department_id is not None:
            query = query.filter(User.department_id == department_id)
        items = query.order_by(User.id).all()
        return create_response("获取用户列表成功", [self._serialize(item) for item in items], HTTP_STATUS_OK)

    def create_user(
        self,
        db: Session,
        *,
        actor: User,
        username: str,
        password: str,
        role: str = RoleEnum.EMPLOYEE.value,
        department_id: Optional[int] = None,
        nickname: Optional[str] = None,
        email: Optional[str] = None,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        username = (username or "").strip()
        if not username or not password:
            raise AppException("用户名和密码不能为空", HTTP_STATUS_BAD_REQUEST)
        if user_crud.get_by_username(db, username) is not None:
            raise AppException("用户名已存在", HTTP_STATUS_CONFLICT)
        try:
            role = RoleEnum((role or "").strip().lower()).value
        except ValueError:
            raise AppException(f"无效的角色: {role}", HTTP_STATUS_BAD_REQUEST) from None
        if department_id is not None and department_crud.get(db, department_id) is None:
            raise NotFoundError("部门不存在或已停用")

        user = user_crud.create(
            db,
            {
                "username": username,
                "hashed_password": get_password_hash(password),
                "role": role,
                "department_id": department_id,
                "nickname": nickname,
                "email": email,
            },
        )
        audit_service.record(
            action=AuditActionEnum.USER_CREATE,
            resource_type=ResourceTypeEnum.USER,
            actor=actor,
            resource_id=user.id,
            resource_name=user.username,
            department_id=user.department_id,
            client=client,
            details={"role": user.role},
        )
        return create_response("用户创建成功", self._serialize(user), HTTP_STATUS_OK)

    @staticmethod
    def _serialize(user: User) -> dict[str, Any]:
        return {
            "user_id": user.id,
            "username": user.username,
            "nickname": user.nickname,
            "email": user.email,
            "role": user.role,
            "department_id": user.department_id,
            "is_active": user.is_active,
            "create_time": format_datetime(user.create_time),
        }


user_service = UserService()
