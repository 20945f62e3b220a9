"""认证服务：封装登录与退出登录流程。"""

from typing import Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.constants import ACCESS_TOKEN_TYPE, HTTP_STATUS_OK, HTTP_STATUS_UNAUTHORIZED
from app.packages.dms.core.enums import AuditActionEnum, ResourceTypeEnum
from app.packages.dms.core.exceptions import AppException
from app.packages.dms.core.logger import logger
from app.packages.dms.core.responses import create_response
from app.packages.dms.core.security import create_access_token, store_refreshed_token, verify_password
from app.packages.dms.core.session import create_session, delete_session
from app.packages.dms.crud.users import user_crud
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta, audit_service


class AuthService:
    """负责登录与退出登录，并记录审计。"""

    def login(
        self,
        db: Session,
        *,
        username: str,
        password: str,
        client: Optional[ClientMeta] = None,
    ) -> dict:
        """校验用户凭证，签发访问令牌并记录登录审计。"""
        user = user_crud.get_by_username(db, username)
        if user is None or not verify_password(password, user.hashed_password):
            logger.info("Login failed for username=%s", username)
            audit_service.record(
                action=AuditActionEnum.LOGIN,
                resource_type=ResourceTypeEnum.USER,
                resource_name=username,
                client=client,
                details={"status": "failure"},
            )
            raise AppException(msg="用户名或密码错误", code=HTTP_STATUS_UNAUTHORIZED)

        ttl_seconds = max(get_settings().access_token_expire_minutes, 1) * 60
        session_id = create_session(user.id, ttl_seconds)
        access_token = create_access_token({"user_id": user.id, "username": user.username, "sid": session_id})

        audit_service.record(
            action=AuditActionEnum.LOGIN,
            resource_type=ResourceTypeEnum.USER,
            actor=user,
            resource_id=user.id,
            resource_name=user.username,
            department_id=user.department_id,
            client=client,
            details={"status": "success"},
        )

        # 将签发的访问令牌通过上下文传递，便于响应阶段统一在 body.meta 与响应头返回
        store_refreshed_token(access_token)
        return create_response(
            "登录成功",
            {"access_token": access_token, "token_type": ACCESS_TOKEN_TYPE},
            HTTP_STATUS_OK,
        )

    def logout(self, *, user: User, session_id: Optional[str], client: Optional[ClientMeta] = None) -> dict:
        if session_id:
            delete_session(session_id)
        # 会话已失效，不再回传滑动续期的令牌
        store_refreshed_token(None)
        audit_service.record(
            action=AuditActionEnum.LOGOUT,
            resource_type=ResourceTypeEnum.USER,
            actor=user,
            resource_id=user.id,
            resource_name=user.username,
            department_id=user.department_id,
            client=client,
        )
        return create_response("退出登录成功", None, HTTP_STATUS_OK)


auth_service = AuthService()
