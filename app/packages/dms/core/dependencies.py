"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.constants import ACCESS_TOKEN_TYPE
from app.packages.dms.core.exceptions import PermissionDeniedError
from app.packages.dms.core.logger import logger
from app.packages.dms.core.security import (
    create_access_token,
    decode_token,
    store_current_session_id,
    store_refreshed_token,
)
from app.packages.dms.core.session import touch_session
from app.packages.dms.crud.users import user_crud
from app.packages.dms.db import session as db_session
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta
from app.packages.dms.services.permission_service import Principal, permission_service

security_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    db: Session = Depends(get_db),
) -> User:
    """解析 ``Authorization`` 头部并返回当前认证用户，不存在或非法时抛出 401。"""
    store_current_session_id(None)
    if not credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="缺少认证信息")

    if credentials.scheme.lower() != ACCESS_TOKEN_TYPE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="认证类型无效")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效或已过期")

    user_id = payload.get("user_id")
    session_id = payload.get("sid")
    if user_id is None or session_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效")

    user = user_crud.get(db, user_id, include_inactive=True)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="用户不存在")

    ttl_seconds = max(get_settings().access_token_expire_minutes, 1) * 60
    if not touch_session(session_id, user.id, ttl_seconds):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token 无效或已过期")

    # 记录会话 ID 以便后续使用（例如退出登录）
    store_current_session_id(session_id)

    # 为滑动会话生成一个新的访问令牌，并通过上下文在响应阶段附带返回。
    try:
        refreshed_token = create_access_token({"user_id": user.id, "username": user.username, "sid": session_id})
        store_refreshed_token(refreshed_token)
    except Exception:  # pragma: no cover - 令牌刷新失败不影响主流程
        logger.warning("Failed to refresh access token for user %s", user.id, exc_info=True)

    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    """确保已认证用户仍处于激活状态，否则拒绝访问。"""
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="用户未激活")
    return current_user


def require_superadmin(current_user: User = Depends(get_current_active_user)) -> User:
    """仅允许超级管理员调用的接口使用。"""
    if not permission_service.is_superadmin(Principal.from_user(current_user)):
        raise PermissionDeniedError("仅超级管理员可以执行该操作")
    return current_user


def get_client_meta(request: Request) -> ClientMeta:
    """提取请求方 IP 与 User-Agent，供审计记录使用。"""
    ip_address = None
    for key in ("x-forwarded-for", "x-real-ip", "x-client-ip"):
        raw = request.headers.get(key)
        if raw:
            ip_address = raw.split(",")[0].strip()
            break
    if ip_address is None and request.client:
        ip_address = request.client.host
    return ClientMeta(ip_address=ip_address, user_agent=request.headers.get("user-agent") or None)
