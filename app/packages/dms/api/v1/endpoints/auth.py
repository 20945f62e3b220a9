"""认证相关路由定义。"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.packages.dms.api.v1.schemas.auth import LoginRequest, LogoutResponse, TokenResponse, UserProfileResponse
from app.packages.dms.core.dependencies import get_client_meta, get_current_active_user, get_db
from app.packages.dms.core.security import get_current_session_id
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta
from app.packages.dms.services.auth_service import auth_service
from app.packages.dms.services.user_service import user_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(
    payload: LoginRequest,
    db: Session = Depends(get_db),
    client: ClientMeta = Depends(get_client_meta),
) -> TokenResponse:
    """校验凭证并签发访问令牌。"""
    return auth_service.login(db, username=payload.username, password=payload.password, client=client)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> LogoutResponse:
    """退出登录，当前会话立即失效。"""
    return auth_service.logout(user=current_user, session_id=get_current_session_id(), client=client)


@router.get("/me", response_model=UserProfileResponse)
def read_current_user(current_user: User = Depends(get_current_active_user)) -> UserProfileResponse:
    return user_service.build_user_profile(current_user)
