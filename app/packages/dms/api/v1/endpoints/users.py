"""用户管理路由（仅超级管理员）。"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.dms.api.v1.schemas.users import UserCreateRequest, UserDetailResponse, UserListResponse
from app.packages.dms.core.dependencies import get_client_meta, get_db, require_superadmin
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta
from app.packages.dms.services.user_service import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=UserListResponse)
def list_users(
    department_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    _: User = Depends(require_superadmin),
) -> UserListResponse:
    return user_service.list_users(db, department_id=department_id)


@router.post("", response_model=UserDetailResponse)
def create_user(
    payload: UserCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_superadmin),
    client: ClientMeta = Depends(get_client_meta),
) -> UserDetailResponse:
    return user_service.create_user(
        db,
        actor=current_user,
        username=payload.username,
        password=payload.password,
        role=payload.role,
        department_id=payload.department_id,
        nickname=payload.nickname,
        email=payload.email,
        client=client,
    )
