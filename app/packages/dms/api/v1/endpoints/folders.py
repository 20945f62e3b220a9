"""文件夹路由：创建、浏览、移动、删除与授权。"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.dms.api.v1.schemas.common import EmptyResponse, PermissionEntryRequest, PermissionListResponse
from app.packages.dms.api.v1.schemas.folders import (
    BreadcrumbResponse,
    FolderChildrenResponse,
    FolderCreateRequest,
    FolderListResponse,
    FolderMoveRequest,
    FolderResponse,
    MoveCheckResponse,
)
from app.packages.dms.core.dependencies import get_client_meta, get_current_active_user, get_db
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta
from app.packages.dms.services.folder_service import folder_service

router = APIRouter(prefix="/folders", tags=["folders"])


@router.get("", response_model=FolderListResponse)
def list_root_folders(
    department_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> FolderListResponse:
    """列出当前用户可见的部门根目录。"""
    return folder_service.list_roots(db, actor=current_user, department_id=department_id)


@router.post("", response_model=FolderResponse)
def create_folder(
    payload: FolderCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> FolderResponse:
    return folder_service.create_folder(
        db,
        actor=current_user,
        name=payload.name,
        parent_id=payload.parent_id,
        department_id=payload.department_id,
        copy_parent_permissions=payload.copy_parent_permissions,
        client=client,
    )


@router.get("/{folder_id}", response_model=FolderResponse)
def get_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> FolderResponse:
    return folder_service.get_folder(db, actor=current_user, folder_id=folder_id)


@router.get("/{folder_id}/children", response_model=FolderChildrenResponse)
def list_children(
    folder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> FolderChildrenResponse:
    return folder_service.list_children(db, actor=current_user, folder_id=folder_id)


@router.get("/{folder_id}/breadcrumb", response_model=BreadcrumbResponse)
def get_breadcrumb(
    folder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> BreadcrumbResponse:
    return folder_service.breadcrumb(db, actor=current_user, folder_id=folder_id)


@router.get("/{folder_id}/validate-move", response_model=MoveCheckResponse)
def validate_move(
    folder_id: int,
    new_parent_id: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MoveCheckResponse:
    """预检移动，不修改任何数据。"""
    return folder_service.check_move(db, actor=current_user, folder_id=folder_id, new_parent_id=new_parent_id)


@router.post("/{folder_id}/move", response_model=FolderResponse)
def move_folder(
    folder_id: int,
    payload: FolderMoveRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> FolderResponse:
    return folder_service.move_folder(
        db,
        actor=current_user,
        folder_id=folder_id,
        new_parent_id=payload.new_parent_id,
        client=client,
    )


@router.put("/{folder_id}/permissions", response_model=PermissionListResponse)
def set_folder_permission(
    folder_id: int,
    payload: PermissionEntryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> PermissionListResponse:
    return folder_service.set_permission(
        db,
        actor=current_user,
        folder_id=folder_id,
        rights=payload.rights,
        user_id=payload.user_id,
        role=payload.role,
        client=client,
    )


@router.delete("/{folder_id}/permissions", response_model=PermissionListResponse)
def remove_folder_permission(
    folder_id: int,
    user_id: Optional[int] = Query(None, ge=1),
    role: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> PermissionListResponse:
    return folder_service.remove_permission(
        db,
        actor=current_user,
        folder_id=folder_id,
        user_id=user_id,
        role=role,
        client=client,
    )


@router.delete("/{folder_id}", response_model=EmptyResponse)
def delete_folder(
    folder_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    client: ClientMeta = Depends(get_client_meta),
) -> EmptyResponse:
    return folder_service.delete_folder(db, actor=current_user, folder_id=folder_id, client=client)
