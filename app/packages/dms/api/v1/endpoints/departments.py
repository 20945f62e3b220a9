"""部门管理路由。"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.dms.api.v1.schemas.departments import (
    DepartmentCreateRequest,
    DepartmentListResponse,
    DepartmentResponse,
)
from app.packages.dms.core.dependencies import get_client_meta, get_current_active_user, get_db, require_superadmin
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import ClientMeta
from app.packages.dms.services.department_service import department_service

router = APIRouter(prefix="/departments", tags=["departments"])


@router.get("", response_model=DepartmentListResponse)
def list_departments(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_active_user),
) -> DepartmentListResponse:
    return department_service.list_departments(db, include_inactive=include_inactive)


@router.post("", response_model=DepartmentResponse)
def create_department(
    payload: DepartmentCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_superadmin),
    client: ClientMeta = Depends(get_client_meta),
) -> DepartmentResponse:
    return department_service.create_department(
        db,
        actor=current_user,
        name=payload.name,
        description=payload.description,
        client=client,
    )


@router.post("/{department_id}/deactivate", response_model=DepartmentResponse)
def deactivate_department(
    department_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_superadmin),
    client: ClientMeta = Depends(get_client_meta),
) -> DepartmentResponse:
    return department_service.deactivate_department(
        db, actor=current_user, department_id=department_id, client=client
    )
