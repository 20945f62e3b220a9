"""审计日志查询路由（仅超级管理员）。"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.packages.dms.api.v1.schemas.audit_logs import AuditLogPageResponse
from app.packages.dms.core.constants import HTTP_STATUS_BAD_REQUEST
from app.packages.dms.core.dependencies import get_db, require_superadmin
from app.packages.dms.core.exceptions import AppException
from app.packages.dms.core.timezone import now as tz_now
from app.packages.dms.models.user import User
from app.packages.dms.services.audit_service import audit_service

router = APIRouter(prefix="/audit-logs", tags=["audit-logs"])


@router.get("", response_model=AuditLogPageResponse)
def list_audit_logs(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[int] = Query(None, ge=1),
    user_id: Optional[int] = Query(None, ge=1),
    department_id: Optional[int] = Query(None, ge=1),
    start_time: Optional[str] = Query(None, description="开始时间，格式: YYYY-MM-DD HH:MM:SS"),
    end_time: Optional[str] = Query(None, description="结束时间，格式: YYYY-MM-DD HH:MM:SS"),
    page: int = Query(1, ge=1, description="页码，从 1 开始"),
    page_size: int = Query(20, ge=1, le=200, description="每页数量"),
    db: Session = Depends(get_db),
    _: User = Depends(require_superadmin),
) -> AuditLogPageResponse:
    return audit_service.list_logs(
        db,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        user_id=user_id,
        department_id=department_id,
        start_time=_parse_datetime(start_time),
        end_time=_parse_datetime(end_time),
        page=page,
        page_size=page_size,
    )


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    except ValueError as exc:
        raise AppException("时间格式应为 YYYY-MM-DD HH:MM:SS", HTTP_STATUS_BAD_REQUEST) from exc
    return parsed.replace(tzinfo=tz_now().tzinfo)
