"""审计日志 CRUD：只提供追加与筛选查询。"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.packages.dms.crud.base import CRUDBase
from app.packages.dms.models.audit_log import AuditLog


class CRUDAuditLog(CRUDBase[AuditLog]):
    def list_with_filters(
        self,
        db: Session,
        *,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        user_id: Optional[int] = None,
        department_id: Optional[int] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[AuditLog], int]:
        query = db.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if resource_id is not None:
            query = query.filter(AuditLog.resource_id == resource_id)
        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if department_id is not None:
            query = query.filter(AuditLog.department_id == department_id)
        if start_time is not None:
            query = query.filter(AuditLog.create_time >= start_time)
        if end_time is not None:
            query = query.filter(AuditLog.create_time <= end_time)

        total = query.count()
        items = (
            query.order_by(AuditLog.create_time.desc(), AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return items, total


audit_log_crud = CRUDAuditLog(AuditLog)
