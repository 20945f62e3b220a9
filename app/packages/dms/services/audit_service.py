"""审计服务：记录操作审计并提供查询。

写入采用“发出即忘”：使用独立会话提交，失败只会写入 ``app.operator``
告警日志，不会回滚或中断触发它的业务操作。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.constants import HTTP_STATUS_OK
from app.packages.dms.core.enums import AuditActionEnum, ResourceTypeEnum
from app.packages.dms.core.logger import operator_logger
from app.packages.dms.core.responses import create_response
from app.packages.dms.core.timezone import format_datetime
from app.packages.dms.crud.audit_logs import audit_log_crud
from app.packages.dms.db import session as db_session
from app.packages.dms.models.audit_log import AuditLog


@dataclass(frozen=True)
class ClientMeta:
    """请求方的客户端信息。"""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditService:
    def record(
        self,
        *,
        action: AuditActionEnum,
        resource_type: ResourceTypeEnum,
        actor: Optional[object] = None,
        resource_id: Optional[int] = None,
        resource_name: Optional[str] = None,
        department_id: Optional[int] = None,
        client: Optional[ClientMeta] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        client = client or ClientMeta()
        payload = {
            "user_id": getattr(actor, "id", None),
            "username": getattr(actor, "username", None),
            "action": action.value,
            "resource_type": resource_type.value,
            "resource_id": resource_id,
            "resource_name": resource_name,
            "department_id": department_id,
            "ip_address": client.ip_address,
            "user_agent": client.user_agent[:512] if client.user_agent else None,
            "details": details,
        }
        session = db_session.SessionLocal()
        try:
            audit_log_crud.create(session, payload)
        except Exception:
            session.rollback()
            operator_logger.exception(
                "Failed to write audit entry action=%s resource=%s:%s",
                action.value,
                resource_type.value,
                resource_id,
            )
        finally:
            session.close()

    def list_logs(
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
    ) -> dict:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 200)
        items, total = audit_log_crud.list_with_filters(
            db,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            department_id=department_id,
            start_time=start_time,
            end_time=end_time,
            page=page,
            page_size=page_size,
        )
        data = {
            "total": total,
            "page": page,
            "page_size": page_size,
            "items": [self._serialize(item) for item in items],
        }
        return create_response("获取审计日志成功", data, HTTP_STATUS_OK)

    @staticmethod
    def _serialize(item: AuditLog) -> dict[str, Any]:
        return {
            "id": item.id,
            "user_id": item.user_id,
            "username": item.username,
            "action": item.action,
            "resource_type": item.resource_type,
            "resource_id": item.resource_id,
            "resource_name": item.resource_name,
            "department_id": item.department_id,
            "ip_address": item.ip_address,
            "user_agent": item.user_agent,
            "details": item.details,
            "create_time": format_datetime(item.create_time),
        }


audit_service = AuditService()
