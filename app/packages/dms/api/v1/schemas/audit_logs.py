"""审计日志的响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel

from app.packages.dms.api.v1.schemas.common import ResponseEnvelope


class AuditLogData(BaseModel):
    id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[int] = None
    resource_name: Optional[str] = None
    department_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    create_time: Optional[str] = None


class AuditLogPageData(BaseModel):
    total: int
    page: int
    page_size: int
    items: list[AuditLogData]


AuditLogPageResponse = ResponseEnvelope[AuditLogPageData]
