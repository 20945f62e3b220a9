"""站内通知的响应模型。"""

from typing import Optional

from pydantic import BaseModel

from app.packages.dms.api.v1.schemas.common import ResponseEnvelope


class NotificationData(BaseModel):
    id: int
    type: str
    title: str
    message: Optional[str] = None
    document_id: Optional[int] = None
    folder_id: Optional[int] = None
    is_read: bool
    read_at: Optional[str] = None
    create_time: Optional[str] = None


class NotificationPageData(BaseModel):
    total: int
    unread: int
    page: int
    page_size: int
    items: list[NotificationData]


class MarkAllReadData(BaseModel):
    updated: int


NotificationResponse = ResponseEnvelope[NotificationData]
NotificationPageResponse = ResponseEnvelope[NotificationPageData]
MarkAllReadResponse = ResponseEnvelope[MarkAllReadData]
