"""通知服务：向相关用户分发站内通知，并提供用户侧的读取与清理。"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from app.packages.dms.core.constants import HTTP_STATUS_OK
from app.packages.dms.core.enums import NotificationTypeEnum
from app.packages.dms.core.exceptions import NotFoundError
from app.packages.dms.core.logger import operator_logger
from app.packages.dms.core.responses import create_response
from app.packages.dms.core.timezone import format_datetime, now as tz_now
from app.packages.dms.crud.notifications import notification_crud
from app.packages.dms.db import session as db_session
from app.packages.dms.models.notification import Notification


class NotificationService:
    def notify(
        self,
        user_ids: Iterable[Optional[int]],
        *,
        type: NotificationTypeEnum,
        title: str,
        message: Optional[str] = None,
        document_id: Optional[int] = None,
        folder_id: Optional[int] = None,
        exclude_user_id: Optional[int] = None,
    ) -> int:
        """为每个接收人写入一条通知，返回写入数量；失败只告警不抛出。"""
        recipients = sorted({uid for uid in user_ids if uid is not None and uid != exclude_user_id})
        if not recipients:
            return 0

        session = db_session.SessionLocal()
        try:
            session.add_all(
                [
                    Notification(
                        user_id=uid,
                        type=type.value,
                        title=title,
                        message=message,
                        document_id=document_id,
                        folder_id=folder_id,
                    )
                    for uid in recipients
                ]
            )
            session.commit()
            return len(recipients)
        except Exception:
            session.rollback()
            operator_logger.exception(
                "Failed to fan out %s notification to %s recipients", type.value, len(recipients)
            )
            return 0
        finally:
            session.close()

    def list_notifications(
        self,
        db: Session,
        *,
        user_id: int,
        unread_only: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> dict:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 100)
        items, total = notification_crud.list_for_user(
            db, user_id=user_id, unread_only=unread_only, page=page, page_size=page_size
        )
        data = {
            "total": total,
            "unread": notification_crud.count_unread(db, user_id=user_id),
            "page": page,
            "page_size": page_size,
            "items": [self._serialize(item) for item in items],
        }
        return create_response("获取通知列表成功", data, HTTP_STATUS_OK)

    def mark_read(self, db: Session, *, user_id: int, notification_id: int) -> dict:
        item = self._get_owned(db, user_id=user_id, notification_id=notification_id)
        if not item.is_read:
            item.is_read = True
            item.read_at = tz_now()
            notification_crud.save(db, item)
        return create_response("已标记为已读", self._serialize(item), HTTP_STATUS_OK)

    def mark_all_read(self, db: Session, *, user_id: int) -> dict:
        updated = notification_crud.mark_all_read(db, user_id=user_id, read_at=tz_now())
        return create_response("全部标记为已读", {"updated": updated}, HTTP_STATUS_OK)

    def delete(self, db: Session, *, user_id: int, notification_id: int) -> dict:
        item = self._get_owned(db, user_id=user_id, notification_id=notification_id)
        db.delete(item)
        db.commit()
        return create_response("通知已删除", None, HTTP_STATUS_OK)

    @staticmethod
    def _get_owned(db: Session, *, user_id: int, notification_id: int) -> Notification:
        item = notification_crud.get_for_user(db, notification_id=notification_id, user_id=user_id)
        if item is None:
            raise NotFoundError("通知不存在")
        return item

    @staticmethod
    def _serialize(item: Notification) -> dict[str, Any]:
        return {
            "id": item.id,
            "type": item.type,
            "title": item.title,
            "message": item.message,
            "document_id": item.document_id,
            "folder_id": item.folder_id,
            "is_read": item.is_read,
            "read_at": format_datetime(item.read_at),
            "create_time": format_datetime(item.create_time),
        }


notification_service = NotificationService()
