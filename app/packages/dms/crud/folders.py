"""文件夹 CRUD。"""

from __future__ import annotations

from typing import Collection, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.packages.dms.crud.base import CRUDBase
from app.packages.dms.models.document import Document
from app.packages.dms.models.folder import Folder


class CRUDFolder(CRUDBase[Folder]):
    def list_children(self, db: Session, *, parent_id: int) -> List[Folder]:
        return (
            self.query(db)
            .filter(Folder.parent_id == parent_id)
            .order_by(Folder.name, Folder.id)
            .all()
        )

    def list_roots(self, db: Session, *, department_id: Optional[int] = None) -> List[Folder]:
        query = self.query(db).filter(Folder.parent_id.is_(None))
        if department_id is not None:
            query = query.filter(Folder.department_id == department_id)
        return query.order_by(Folder.name, Folder.id).all()

    def child_ids(self, db: Session, parent_ids: Collection[int]) -> List[int]:
        """返回给定父节点的直接子节点 ID（含已停用节点）。"""
        if not parent_ids:
            return []
        rows = db.query(Folder.id).filter(Folder.parent_id.in_(list(parent_ids))).all()
        return [row[0] for row in rows]

    def count_all(self, db: Session) -> int:
        return db.query(func.count(Folder.id)).scalar() or 0

    def count_active_contents(self, db: Session, *, folder_id: int) -> tuple[int, int]:
        """返回 (有效子文件夹数, 有效文档数)。"""
        folders = (
            db.query(func.count(Folder.id))
            .filter(Folder.parent_id == folder_id, Folder.is_active.is_(True))
            .scalar()
        )
        documents = (
            db.query(func.count(Document.id))
            .filter(Document.folder_id == folder_id, Document.is_active.is_(True))
            .scalar()
        )
        return folders or 0, documents or 0


folder_crud = CRUDFolder(Folder)
