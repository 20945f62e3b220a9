"""部门 CRUD。"""

from __future__ import annotations

from typing import List

from sqlalchemy.orm import Session

from app.packages.dms.crud.base import CRUDBase
from app.packages.dms.models.department import Department


class CRUDDepartment(CRUDBase[Department]):
    def get_by_name(self, db: Session, name: str) -> Department | None:
        return db.query(Department).filter(Department.name == name).first()

    def list_all(self, db: Session, *, include_inactive: bool = False) -> List[Department]:
        return self.query(db, include_inactive=include_inactive).order_by(Department.name).all()


department_crud = CRUDDepartment(Department)
