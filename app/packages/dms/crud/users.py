"""用户 CRUD。"""

from __future__ import annotations

from typing import Iterable, List

from sqlalchemy.orm import Session

from app.packages.dms.crud.base import CRUDBase
from app.packages.dms.models.user import User


class CRUDUser(CRUDBase[User]):
    def get_by_username(self, db: Session, username: str) -> User | None:
        return self.query(db).filter(User.username == username).first()

    def list_by_ids(self, db: Session, user_ids: Iterable[int]) -> List[User]:
        ids = {uid for uid in user_ids if uid is not None}
        if not ids:
            return []
        return self.query(db).filter(User.id.in_(ids)).all()


user_crud = CRUDUser(User)
