"""CRUD 基类：为各实体提供通用的数据访问方法。"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy.orm import Query, Session

from app.packages.dms.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """封装常见的查询、创建与保存逻辑，减少重复代码。"""

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any, *, include_inactive: bool = False) -> Optional[ModelType]:
        return self.query(db, include_inactive=include_inactive).filter(self.model.id == id).first()

    def get_for_update(self, db: Session, id: Any) -> Optional[ModelType]:
        """加行锁读取最新状态（不支持 ``FOR UPDATE`` 的后端会忽略锁子句）。"""
        return (
            db.query(self.model)
            .filter(self.model.id == id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_multi(self, db: Session, *, skip: int = 0, limit: int = 100) -> List[ModelType]:
        return self.query(db).order_by(self.model.id).offset(skip).limit(limit).all()

    def create(self, db: Session, obj_in: Dict[str, Any], *, auto_commit: bool = True) -> ModelType:
        db_obj = self.model(**obj_in)
        db.add(db_obj)
        if auto_commit:
            db.commit()
            db.refresh(db_obj)
        else:
            db.flush()
        return db_obj

    def save(self, db: Session, db_obj: ModelType, *, auto_commit: bool = True) -> ModelType:
        db.add(db_obj)
        if auto_commit:
            db.commit()
            db.refresh(db_obj)
        return db_obj

    def deactivate(self, db: Session, db_obj: ModelType, *, auto_commit: bool = True) -> ModelType:
        """停用记录；模型不带 ``is_active`` 时执行物理删除。"""
        if hasattr(db_obj, "is_active"):
            db_obj.is_active = False
            db.add(db_obj)
        else:
            db.delete(db_obj)
        if auto_commit:
            db.commit()
        return db_obj

    def query(self, db: Session, *, include_inactive: bool = False) -> Query:
        query = db.query(self.model)
        if hasattr(self.model, "is_active") and not include_inactive:
            query = query.filter(self.model.is_active.is_(True))
        return query
