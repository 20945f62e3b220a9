"""模型基类：统一声明式基类与通用审计字段。

本模块集中提供：
- Base：SQLAlchemy 声明式基类，带统一命名约定；
- TimestampMixin：`create_time`、`update_time`；
- ActiveMixin：`is_active`，部门/文件夹/文档均以停用代替物理删除；
- CreatedByMixin：`created_by`（创建人用户 ID）；
- PermissionEntryMixin：文件夹与文档共用的显式权限条目字段。
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, MetaData, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata_obj = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """全局声明式基类，附带一致的命名约定，便于迁移与调试。"""

    metadata = metadata_obj


class TimestampMixin:
    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    update_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ActiveMixin:
    """停用标记：停用的记录在常规查询中不可见，但仍保留历史。"""

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default=expression.true(),
        nullable=False,
        index=True,
    )


class CreatedByMixin:
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)


class PermissionEntryMixin:
    """显式权限条目：``user_id`` 与 ``role`` 二选一，``rights`` 为权限名列表。"""

    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    rights: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    @property
    def rights_set(self) -> frozenset[str]:
        return frozenset(self.rights or ())
