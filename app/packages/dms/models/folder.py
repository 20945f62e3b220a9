"""文件夹模型：严格树形结构中的节点及其显式权限条目。

约束：
- parent_id 为空表示部门根目录；
- 非根文件夹必须与父文件夹属于同一部门（由层级服务校验）；
- 每个 (文件夹, 用户) 与 (文件夹, 角色) 至多一条权限条目。
"""

from typing import List, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.dms.models.base import (
    ActiveMixin,
    Base,
    CreatedByMixin,
    PermissionEntryMixin,
    TimestampMixin,
)


class Folder(CreatedByMixin, ActiveMixin, TimestampMixin, Base):
    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("folders.id"), nullable=True, index=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), index=True)

    parent: Mapped[Optional["Folder"]] = relationship("Folder", remote_side="Folder.id")
    department: Mapped["Department"] = relationship("Department")
    permissions: Mapped[List["FolderPermission"]] = relationship(
        "FolderPermission",
        back_populates="folder",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="FolderPermission.id",
    )


class FolderPermission(PermissionEntryMixin, Base):
    __tablename__ = "folder_permissions"
    __table_args__ = (
        UniqueConstraint("folder_id", "user_id", name="uq_folder_permissions_folder_user"),
        UniqueConstraint("folder_id", "role", name="uq_folder_permissions_folder_role"),
        CheckConstraint("(user_id IS NULL) <> (role IS NULL)", name="subject"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    folder_id: Mapped[int] = mapped_column(ForeignKey("folders.id"), index=True)

    folder: Mapped["Folder"] = relationship("Folder", back_populates="permissions")
