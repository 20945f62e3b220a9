"""文档模型：文档元数据、显式权限条目与不可变的历史版本。

- ``version`` 从 1 开始，每次替换或恢复都严格递增，从不回退；
- ``DocumentVersion.version_number`` 记录的是被覆盖前的版本号，
  同一文档内唯一，保证任一历史状态只被快照一次。
"""

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.packages.dms.models.base import (
    ActiveMixin,
    Base,
    CreatedByMixin,
    PermissionEntryMixin,
    TimestampMixin,
)


class Document(CreatedByMixin, ActiveMixin, TimestampMixin, Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(255), index=True)
    original_filename: Mapped[str] = mapped_column(String(255))
    storage_url: Mapped[str] = mapped_column(String(1024))
    storage_key: Mapped[str] = mapped_column(String(1024))
    file_type: Mapped[str] = mapped_column(String(16), index=True)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    # ``metadata`` 为声明式基类保留属性，列名保持业务含义
    extra_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    folder_id: Mapped[int] = mapped_column(ForeignKey("folders.id"), index=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id"), index=True)

    folder: Mapped["Folder"] = relationship("Folder")
    uploader: Mapped["User"] = relationship("User", foreign_keys=[uploaded_by])
    permissions: Mapped[List["DocumentPermission"]] = relationship(
        "DocumentPermission",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DocumentPermission.id",
    )
    versions: Mapped[List["DocumentVersion"]] = relationship(
        "DocumentVersion",
        order_by="DocumentVersion.version_number.desc()",
        viewonly=True,
    )


class DocumentPermission(PermissionEntryMixin, Base):
    __tablename__ = "document_permissions"
    __table_args__ = (
        UniqueConstraint("document_id", "user_id", name="uq_document_permissions_document_user"),
        UniqueConstraint("document_id", "role", name="uq_document_permissions_document_role"),
        CheckConstraint("(user_id IS NULL) <> (role IS NULL)", name="subject"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id"), index=True)

    document: Mapped["Document"] = relationship("Document", back_populates="permissions")


class DocumentVersion(Base):
    """文档历史版本，只追加、不修改。"""

    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", name="uq_document_versions_document_version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id"), index=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_url: Mapped[str] = mapped_column(String(1024))
    storage_key: Mapped[str] = mapped_column(String(1024))
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    uploaded_by: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    change_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    create_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    document: Mapped["Document"] = relationship("Document")
