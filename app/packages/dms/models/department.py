"""部门模型：文件夹与文档的顶层归属单元。"""

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.packages.dms.models.base import ActiveMixin, Base, CreatedByMixin, TimestampMixin


class Department(CreatedByMixin, ActiveMixin, TimestampMixin, Base):
    """部门只允许停用，被文件夹引用期间不做物理删除。"""

    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
