"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from app.packages.dms.models.audit_log import AuditLog
from app.packages.dms.models.department import Department
from app.packages.dms.models.document import Document, DocumentPermission, DocumentVersion
from app.packages.dms.models.folder import Folder, FolderPermission
from app.packages.dms.models.notification import Notification
from app.packages.dms.models.user import User

__all__ = [
    "AuditLog",
    "Department",
    "Document",
    "DocumentPermission",
    "DocumentVersion",
    "Folder",
    "FolderPermission",
    "Notification",
    "User",
]
