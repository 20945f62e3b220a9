"""枚举定义：约束角色、访问权限、文档类型以及审计/通知类型的可选值。"""

from enum import Enum


class RoleEnum(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class AccessRight(str, Enum):
    """可授予文件夹或文档的访问权限。"""

    VIEW = "view"
    UPLOAD = "upload"
    EDIT = "edit"
    DELETE = "delete"
    DOWNLOAD = "download"


class DocumentTypeEnum(str, Enum):
    """允许上传的文档类型，取值即文件扩展名。"""

    PDF = "pdf"
    DOCX = "docx"
    XLSX = "xlsx"
    JPG = "jpg"
    PNG = "png"
    ZIP = "zip"


class ResourceTypeEnum(str, Enum):
    DEPARTMENT = "department"
    FOLDER = "folder"
    DOCUMENT = "document"
    USER = "user"


class AuditActionEnum(str, Enum):
    """审计日志的动作枚举。"""

    LOGIN = "login"
    LOGOUT = "logout"
    USER_CREATE = "user_create"
    DEPARTMENT_CREATE = "department_create"
    DEPARTMENT_DEACTIVATE = "department_deactivate"
    FOLDER_CREATE = "folder_create"
    FOLDER_MOVE = "folder_move"
    FOLDER_DELETE = "folder_delete"
    DOCUMENT_UPLOAD = "document_upload"
    DOCUMENT_UPDATE = "document_update"
    DOCUMENT_DOWNLOAD = "document_download"
    DOCUMENT_REPLACE = "document_replace"
    DOCUMENT_RESTORE = "document_restore"
    DOCUMENT_DELETE = "document_delete"
    PERMISSION_GRANT = "permission_grant"
    PERMISSION_REVOKE = "permission_revoke"


class NotificationTypeEnum(str, Enum):
    """站内通知类型。"""

    DOCUMENT_UPLOADED = "document_uploaded"
    PERMISSION_GRANTED = "permission_granted"
    VERSION_UPDATED = "version_updated"
    DOCUMENT_DELETED = "document_deleted"
