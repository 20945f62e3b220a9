"""文件夹相关的请求与响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.dms.api.v1.schemas.common import PermissionEntryData, ResponseEnvelope


class FolderCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[int] = Field(None, ge=1)
    department_id: Optional[int] = Field(None, ge=1)
    copy_parent_permissions: bool = False


class FolderMoveRequest(BaseModel):
    """``new_parent_id`` 为空表示移动到部门根目录。"""

    new_parent_id: Optional[int] = Field(None, ge=1)


class BreadcrumbItem(BaseModel):
    id: int
    name: str


class FolderData(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    department_id: int
    created_by: Optional[int] = None
    is_active: bool
    create_time: Optional[str] = None
    permissions: list[PermissionEntryData] = Field(default_factory=list)
    rights: Optional[list[str]] = None
    breadcrumb: Optional[list[BreadcrumbItem]] = None


class FolderChildrenData(BaseModel):
    folder: FolderData
    folders: list[FolderData]
    documents: list[dict[str, Any]]


class MoveCheckData(BaseModel):
    valid: bool
    reason: Optional[str] = None
    message: Optional[str] = None


FolderResponse = ResponseEnvelope[FolderData]
FolderListResponse = ResponseEnvelope[list[FolderData]]
FolderChildrenResponse = ResponseEnvelope[FolderChildrenData]
BreadcrumbResponse = ResponseEnvelope[list[BreadcrumbItem]]
MoveCheckResponse = ResponseEnvelope[MoveCheckData]
