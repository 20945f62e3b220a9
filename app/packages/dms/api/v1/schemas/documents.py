"""文档相关的请求与响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.dms.api.v1.schemas.common import PermissionEntryData, ResponseEnvelope


class DocumentUpdateRequest(BaseModel):
    """未提供的字段保持不变。"""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    tags: Optional[list[str]] = None
    metadata: Optional[dict[str, Any]] = None


class DocumentData(BaseModel):
    id: int
    title: str
    original_filename: str
    file_type: str
    size_bytes: int
    storage_url: str
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    version: int
    uploaded_by: int
    folder_id: int
    department_id: int
    is_active: bool
    create_time: Optional[str] = None
    update_time: Optional[str] = None
    permissions: list[PermissionEntryData] = Field(default_factory=list)
    rights: Optional[list[str]] = None


class VersionData(BaseModel):
    id: int
    document_id: int
    version_number: int
    storage_url: str
    size_bytes: int
    uploaded_by: int
    change_note: Optional[str] = None
    create_time: Optional[str] = None


class VersionListData(BaseModel):
    document_id: int
    current_version: int
    items: list[VersionData]


class VersionChangeData(BaseModel):
    document: DocumentData
    snapshot: VersionData


class AccessCheckData(BaseModel):
    document_id: int
    right: str
    allowed: bool


DocumentResponse = ResponseEnvelope[DocumentData]
VersionListResponse = ResponseEnvelope[VersionListData]
VersionChangeResponse = ResponseEnvelope[VersionChangeData]
AccessCheckResponse = ResponseEnvelope[AccessCheckData]
