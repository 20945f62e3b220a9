"""通用响应封装模型。"""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")


class ResponseEnvelope(BaseModel, Generic[T]):
    """系统统一的响应外层结构。"""

    msg: str
    data: Optional[T] = None
    code: int
    meta: Optional[Dict[str, Any]] = None


class PermissionEntryData(BaseModel):
    id: int
    user_id: Optional[int] = None
    role: Optional[str] = None
    rights: list[str]


class PermissionEntryRequest(BaseModel):
    """显式权限条目：``user_id`` 与 ``role`` 必须且只能提供一个。"""

    user_id: Optional[int] = Field(None, ge=1)
    role: Optional[str] = Field(None, min_length=1, max_length=50)
    rights: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_subject(self) -> "PermissionEntryRequest":
        if (self.user_id is None) == (self.role is None):
            raise ValueError("user_id 与 role 必须且只能提供一个")
        return self


PermissionListResponse = ResponseEnvelope[list[PermissionEntryData]]
EmptyResponse = ResponseEnvelope[None]
