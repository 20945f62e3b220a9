"""用户管理的请求与响应模型。"""

from typing import Optional

from pydantic import BaseModel, Field

from app.packages.dms.api.v1.schemas.auth import UserProfileData
from app.packages.dms.api.v1.schemas.common import ResponseEnvelope
from app.packages.dms.core.enums import RoleEnum


class UserCreateRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)
    role: str = Field(RoleEnum.EMPLOYEE.value, max_length=50)
    department_id: Optional[int] = Field(None, ge=1)
    nickname: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)


UserDetailResponse = ResponseEnvelope[UserProfileData]
UserListResponse = ResponseEnvelope[list[UserProfileData]]
