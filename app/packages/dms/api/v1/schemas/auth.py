"""认证相关的请求与响应模型。"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from app.packages.dms.api.v1.schemas.common import ResponseEnvelope


class LoginRequest(BaseModel):
    """登录请求的字段校验规则。"""

    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=128)


class TokenResponseData(BaseModel):
    """登录成功后签发的令牌信息。"""

    access_token: str
    token_type: Literal["bearer"]


class UserProfileData(BaseModel):
    user_id: int
    username: str
    nickname: Optional[str] = None
    email: Optional[str] = None
    role: str
    department_id: Optional[int] = None
    is_active: bool
    create_time: Optional[str] = None


TokenResponse = ResponseEnvelope[TokenResponseData]
LogoutResponse = ResponseEnvelope[None]
UserProfileResponse = ResponseEnvelope[UserProfileData]
