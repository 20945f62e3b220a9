"""部门相关的请求与响应模型。"""

from typing import Optional

from pydantic import BaseModel, Field

from app.packages.dms.api.v1.schemas.common import ResponseEnvelope


class DepartmentCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=255)


class DepartmentData(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool
    create_time: Optional[str] = None


DepartmentResponse = ResponseEnvelope[DepartmentData]
DepartmentListResponse = ResponseEnvelope[list[DepartmentData]]
