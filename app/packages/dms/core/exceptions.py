"""异常处理模块：定义统一的业务异常、领域错误类型与响应格式。

领域错误按照稳定的分类对外暴露：

- not-found：``NotFoundError``；
- conflict：``CycleDetectedError``、``CrossDepartmentError``、``VersionMismatchError``、
  ``FolderNotEmptyError``、``ConcurrentModificationError``；
- forbidden：``PermissionDeniedError``；
- upstream-failure：``StorageWriteFailedError``、``OperationTimeoutError``。

响应体只包含预设的提示语与分类，不透出底层存储或数据库的错误文本。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeoutError

from app.packages.dms.core.logger import logger
from app.packages.dms.core.security import consume_refreshed_token


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data=None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data


class DomainError(AppException):
    """领域错误基类：``kind`` 标识错误种类，``category`` 为对外稳定分类。"""

    kind = "error"
    category = "bad-request"
    http_status = status.HTTP_400_BAD_REQUEST
    default_msg = "请求无法处理"

    def __init__(self, msg: Optional[str] = None, *, data: Optional[dict[str, Any]] = None) -> None:
        payload: dict[str, Any] = {"kind": self.kind, "category": self.category}
        if data:
            payload.update(data)
        super().__init__(msg or self.default_msg, self.http_status, payload)


class NotFoundError(DomainError):
    kind = "not_found"
    category = "not-found"
    http_status = status.HTTP_404_NOT_FOUND
    default_msg = "资源不存在"


class CycleDetectedError(DomainError):
    kind = "cycle_detected"
    category = "conflict"
    http_status = status.HTTP_409_CONFLICT
    default_msg = "目录层级存在循环"


class CrossDepartmentError(DomainError):
    kind = "cross_department"
    category = "conflict"
    http_status = status.HTTP_409_CONFLICT
    default_msg = "不允许跨部门移动或创建文件夹"


class VersionMismatchError(DomainError):
    kind = "version_mismatch"
    category = "conflict"
    http_status = status.HTTP_409_CONFLICT
    default_msg = "该版本不属于当前文档"


class FolderNotEmptyError(DomainError):
    kind = "folder_not_empty"
    category = "conflict"
    http_status = status.HTTP_409_CONFLICT
    default_msg = "文件夹内仍有子文件夹或文档，无法删除"


class ConcurrentModificationError(DomainError):
    kind = "concurrent_modification"
    category = "conflict"
    http_status = status.HTTP_409_CONFLICT
    default_msg = "文档正在被其他操作修改，请稍后重试"


class PermissionDeniedError(DomainError):
    kind = "permission_denied"
    category = "forbidden"
    http_status = status.HTTP_403_FORBIDDEN
    default_msg = "没有执行该操作的权限"


class StorageWriteFailedError(DomainError):
    kind = "storage_write_failed"
    category = "upstream-failure"
    http_status = status.HTTP_502_BAD_GATEWAY
    default_msg = "文件存储失败，请稍后重试"


class OperationTimeoutError(DomainError):
    kind = "timeout"
    category = "upstream-failure"
    http_status = status.HTTP_504_GATEWAY_TIMEOUT
    default_msg = "存储服务响应超时，请稍后重试"


def _payload(msg: str, data: Any, code: int) -> dict[str, Any]:
    payload = {"msg": msg, "data": data, "code": code}
    token = consume_refreshed_token()
    if token:
        payload["meta"] = {"access_token": token}
    return payload


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 FastAPI 的 ``HTTPException`` 转换为统一响应格式。"""
    return JSONResponse(
        status_code=exc.status_code,
        content=_payload(exc.detail, getattr(exc, "data", None), exc.status_code),
    )


async def database_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """数据库连接池或语句超时映射为 ``Timeout``，其余数据库错误按 500 处理。"""
    if isinstance(exc, PoolTimeoutError) or _is_statement_timeout(exc):
        logger.warning("Database operation timed out: %s", exc)
        timeout = OperationTimeoutError("数据库响应超时，请稍后重试")
        return JSONResponse(
            status_code=timeout.status_code,
            content=_payload(timeout.detail, timeout.data, timeout.status_code),
        )
    return await generic_exception_handler(request, exc)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=_payload("服务器内部错误", None, code))


def _is_statement_timeout(exc: Exception) -> bool:
    if not isinstance(exc, OperationalError):
        return False
    text = str(getattr(exc, "orig", exc)).lower()
    return "statement timeout" in text or "canceling statement" in text or "timed out" in text
