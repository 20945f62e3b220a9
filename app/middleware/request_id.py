"""请求 ID 中间件：为每个请求绑定 ``X-Request-ID``，供日志过滤器输出。

请求头携带 ``X-Request-ID`` 时沿用该值，否则生成 UUID4；响应头会回写同一个值，
便于把客户端报错与服务端日志对应起来。
"""

from __future__ import annotations

import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.packages.dms.core.logger import set_request_id

_HEADER = b"x-request-id"


class RequestIdMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:  # pragma: no cover
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        rid = None
        for key, value in scope.get("headers", []):
            if key.lower() == _HEADER:
                rid = value.decode("latin-1").strip()[:64] or None
                break
        rid = rid or str(uuid.uuid4())
        set_request_id(rid)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = list(message.get("headers", []))
                headers.append((_HEADER, rid.encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            set_request_id(None)
