"""登录会话：使用 Redis 或内存后端实现滑动过期，注销后令牌立即失效。"""

from __future__ import annotations

import threading
import time
import uuid
from typing import Optional

import redis

from app.packages.dms.core.config import get_settings
from app.packages.dms.core.logger import logger


class SessionBackend:
    """会话后端接口。"""

    def create_session(self, user_id: int, ttl_seconds: int) -> str:  # pragma: no cover - interface definition
        raise NotImplementedError

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:  # pragma: no cover
        raise NotImplementedError

    def delete_session(self, session_id: str) -> None:  # pragma: no cover
        raise NotImplementedError


class RedisSessionBackend(SessionBackend):
    """基于 Redis 的会话后端，会话键在 TTL 到期后自动淘汰。"""

    KEY_PREFIX = "dms:session:"

    def __init__(self, url: str, timeout_seconds: float) -> None:
        self._client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        self._client.ping()

    def create_session(self, user_id: int, ttl_seconds: int) -> str:
        session_id = uuid.uuid4().hex
        self._client.set(self.KEY_PREFIX + session_id, str(user_id), ex=ttl_seconds)
        return session_id

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:
        key = self.KEY_PREFIX + session_id
        if self._client.get(key) != str(user_id):
            return False
        self._client.expire(key, ttl_seconds)
        return True

    def delete_session(self, session_id: str) -> None:
        self._client.delete(self.KEY_PREFIX + session_id)


class InMemorySessionBackend(SessionBackend):
    """进程内会话后端，用于测试或 Redis 不可用时。"""

    def __init__(self) -> None:
        self._store: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def create_session(self, user_id: int, ttl_seconds: int) -> str:
        session_id = uuid.uuid4().hex
        with self._lock:
            self._store[session_id] = (user_id, time.monotonic() + ttl_seconds)
        return session_id

    def touch_session(self, session_id: str, user_id: int, ttl_seconds: int) -> bool:
        now = time.monotonic()
        with self._lock:
            record = self._store.get(session_id)
            if record is None:
                return False
            stored_user_id, expires_at = record
            if stored_user_id != user_id or expires_at < now:
                self._store.pop(session_id, None)
                return False
            self._store[session_id] = (stored_user_id, now + ttl_seconds)
            return True

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._store.pop(session_id, None)


_backend: Optional[SessionBackend] = None


def _get_backend() -> SessionBackend:
    global _backend
    if _backend is not None:
        return _backend

    settings = get_settings()
    try:
        _backend = RedisSessionBackend(settings.redis_url, timeout_seconds=2.0)
        logger.info("Session store initialized with Redis at %s", settings.redis_url)
    except redis.RedisError as exc:  # pragma: no cover - fallback path
        logger.warning("Redis unavailable (%s), falling back to in-memory session store", exc)
        _backend = InMemorySessionBackend()
    return _backend


def set_session_backend(backend: Optional[SessionBackend]) -> None:
    """替换会话后端，传入 ``None`` 时下次调用重新探测。"""
    global _backend
    _backend = backend


def create_session(user_id: int, ttl_seconds: int) -> str:
    return _get_backend().create_session(user_id, ttl_seconds)


def touch_session(session_id: str, user_id: int, ttl_seconds: int) -> bool:
    """刷新会话 TTL，若会话不存在或用户不匹配则返回 ``False``。"""
    return _get_backend().touch_session(session_id, user_id, ttl_seconds)


def delete_session(session_id: str) -> None:
    _get_backend().delete_session(session_id)
