"""时区工具方法：支持根据配置动态获取当前时区。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from app.packages.dms.core.config import get_settings


def now() -> datetime:
    """返回配置时区下的当前时间。"""
    return datetime.now(get_settings().timezone_info)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """将时间格式化为 ``YYYY-MM-DD HH:MM:SS`` 字符串，无时区对象按配置时区解释。"""
    if value is None:
        return None
    tz = get_settings().timezone_info
    localized = value.replace(tzinfo=tz) if value.tzinfo is None else value.astimezone(tz)
    return localized.strftime("%Y-%m-%d %H:%M:%S")
