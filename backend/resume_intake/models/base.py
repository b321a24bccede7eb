"""
基础数据库配置模块
提供所有模型共用的基础类和时间工具
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    """返回 timezone-aware 的当前 UTC 时间"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    统一为 UTC aware datetime

    SQLite 不保存时区信息，读回来的是 naive datetime，与 utc_now() 相减前需要补齐
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# 全局基础模型，包含创建和更新时间戳
class TimestampModel(SQLModel):
    """时间戳基类，为所有模型提供 created_at 和 updated_at 字段

    使用 timezone-aware datetime 替代已弃用的 utcnow()
    """
    created_at: Optional[datetime] = Field(
        default_factory=utc_now,
        nullable=False
    )
    updated_at: Optional[datetime] = Field(
        default_factory=utc_now,
        nullable=False,
        sa_column_kwargs={"onupdate": utc_now}
    )
