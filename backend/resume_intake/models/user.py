"""
用户域模型 - 简历归属者
认证（密码、JWT）由外部系统负责，这里只保存流水线需要的归属信息
"""

from typing import Optional, Dict, Any
from sqlmodel import Field, Column, JSON

from .base import TimestampModel


class User(TimestampModel, table=True):
    """
    用户表
    单机模式下 init_db 会创建默认用户 "me"
    """
    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)

    # 索引优化：按用户名查找归属者
    username: str = Field(unique=True, index=True, nullable=False)

    # 联系邮箱（可选），存在时必须唯一
    email: Optional[str] = Field(default=None, unique=True, index=True)

    full_name: Optional[str] = Field(default=None)

    # 停用的用户不能再提交新简历，历史记录保留
    is_active: bool = Field(default=True, nullable=False)

    # 其他资料（城市、头像等）
    basic_info: Optional[Dict[str, Any]] = Field(default_factory=dict, sa_column=Column(JSON))
