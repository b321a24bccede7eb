"""
用户管理 Repository
提供 users 表的增删改查操作
"""

import logging
from typing import Optional

from sqlmodel import Session

from resume_intake.models.user import User

logger = logging.getLogger(__name__)


class UserRepository:
    """
    用户数据访问对象
    封装所有与 users 表相关的数据库操作
    """

    def __init__(self, session: Session):
        """
        初始化 Repository

        Args:
            session: SQLModel 数据库会话
        """
        self.session = session

    def get_by_id(self, user_id: int) -> Optional[User]:
        """
        根据 ID 获取用户

        Args:
            user_id: 用户 ID

        Returns:
            User 对象，不存在则返回 None
        """
        return self.session.get(User, user_id)

    def create(
        self,
        username: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        basic_info: Optional[dict] = None
    ) -> User:
        """
        创建新用户

        Args:
            username: 用户名（必须唯一）
            email: 联系邮箱（可选，必须唯一）
            full_name: 姓名（可选）
            basic_info: 其他资料字典（可选）

        Returns:
            创建的 User 对象
        """
        user = User(username=username, email=email, full_name=full_name, basic_info=basic_info or {})
        logger.info("[UserRepository] 注册新用户 %s", username)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def set_active(self, user_id: int, active: bool) -> Optional[User]:
        """
        启用或停用用户

        Args:
            user_id: 用户 ID
            active: 是否启用

        Returns:
            更新后的 User 对象，不存在则返回 None
        """
        user = self.get_by_id(user_id)
        if user is None:
            return None

        user.is_active = active
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user
