"""
数据库初始化脚本
负责创建数据库表结构和默认用户
"""

import logging
import os
from pathlib import Path

from sqlmodel import SQLModel, Session, create_engine, select

# 导入模型以便 SQLModel.metadata 注册所有表
from resume_intake.models.user import User
from resume_intake.models.resume import ResumeRecord  # noqa: F401
from resume_intake.models.job_comparison import JobComparisonRecord  # noqa: F401

logger = logging.getLogger(__name__)


def get_database_url() -> str:
    """
    获取数据库连接 URL
    优先使用环境变量，否则使用默认的 SQLite 文件
    """
    db_path = os.environ.get("DATABASE_PATH", "database.db")
    # 确保路径是绝对路径
    if not os.path.isabs(db_path):
        # 从 backend 目录解析
        backend_root = Path(__file__).parent.parent.parent
        db_path = str(backend_root / db_path)
    return f"sqlite:///{db_path}"


def get_engine():
    """
    创建并返回数据库引擎
    """
    database_url = get_database_url()
    # SQLite 配置
    engine = create_engine(
        database_url,
        echo=False,  # 设置为 True 可查看 SQL 语句
        connect_args={"check_same_thread": False}  # 流水线任务和轮询请求可能在不同线程
    )
    return engine


def create_tables(engine) -> None:
    """
    创建所有数据库表
    SQLModel 会自动根据模型创建表结构
    """
    SQLModel.metadata.create_all(engine)
    logger.info("[init_db] Database tables created at %s", engine.url)


def create_default_user(session: Session) -> User:
    """
    创建默认用户 'me'
    如果用户已存在，则返回现有用户
    """
    statement = select(User).where(User.username == "me")
    result = session.exec(statement).first()

    if result:
        logger.info("[init_db] 默认用户 'me' 已存在 (ID: %s)", result.id)
        return result

    default_user = User(username="me", full_name="Default User")
    session.add(default_user)
    session.commit()
    session.refresh(default_user)
    logger.info("[init_db] 创建默认用户 'me' (ID: %s)", default_user.id)
    return default_user


def init_db(engine=None) -> None:
    """
    完整的数据库初始化流程
    1. 创建数据库引擎
    2. 创建所有表结构
    3. 创建默认用户
    """
    engine = engine or get_engine()

    create_tables(engine)

    with Session(engine) as session:
        create_default_user(session)


if __name__ == "__main__":
    # 直接运行此脚本时，执行数据库初始化
    from resume_intake.logging_setup import configure_logging

    configure_logging()
    init_db()
