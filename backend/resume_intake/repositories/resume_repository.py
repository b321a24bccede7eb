"""
简历记录 Repository
提供 resumes 表的增删改查操作，JSON 列在写入时按载荷模型校验
"""

import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select, col

from resume_intake.errors import NotFound
from resume_intake.models.payloads import RESUME_PAYLOAD_ADAPTERS
from resume_intake.models.resume import ResumeRecord, ProcessingStatus, ResumeModality
from resume_intake.models.user import User
from .user_repository import UserRepository

logger = logging.getLogger(__name__)

# 允许通过 update 修改的字段；身份与来源字段在创建后不可变
UPDATABLE_FIELDS = {
    "processing_status",
    "status_history",
    "processing_metadata",
    "processing_started_at",
    "transcribed_at",
    "parsed_at",
    "processing_completed_at",
    "last_status_update",
    "total_processing_ms",
    "transcription_data",
    "parsed_data",
    "source_metadata",
    "confidence_scores",
    "error_payload",
}


def serialize_field(name: str, value: Any) -> Any:
    """
    将字段值转换为可入库的形式

    JSON 列先按对应的载荷模型校验，再 dump 成纯 JSON 结构；
    字符串会被拒绝，避免"JSON 里再套一层 JSON 字符串"的双重编码

    Args:
        name: 字段名
        value: 字段值（pydantic 模型、字典或 None）

    Returns:
        可直接赋值给 ResumeRecord 的值

    Raises:
        ValueError: 字段不可更新，或载荷不符合模型
    """
    if name not in UPDATABLE_FIELDS:
        raise ValueError(f"Field '{name}' cannot be updated")

    if name == "processing_status":
        return ProcessingStatus(value)

    adapter = RESUME_PAYLOAD_ADAPTERS.get(name)
    if adapter is None:
        return value

    if isinstance(value, (str, bytes)):
        raise ValueError(f"Field '{name}' expects a structured payload, got a string")

    validated = adapter.validate_python(value)
    return adapter.dump_python(validated, mode="json")


class ResumeRepository:
    """
    简历记录数据访问对象
    封装所有与 resumes 表相关的数据库操作
    """

    def __init__(self, session: Session):
        """
        初始化 Repository

        Args:
            session: SQLModel 数据库会话
        """
        self.session = session

    def create(
        self,
        user_id: int,
        original_name: str,
        storage_reference: str,
        file_size: int,
        modality: ResumeModality,
        content_type: Optional[str] = None
    ) -> ResumeRecord:
        """
        创建新简历记录（初始状态 uploaded）

        Args:
            user_id: 用户 ID
            original_name: 原始文件名
            storage_reference: 存储引用（本地路径或 URL）
            file_size: 字节数
            modality: 文档 / 语音
            content_type: 声明的 MIME 类型（可选）

        Returns:
            创建的 ResumeRecord 对象
        """
        record = ResumeRecord(
            user_id=user_id,
            original_name=original_name,
            storage_reference=storage_reference,
            file_size=file_size,
            content_type=content_type,
            modality=ResumeModality(modality),
            processing_status=ProcessingStatus.UPLOADED,
            status_history=[],
            processing_metadata={}
        )
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def get_by_id(self, resume_id: int) -> Optional[ResumeRecord]:
        """
        根据 ID 获取简历记录

        Args:
            resume_id: 简历 ID

        Returns:
            ResumeRecord 对象，不存在则返回 None
        """
        return self.session.get(ResumeRecord, resume_id)

    def get_for_user(self, resume_id: int, user_id: int) -> Optional[ResumeRecord]:
        """
        获取属于指定用户的简历记录

        Args:
            resume_id: 简历 ID
            user_id: 用户 ID

        Returns:
            ResumeRecord 对象，不存在或不属于该用户则返回 None
        """
        statement = select(ResumeRecord).where(
            ResumeRecord.id == resume_id,
            ResumeRecord.user_id == user_id
        )
        return self.session.exec(statement).first()

    def get_all_by_user(
        self,
        user_id: int,
        modality: Optional[ResumeModality] = None,
        limit: Optional[int] = None
    ) -> List[ResumeRecord]:
        """
        获取用户的所有简历（按上传时间倒序）

        Args:
            user_id: 用户 ID
            modality: 过滤形态（可选）
            limit: 限制返回数量（可选）

        Returns:
            ResumeRecord 对象列表
        """
        statement = select(ResumeRecord).where(ResumeRecord.user_id == user_id)

        if modality:
            statement = statement.where(ResumeRecord.modality == modality)

        statement = statement.order_by(col(ResumeRecord.uploaded_at).desc())

        if limit:
            statement = statement.limit(limit)

        return self.session.exec(statement).all()

    def update_fields(self, resume_id: int, fields: Dict[str, Any]) -> ResumeRecord:
        """
        原子地更新一组字段

        Args:
            resume_id: 简历 ID
            fields: {字段名: 新值}

        Returns:
            更新后的 ResumeRecord 对象

        Raises:
            NotFound: 简历不存在
            ValueError: 字段不可更新或载荷校验失败
        """
        record = self.get_by_id(resume_id)
        if record is None:
            raise NotFound(f"Resume {resume_id} not found")

        # 先全部校验，再统一赋值，避免校验失败时留下半更新的对象
        serialized = {name: serialize_field(name, value) for name, value in fields.items()}
        for name, value in serialized.items():
            setattr(record, name, value)

        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record


class ResumeRecordStore:
    """
    流水线使用的记录存储

    每次调用都打开一个短生命周期的 Session，多个流水线任务可以并发使用同一个实例；
    同一条记录只会被一个流水线任务修改，因此采用"按字段组最后写入者胜出"的策略
    """

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy 引擎
        """
        self.engine = engine

    def create(self, **kwargs) -> ResumeRecord:
        with Session(self.engine) as session:
            return ResumeRepository(session).create(**kwargs)

    def get(self, resume_id: int) -> ResumeRecord:
        """
        获取简历记录

        Raises:
            NotFound: 简历不存在
        """
        with Session(self.engine) as session:
            record = ResumeRepository(session).get_by_id(resume_id)
        if record is None:
            raise NotFound(f"Resume {resume_id} not found")
        return record

    def get_for_user(self, resume_id: int, user_id: int) -> ResumeRecord:
        """
        获取属于指定用户的简历记录

        Raises:
            NotFound: 简历不存在或不属于该用户
        """
        with Session(self.engine) as session:
            record = ResumeRepository(session).get_for_user(resume_id, user_id)
        if record is None:
            raise NotFound(f"Resume {resume_id} not found for user {user_id}")
        return record

    def get_owner(self, user_id: int) -> User:
        """
        获取简历归属用户

        Raises:
            NotFound: 用户不存在
        """
        with Session(self.engine) as session:
            user = UserRepository(session).get_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def update(self, resume_id: int, **fields) -> ResumeRecord:
        """
        部分更新，一次调用即一次提交

        Raises:
            NotFound: 简历不存在
            ValueError: 字段不可更新或载荷校验失败
        """
        with Session(self.engine) as session:
            record = ResumeRepository(session).update_fields(resume_id, fields)
        logger.debug("[ResumeRecordStore] Resume %s updated: %s", resume_id, sorted(fields))
        return record

    def list_by_user(
        self,
        user_id: int,
        modality: Optional[ResumeModality] = None
    ) -> List[ResumeRecord]:
        with Session(self.engine) as session:
            return list(ResumeRepository(session).get_all_by_user(user_id, modality=modality))
