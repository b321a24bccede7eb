"""
简历-职位对比 Repository
对比记录写入后不可修改，因此只提供创建和查询
"""

from typing import List, Optional

from sqlmodel import Session, select, col

from resume_intake.models.job_comparison import JobComparisonRecord
from resume_intake.models.payloads import ComparisonResult


class JobComparisonRepository:
    """
    对比记录数据访问对象
    封装所有与 resume_job_comparisons 表相关的数据库操作
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
        resume_id: int,
        user_id: int,
        job_description: str,
        result: ComparisonResult,
        job_title: Optional[str] = None,
        company_name: Optional[str] = None
    ) -> JobComparisonRecord:
        """
        保存一次对比结果

        Args:
            resume_id: 简历 ID
            user_id: 用户 ID
            job_description: 职位描述原文
            result: 对比结果
            job_title: 职位名称（可选）
            company_name: 公司名称（可选）

        Returns:
            创建的 JobComparisonRecord 对象
        """
        record = JobComparisonRecord(
            resume_id=resume_id,
            user_id=user_id,
            job_description=job_description,
            job_title=job_title,
            company_name=company_name,
            comparison_result=result.model_dump(mode="json"),
            overall_match_score=result.overall_score,
            match_quality=result.match_quality
        )
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return record

    def get_by_id(self, comparison_id: int) -> Optional[JobComparisonRecord]:
        """
        根据 ID 获取对比记录

        Args:
            comparison_id: 对比记录 ID

        Returns:
            JobComparisonRecord 对象，不存在则返回 None
        """
        return self.session.get(JobComparisonRecord, comparison_id)

    def get_by_resume(self, resume_id: int, limit: Optional[int] = None) -> List[JobComparisonRecord]:
        """
        获取简历的对比历史（按创建时间倒序）

        Args:
            resume_id: 简历 ID
            limit: 限制返回数量（可选）

        Returns:
            JobComparisonRecord 对象列表
        """
        statement = (
            select(JobComparisonRecord)
            .where(JobComparisonRecord.resume_id == resume_id)
            .order_by(col(JobComparisonRecord.created_at).desc(), col(JobComparisonRecord.id).desc())
        )

        if limit:
            statement = statement.limit(limit)

        return self.session.exec(statement).all()

    def get_by_user(self, user_id: int) -> List[JobComparisonRecord]:
        """
        获取用户的所有对比记录（按匹配分数倒序）

        Args:
            user_id: 用户 ID

        Returns:
            JobComparisonRecord 对象列表
        """
        statement = (
            select(JobComparisonRecord)
            .where(JobComparisonRecord.user_id == user_id)
            .order_by(col(JobComparisonRecord.overall_match_score).desc())
        )
        return self.session.exec(statement).all()
