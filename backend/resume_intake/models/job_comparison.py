"""
对比域模型 - 简历与职位描述的对比记录
按需创建，写入后不可修改，作为历史保留
"""

from typing import Optional, Dict, Any
from sqlmodel import Field, Column, JSON

from .base import TimestampModel


class JobComparisonRecord(TimestampModel, table=True):
    """
    简历-职位对比表
    comparison_result 的结构见 payloads.ComparisonResult
    """
    __tablename__ = "resume_job_comparisons"

    # 主键
    id: Optional[int] = Field(default=None, primary_key=True)

    # 外键：对比的简历
    # 索引优化：按简历查询对比历史
    resume_id: int = Field(foreign_key="resumes.id", index=True, nullable=False)

    # 外键：归属用户
    user_id: int = Field(foreign_key="users.id", index=True, nullable=False)

    # 职位描述原文
    job_description: str = Field(nullable=False)

    # 可选：职位名称和公司
    job_title: Optional[str] = Field(default=None)
    company_name: Optional[str] = Field(default=None)

    # 完整对比结果 JSON
    comparison_result: Dict[str, Any] = Field(sa_column=Column(JSON))

    # 冗余的总分和等级，方便排序和列表展示
    overall_match_score: int = Field(ge=0, le=100, nullable=False)
    match_quality: str = Field(nullable=False)
