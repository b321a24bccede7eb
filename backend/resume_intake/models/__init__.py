"""
数据库模型模块
导出所有表模型、枚举类型和阶段载荷
"""

# 用户域模型
from .user import User

# 简历域模型
from .resume import ResumeRecord, ProcessingStatus, ResumeModality
from .job_comparison import JobComparisonRecord

# 阶段载荷
from .payloads import (
    TranscriptionPayload, QualityAssessment, QualityIndicators,
    ParsedPayload, EnhancementPayload, EntityGroups, EntityMention,
    CategorizedSkill, CategoryScore, CompletenessScore,
    VoiceSourceMetadata, DocumentSourceMetadata,
    ConfidenceSummary, ComponentScores, ConfidenceRecommendation,
    ErrorPayload, StatusHistoryEntry,
    ComparisonResult, JobRequirements,
)

# 基础模型
from .base import TimestampModel

# 定义导出的内容
__all__ = [
    # 用户域
    "User",
    # 简历域
    "ResumeRecord", "ProcessingStatus", "ResumeModality",
    "JobComparisonRecord",
    # 载荷
    "TranscriptionPayload", "QualityAssessment", "QualityIndicators",
    "ParsedPayload", "EnhancementPayload", "EntityGroups", "EntityMention",
    "CategorizedSkill", "CategoryScore", "CompletenessScore",
    "VoiceSourceMetadata", "DocumentSourceMetadata",
    "ConfidenceSummary", "ComponentScores", "ConfidenceRecommendation",
    "ErrorPayload", "StatusHistoryEntry",
    "ComparisonResult", "JobRequirements",
    # 基础模型
    "TimestampModel"
]
