"""
流水线各阶段的结构化载荷定义

resumes 表中的 JSON 列不再是"随便塞"的字典：每一列都有对应的 pydantic 模型，
在 ResumeRecordStore 写入时校验，读取时通过 ResumeRecord.get_*_payload() 还原。

    transcription_data  -> TranscriptionPayload（仅语音简历）
    parsed_data         -> ParsedPayload（含 ai_enhancement 命名空间）
    source_metadata     -> SourceMetadata（按 modality 区分的 tagged union）
    confidence_scores   -> ConfidenceSummary
    error_payload       -> ErrorPayload
    status_history      -> List[StatusHistoryEntry]
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .base import utc_now


# =============================================================================
# 转写阶段
# =============================================================================

class QualityIndicators(BaseModel):
    """转写文本的质量指标"""
    length: int = 0
    word_count: int = 0
    has_email: bool = False
    has_phone: bool = False
    sentence_count: int = 0
    avg_word_length: float = 0.0


class QualityAssessment(BaseModel):
    """转写质量评估：high / medium / low + 改进建议"""
    score: Literal["high", "medium", "low"]
    indicators: QualityIndicators
    recommendations: List[str] = Field(default_factory=list)


class TranscriptionPayload(BaseModel):
    """语音转写结果"""
    text: str
    word_count: int
    character_count: int
    quality: QualityAssessment
    processing_time_ms: int = 0


# =============================================================================
# 增强阶段
# =============================================================================

class EntityMention(BaseModel):
    """命名实体及其置信度"""
    text: str
    score: float


class EntityGroups(BaseModel):
    """按类型分组的命名实体"""
    persons: List[EntityMention] = Field(default_factory=list)
    organizations: List[EntityMention] = Field(default_factory=list)
    locations: List[EntityMention] = Field(default_factory=list)
    misc: List[EntityMention] = Field(default_factory=list)

    def all_mentions(self) -> List[EntityMention]:
        return self.persons + self.organizations + self.locations + self.misc


class CategoryScore(BaseModel):
    category: str
    score: float


class CategorizedSkill(BaseModel):
    """单个技能的分类结果（最多保留两个类别）"""
    skill: str
    categories: List[CategoryScore] = Field(default_factory=list)


class CompletenessScore(BaseModel):
    """必填字段完整度"""
    score: int
    missing_fields: List[str] = Field(default_factory=list)


class EnhancementPayload(BaseModel):
    """
    AI 增强结果

    以 ai_enhancement 命名空间挂在 ParsedPayload 下，保证基础抽取字段不会被覆盖
    """
    entities: Optional[EntityGroups] = None
    categorized_skills: List[CategorizedSkill] = Field(default_factory=list)
    skills_by_category: Dict[str, List[str]] = Field(default_factory=dict)
    experience_level: Optional[str] = None
    experience_level_confidence: Optional[float] = None
    experience_level_scores: Dict[str, float] = Field(default_factory=dict)
    suggested_skills: List[str] = Field(default_factory=list)
    completeness: Optional[CompletenessScore] = None
    improvement_suggestions: List[str] = Field(default_factory=list)
    # 能力级错误：{"entities": "...", "skill_categorization": "..."}
    capability_errors: Dict[str, str] = Field(default_factory=dict)
    enhanced_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# 解析阶段
# =============================================================================

class ParsedPayload(BaseModel):
    """
    问答抽取得到的结构化简历字段

    enhanced / enhancement_error / ai_enhancement 由增强阶段填写，
    enhanced 为 None 表示还没有走到增强阶段
    """
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    skills: Optional[List[str]] = None
    experience: Optional[str] = None
    education: Optional[str] = None
    current_job: Optional[str] = None
    extraction_confidence: Literal["high", "medium", "low"] = "low"
    extracted_at: datetime = Field(default_factory=utc_now)

    enhanced: Optional[bool] = None
    enhancement_error: Optional[str] = None
    ai_enhancement: Optional[EnhancementPayload] = None


# =============================================================================
# 来源元数据（按 modality 区分）
# =============================================================================

class VoiceSourceMetadata(BaseModel):
    modality: Literal["voice"] = "voice"
    storage_type: str = "local"
    transcription_method: str = "whisper"
    detected_sections: List[str] = Field(default_factory=list)


class DocumentSourceMetadata(BaseModel):
    modality: Literal["document"] = "document"
    storage_type: str = "local"
    text_length: int = 0


SourceMetadata = Annotated[
    Union[VoiceSourceMetadata, DocumentSourceMetadata],
    Field(discriminator="modality")
]


# =============================================================================
# 置信度
# =============================================================================

class ComponentScores(BaseModel):
    """七个分项得分，None 表示该分项不适用"""
    transcription_quality: Optional[int] = None
    name_extraction: Optional[int] = None
    contact_extraction: Optional[int] = None
    skills_categorization: Optional[int] = None
    experience_level_inference: Optional[int] = None
    entity_recognition: Optional[int] = None
    overall_completeness: Optional[int] = None


class ConfidenceRecommendation(BaseModel):
    component: str
    issue: str
    suggestion: str
    impact: Literal["high", "medium", "low"]


class ConfidenceSummary(BaseModel):
    overall_score: int
    level: str
    component_scores: ComponentScores
    insights: List[str] = Field(default_factory=list)
    recommendations: List[ConfidenceRecommendation] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


# =============================================================================
# 错误与状态历史
# =============================================================================

class ErrorPayload(BaseModel):
    """失败信息，只在 failed 状态下存在"""
    message: str
    failed_at_stage: str
    can_retry: bool = True
    timestamp: datetime = Field(default_factory=utc_now)


class StatusHistoryEntry(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# 简历-职位对比
# =============================================================================

class ExperienceRequirements(BaseModel):
    years: Optional[int] = None
    level: Optional[str] = None


class EducationRequirements(BaseModel):
    required: bool = False
    degree: Optional[str] = None
    field: Optional[str] = None


class JobRequirements(BaseModel):
    required_skills: List[str] = Field(default_factory=list)
    preferred_skills: List[str] = Field(default_factory=list)
    experience: ExperienceRequirements = Field(default_factory=ExperienceRequirements)
    education: EducationRequirements = Field(default_factory=EducationRequirements)


class SkillsAnalysis(BaseModel):
    required_matched: List[str] = Field(default_factory=list)
    required_missing: List[str] = Field(default_factory=list)
    preferred_matched: List[str] = Field(default_factory=list)
    preferred_missing: List[str] = Field(default_factory=list)
    additional_skills: List[str] = Field(default_factory=list)
    match_score: int = 0
    interpretation: str = ""


class ExperienceAnalysis(BaseModel):
    candidate_level: Optional[str] = None
    required_level: Optional[str] = None
    years_required: Optional[int] = None
    candidate_years: Optional[int] = None
    match_score: int = 0
    interpretation: str = ""


class EducationAnalysis(BaseModel):
    meets_requirements: bool = False
    field_match: bool = False
    match_score: int = 50
    interpretation: str = ""


class MatchInsight(BaseModel):
    type: str
    message: str
    importance: Literal["high", "medium", "low"]
    positive: Optional[bool] = None


class ComparisonResult(BaseModel):
    overall_score: int
    match_quality: str
    interpretation: str
    skills: SkillsAnalysis
    experience: ExperienceAnalysis
    education: EducationAnalysis
    semantic_similarity: int
    insights: List[MatchInsight] = Field(default_factory=list)
    recommendations: List[Dict[str, Any]] = Field(default_factory=list)
    job_requirements: JobRequirements
    timestamp: datetime = Field(default_factory=utc_now)


# 写入 resumes 表 JSON 列时使用的校验器
RESUME_PAYLOAD_ADAPTERS: Dict[str, TypeAdapter] = {
    "transcription_data": TypeAdapter(Optional[TranscriptionPayload]),
    "parsed_data": TypeAdapter(Optional[ParsedPayload]),
    "source_metadata": TypeAdapter(Optional[SourceMetadata]),
    "confidence_scores": TypeAdapter(Optional[ConfidenceSummary]),
    "error_payload": TypeAdapter(Optional[ErrorPayload]),
    "status_history": TypeAdapter(List[StatusHistoryEntry]),
    "processing_metadata": TypeAdapter(Dict[str, Any]),
}
