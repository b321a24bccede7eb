"""
简历域模型 - 简历记录表
每个上传的文件（文档或语音）对应一条记录，由流水线编排器独占修改
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlmodel import Field, Column, JSON

from .base import TimestampModel, utc_now
from .payloads import (
    ConfidenceSummary,
    ErrorPayload,
    ParsedPayload,
    RESUME_PAYLOAD_ADAPTERS,
    StatusHistoryEntry,
    TranscriptionPayload,
)


class ProcessingStatus(str, Enum):
    """处理状态枚举 - 顺序即流水线的正常前进方向"""
    UPLOADED = "uploaded"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    PARSING = "parsing"
    PARSED = "parsed"
    ENHANCING = "enhancing"
    ENHANCED = "enhanced"
    COMPLETED = "completed"
    FAILED = "failed"


class ResumeModality(str, Enum):
    """简历来源形态"""
    DOCUMENT = "document"
    VOICE = "voice"


class ResumeRecord(TimestampModel, table=True):
    """
    简历记录表
    JSON 列的结构由 models/payloads.py 定义，写入统一经过 ResumeRecordStore 校验
    """
    __tablename__ = "resumes"

    # 主键
    id: Optional[int] = Field(default=None, primary_key=True)

    # 外键：归属用户
    # 索引优化：按用户查询简历列表、统计处理情况
    user_id: int = Field(foreign_key="users.id", index=True, nullable=False)

    # ---------- 来源 ----------
    original_name: str = Field(nullable=False)

    # 存储引用：本地路径或 URL（S3 等由外部协作方决定）
    storage_reference: str = Field(nullable=False)

    file_size: int = Field(default=0, nullable=False)

    content_type: Optional[str] = Field(default=None)

    modality: ResumeModality = Field(nullable=False)

    # ---------- 状态 ----------
    # 索引优化：轮询进行中的记录
    processing_status: ProcessingStatus = Field(
        default=ProcessingStatus.UPLOADED,
        index=True,
        nullable=False
    )

    # 状态流转历史：[{from_status, to_status, timestamp, metadata}]
    status_history: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))

    # 所有流转 metadata 的合并结果
    processing_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    # ---------- 时间戳 ----------
    uploaded_at: datetime = Field(default_factory=utc_now, nullable=False)
    processing_started_at: Optional[datetime] = Field(default=None)
    transcribed_at: Optional[datetime] = Field(default=None)
    parsed_at: Optional[datetime] = Field(default=None)
    processing_completed_at: Optional[datetime] = Field(default=None)
    last_status_update: Optional[datetime] = Field(default=None)

    # 进入 completed / failed 时计算的总耗时（毫秒）
    total_processing_ms: Optional[int] = Field(default=None)

    # ---------- 阶段产物 ----------
    transcription_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    parsed_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    source_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    confidence_scores: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    error_payload: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))

    # ==================== 类型化读取 ====================

    def get_transcription_payload(self) -> Optional[TranscriptionPayload]:
        if self.transcription_data is None:
            return None
        return TranscriptionPayload.model_validate(self.transcription_data)

    def get_parsed_payload(self) -> Optional[ParsedPayload]:
        if self.parsed_data is None:
            return None
        return ParsedPayload.model_validate(self.parsed_data)

    def get_source_metadata(self):
        return RESUME_PAYLOAD_ADAPTERS["source_metadata"].validate_python(self.source_metadata)

    def get_confidence_summary(self) -> Optional[ConfidenceSummary]:
        if self.confidence_scores is None:
            return None
        return ConfidenceSummary.model_validate(self.confidence_scores)

    def get_error_payload(self) -> Optional[ErrorPayload]:
        if self.error_payload is None:
            return None
        return ErrorPayload.model_validate(self.error_payload)

    def get_status_history(self) -> List[StatusHistoryEntry]:
        return [StatusHistoryEntry.model_validate(entry) for entry in (self.status_history or [])]
