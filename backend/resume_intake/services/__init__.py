"""
业务服务层
每个 AI 阶段一个适配器，状态机和置信度聚合为纯逻辑
"""

from .confidence_service import ConfidenceService
from .enhancement_service import EnhancementService
from .file_resolver import FileReferenceResolver, PlainTextExtractor, ResolvedFile, TextExtractor
from .job_comparison_service import JobComparisonService
from .parsing_service import ExtractionTask, ParsingService
from .status_service import ResumeStatusMachine, format_duration, progress_percent, status_message
from .transcription_service import FormattedTranscript, TranscriptionService, assess_quality

__all__ = [
    "ConfidenceService",
    "EnhancementService",
    "FileReferenceResolver",
    "PlainTextExtractor",
    "ResolvedFile",
    "TextExtractor",
    "JobComparisonService",
    "ExtractionTask",
    "ParsingService",
    "ResumeStatusMachine",
    "format_duration",
    "progress_percent",
    "status_message",
    "FormattedTranscript",
    "TranscriptionService",
    "assess_quality",
]
