"""
数据模型单元测试
验证表模型、阶段载荷和类型化读取
"""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from resume_intake.models import (
    DocumentSourceMetadata,
    ParsedPayload,
    ProcessingStatus,
    ResumeModality,
    ResumeRecord,
    StatusHistoryEntry,
    TranscriptionPayload,
    VoiceSourceMetadata,
)
from resume_intake.models.base import as_utc
from resume_intake.models.payloads import RESUME_PAYLOAD_ADAPTERS, QualityAssessment


class TestEnums:
    """测试枚举"""

    def test_status_values(self):
        assert [s.value for s in ProcessingStatus] == [
            "uploaded", "transcribing", "transcribed", "parsing", "parsed",
            "enhancing", "enhanced", "completed", "failed",
        ]

    def test_modality_from_string(self):
        assert ResumeModality("voice") is ResumeModality.VOICE


class TestPayloads:
    """测试阶段载荷"""

    def test_parsed_defaults(self):
        parsed = ParsedPayload()

        assert parsed.extraction_confidence == "low"
        assert parsed.enhanced is None
        assert parsed.ai_enhancement is None
        assert parsed.extracted_at.tzinfo is not None

    def test_quality_score_restricted(self):
        with pytest.raises(PydanticValidationError):
            QualityAssessment(score="excellent", indicators={})

    def test_source_metadata_discriminator(self):
        adapter = RESUME_PAYLOAD_ADAPTERS["source_metadata"]

        voice = adapter.validate_python({"modality": "voice", "detected_sections": ["SKILLS"]})
        document = adapter.validate_python({"modality": "document", "text_length": 12})

        assert isinstance(voice, VoiceSourceMetadata)
        assert isinstance(document, DocumentSourceMetadata)
        assert adapter.validate_python(None) is None

    def test_source_metadata_unknown_modality(self):
        with pytest.raises(PydanticValidationError):
            RESUME_PAYLOAD_ADAPTERS["source_metadata"].validate_python({"modality": "video"})


class TestResumeRecordAccessors:
    """测试类型化读取"""

    def test_empty_record(self):
        record = ResumeRecord(
            user_id=1,
            original_name="resume.pdf",
            storage_reference="/tmp/resume.pdf",
            modality=ResumeModality.DOCUMENT
        )

        assert record.get_transcription_payload() is None
        assert record.get_parsed_payload() is None
        assert record.get_source_metadata() is None
        assert record.get_confidence_summary() is None
        assert record.get_error_payload() is None
        assert record.get_status_history() == []

    def test_payloads_restored(self):
        record = ResumeRecord(
            user_id=1,
            original_name="resume.mp3",
            storage_reference="/tmp/resume.mp3",
            modality=ResumeModality.VOICE,
            transcription_data={
                "text": "hello",
                "word_count": 1,
                "character_count": 5,
                "quality": {"score": "low", "indicators": {"word_count": 1}},
            },
            source_metadata={"modality": "voice", "transcription_method": "openai-whisper"},
            status_history=[{"from_status": "uploaded", "to_status": "transcribing", "timestamp": "2024-01-01T00:00:00Z"}]
        )

        transcription = record.get_transcription_payload()
        assert isinstance(transcription, TranscriptionPayload)
        assert transcription.quality.indicators.word_count == 1
        assert record.get_source_metadata().transcription_method == "openai-whisper"

        history = record.get_status_history()
        assert isinstance(history[0], StatusHistoryEntry)
        assert history[0].to_status == "transcribing"


class TestTimeHelpers:
    """测试时间工具"""

    def test_as_utc_naive(self):
        naive = datetime(2024, 1, 1, 12, 0)
        assert as_utc(naive) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_as_utc_none(self):
        assert as_utc(None) is None
