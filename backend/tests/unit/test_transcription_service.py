"""
语音转写服务测试
验证上传校验、质量评估、口语分段和外部错误映射
"""

import asyncio

import pytest

from resume_intake.errors import (
    FileTooLarge,
    InvalidApiKey,
    ModelLoading,
    RateLimited,
    ResourceUnreadable,
    TranscriptionServiceError,
    UnsupportedFormat,
)
from resume_intake.services.transcription_service import (
    RESUME_TRANSCRIPTION_PROMPT,
    TranscriptionService,
    assess_quality,
    format_for_parsing,
    identify_sections,
)


@pytest.fixture
def service(fake_stt_client):
    return TranscriptionService(fake_stt_client)


class TestValidation:
    """测试上传校验（不发起任何调用）"""

    @pytest.mark.parametrize("name", ["resume.pdf", "resume.txt", "resume", "resume.flac"])
    def test_unsupported_format(self, service, tmp_path, name):
        path = tmp_path / name
        path.write_bytes(b"data")
        with pytest.raises(UnsupportedFormat):
            service.validate(str(path))

    @pytest.mark.parametrize("name", ["a.mp3", "b.WAV", "c.m4a", "d.ogg", "e.webm"])
    def test_supported_formats(self, service, tmp_path, name):
        path = tmp_path / name
        path.write_bytes(b"data")
        service.validate(str(path))

    def test_declared_size_too_large(self, service, audio_file):
        with pytest.raises(FileTooLarge):
            service.validate(str(audio_file), size=25 * 1024 * 1024 + 1)

    def test_local_size_checked_when_not_declared(self, fake_stt_client, audio_file):
        service = TranscriptionService(fake_stt_client, max_audio_bytes=1024)
        with pytest.raises(FileTooLarge):
            service.validate(str(audio_file))

    def test_missing_file_unreadable(self, service, tmp_path):
        with pytest.raises(ResourceUnreadable):
            service.validate(str(tmp_path / "missing.mp3"))

    def test_filename_overrides_reference(self, service, audio_file):
        """传入原始文件名时按它判断格式"""
        with pytest.raises(UnsupportedFormat):
            service.validate(str(audio_file), filename="resume.docx")


class TestQualityAssessment:
    """测试转写质量评估"""

    def test_thirty_words_never_better_than_medium(self):
        text = " ".join(f"skill{i}" for i in range(30))
        assert assess_quality(text).score == "low"

    def test_repetitions_force_low(self, fake_stt_client):
        text = fake_stt_client.text + " test test test test test"
        assert assess_quality(text).score == "low"

    def test_long_clean_transcript_is_high(self, fake_stt_client):
        quality = assess_quality(fake_stt_client.text)
        assert quality.score == "high"
        assert quality.indicators.has_email
        assert quality.indicators.has_phone
        assert quality.indicators.word_count > 100

    def test_medium_band(self):
        text = " ".join(f"item{i}." for i in range(70))
        assert assess_quality(text).score == "medium"

    def test_gibberish_forces_low(self):
        text = " ".join("x" * 20 for _ in range(120))
        assert assess_quality(text).score == "low"

    def test_recommendations(self):
        quality = assess_quality("hello there")
        assert "Consider re-recording in a quieter environment" in quality.recommendations
        assert "Provide more detail about your experience" in quality.recommendations
        assert "Remember to mention your email address" in quality.recommendations
        assert "Consider including your phone number" in quality.recommendations


class TestSectioning:
    """测试口语分段"""

    def test_identify_sections(self, fake_stt_client):
        sections = identify_sections(fake_stt_client.text)
        assert set(sections) == {"introduction", "experience", "education", "skills"}
        assert sections["introduction"].lower().startswith("my name is john smith")

    def test_formatted_text_has_headers_in_order(self, fake_stt_client):
        formatted = format_for_parsing(fake_stt_client.text, {"source": "test"})

        headers = ["PERSONAL INFORMATION", "EXPERIENCE", "EDUCATION", "SKILLS"]
        positions = [formatted.formatted_text.index(header + "\n") for header in headers]
        assert positions == sorted(positions)
        assert formatted.metadata == {"source": "test", "is_voice_resume": True}
        assert formatted.original_text == fake_stt_client.text

    def test_no_sections_returns_raw_text(self):
        formatted = format_for_parsing("just some words here")
        assert formatted.formatted_text == "just some words here"
        assert formatted.detected_sections == []

    def test_window_limits_section_length(self):
        text = " ".join(f"w{i}" for i in range(200)) + " proficient in Python " + " ".join(f"v{i}" for i in range(200))
        sections = identify_sections(text, window_words=10)
        assert len(sections["skills"].split()) == 20


class TestTranscribe:
    """测试转写调用"""

    def test_transcribe_returns_payload(self, service, fake_stt_client, audio_file):
        payload = asyncio.run(service.transcribe(str(audio_file)))

        assert payload.text == fake_stt_client.text
        assert payload.word_count == len(fake_stt_client.text.split())
        assert payload.character_count == len(fake_stt_client.text)
        assert payload.quality.score == "high"

        filename, size, prompt = fake_stt_client.calls[0]
        assert filename == "resume.mp3"
        assert size == audio_file.stat().st_size
        assert prompt == RESUME_TRANSCRIPTION_PROMPT

    def test_validation_happens_before_call(self, service, fake_stt_client, tmp_path):
        path = tmp_path / "resume.pdf"
        path.write_bytes(b"data")

        with pytest.raises(UnsupportedFormat):
            asyncio.run(service.transcribe(str(path)))
        assert fake_stt_client.calls == []

    @pytest.mark.parametrize("error", [
        InvalidApiKey("bad key", retryable=False),
        RateLimited("slow down"),
        TranscriptionServiceError("garbled"),
    ])
    def test_known_errors_propagate(self, service, fake_stt_client, audio_file, error):
        fake_stt_client.error = error
        with pytest.raises(type(error)):
            asyncio.run(service.transcribe(str(audio_file)))

    def test_other_service_errors_wrapped(self, service, fake_stt_client, audio_file):
        fake_stt_client.error = ModelLoading("still loading", service="huggingface", status_code=503)

        with pytest.raises(TranscriptionServiceError) as exc_info:
            asyncio.run(service.transcribe(str(audio_file)))

        assert exc_info.value.status_code == 503
        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.__cause__, ModelLoading)

    def test_format_for_parsing_adds_method(self, service, fake_stt_client):
        formatted = service.format_for_parsing(fake_stt_client.text)
        assert formatted.metadata["transcription_method"] == "fake-whisper"
