"""
语音转文字客户端测试
OpenAI Whisper 走真实的 openai SDK + httpx.MockTransport；Hugging Face Whisper 使用 Fake 推理客户端
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import AsyncOpenAI

from resume_intake.ai.speech_to_text import (
    HuggingFaceWhisperClient,
    OpenAIWhisperClient,
    normalize_transcription_response,
)
from resume_intake.errors import (
    InvalidApiKey,
    PayloadTooLarge,
    RateLimited,
    ServiceTimeout,
    ServiceUnavailable,
    TranscriptionServiceError,
)


def _whisper(handler) -> OpenAIWhisperClient:
    sdk_client = AsyncOpenAI(
        api_key="sk-test",
        base_url="https://openai.test/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )
    return OpenAIWhisperClient(client=sdk_client)


class TestNormalizeResponse:
    """测试转写响应归一化"""

    @pytest.mark.parametrize("data,expected", [
        ({"text": "  hello world "}, "hello world"),
        ("plain text\n", "plain text"),
        ([{"text": "hello"}, {"text": "world"}], "hello world"),
        (["hello", "world"], "hello world"),
        (SimpleNamespace(text=" from sdk "), "from sdk"),
    ])
    def test_supported_shapes(self, data, expected):
        assert normalize_transcription_response(data) == expected

    @pytest.mark.parametrize("data", [{"error": "x"}, 42, None])
    def test_unsupported_shape(self, data):
        with pytest.raises(TranscriptionServiceError):
            normalize_transcription_response(data)


class TestOpenAIWhisperClient:
    """测试 OpenAI Whisper 客户端"""

    def test_transcribe_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = request.read()
            return httpx.Response(200, json={"text": " My name is John Smith. "})

        text = asyncio.run(_whisper(handler).transcribe(b"ID3audio", "resume.mp3", prompt="resume prompt"))

        assert text == "My name is John Smith."
        assert seen["url"] == "https://openai.test/v1/audio/transcriptions"
        assert b"whisper-1" in seen["body"]
        assert b"resume prompt" in seen["body"]
        assert b"resume.mp3" in seen["body"]

    @pytest.mark.parametrize("status,error_type", [
        (401, InvalidApiKey),
        (403, InvalidApiKey),
        (429, RateLimited),
        (413, PayloadTooLarge),
        (500, ServiceUnavailable),
        (503, ServiceUnavailable),
        (400, TranscriptionServiceError),
    ])
    def test_status_errors_mapped(self, status, error_type):
        def handler(request):
            return httpx.Response(status, json={"error": {"message": "failure", "type": "error"}})

        with pytest.raises(error_type) as exc_info:
            asyncio.run(_whisper(handler).transcribe(b"audio", "resume.mp3"))

        assert exc_info.value.status_code == status
        assert exc_info.value.service == "openai_whisper"

    def test_auth_error_not_retryable(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Incorrect API key"}})

        with pytest.raises(InvalidApiKey) as exc_info:
            asyncio.run(_whisper(handler).transcribe(b"audio", "resume.mp3"))
        assert exc_info.value.retryable is False

    def test_timeout_mapped(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ServiceTimeout):
            asyncio.run(_whisper(handler).transcribe(b"audio", "resume.mp3"))

    def test_connection_error_mapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ServiceUnavailable) as exc_info:
            asyncio.run(_whisper(handler).transcribe(b"audio", "resume.mp3"))
        assert not isinstance(exc_info.value, ServiceTimeout)


class TestHuggingFaceWhisperClient:
    """测试 Hugging Face 托管的 Whisper"""

    def test_content_type_from_filename(self):
        hf_client = SimpleNamespace(automatic_speech_recognition=AsyncMock(return_value={"text": "hello"}))
        client = HuggingFaceWhisperClient(hf_client)

        text = asyncio.run(client.transcribe(b"audio", "resume.wav", prompt="ignored"))

        assert text == "hello"
        args, kwargs = hf_client.automatic_speech_recognition.await_args
        assert args == (b"audio",)
        assert kwargs["content_type"].startswith("audio/")

    def test_unknown_extension_falls_back(self):
        hf_client = SimpleNamespace(automatic_speech_recognition=AsyncMock(return_value=[{"text": "a"}, {"text": "b"}]))
        client = HuggingFaceWhisperClient(hf_client)

        assert asyncio.run(client.transcribe(b"audio", "resume.unknownext")) == "a b"
        hf_client.automatic_speech_recognition.assert_awaited_once_with(
            b"audio", content_type="application/octet-stream"
        )
