"""语音转文字客户端

统一的 SpeechToTextClient 接口，两种实现：
- OpenAIWhisperClient：OpenAI 官方 Whisper（openai SDK，关闭 SDK 自带重试）
- HuggingFaceWhisperClient：Hugging Face 托管的 Whisper 模型
"""

import logging
import mimetypes
from abc import ABC, abstractmethod
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from resume_intake.errors import (
    ExternalServiceError,
    InvalidApiKey,
    PayloadTooLarge,
    RateLimited,
    ServiceTimeout,
    ServiceUnavailable,
    TranscriptionServiceError,
)
from .huggingface_client import HuggingFaceInferenceClient

logger = logging.getLogger(__name__)


def normalize_transcription_response(data: Any) -> str:
    """把不同模型返回的转写结果统一成字符串

    支持 {"text": ...}、纯字符串、分段列表（元素为 {"text": ...} 或字符串）三种形状

    Raises:
        TranscriptionServiceError: 无法识别的响应格式
    """
    if isinstance(data, dict) and data.get("text") is not None:
        return str(data["text"]).strip()

    if isinstance(data, str):
        return data.strip()

    if isinstance(data, list):
        parts = []
        for segment in data:
            if isinstance(segment, dict):
                parts.append(str(segment.get("text", "")))
            else:
                parts.append(str(segment))
        return " ".join(parts).strip()

    # openai SDK 返回的 Transcription 对象
    text = getattr(data, "text", None)
    if isinstance(text, str):
        return text.strip()

    raise TranscriptionServiceError("Unexpected transcription response format")


class SpeechToTextClient(ABC):
    """语音转文字客户端接口"""

    service_name: str = "speech_to_text"
    method_name: str = "whisper"

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str, prompt: Optional[str] = None) -> str:
        """转写音频，返回去除首尾空白的文本"""


class OpenAIWhisperClient(SpeechToTextClient):
    """OpenAI Whisper 转写"""

    service_name = "openai_whisper"
    method_name = "openai-whisper"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "whisper-1",
        base_url: Optional[str] = None,
        timeout_seconds: float = 120.0,
        client: Optional[AsyncOpenAI] = None
    ):
        """
        Args:
            api_key: OpenAI API Key
            model_name: 转写模型名
            base_url: 兼容接口地址（可选）
            timeout_seconds: 单次请求超时
            client: 现成的 AsyncOpenAI 实例（测试时注入）
        """
        self.model_name = model_name
        # 重试策略由流水线统一决定，SDK 层不重试
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0
        )

    async def transcribe(self, audio: bytes, filename: str, prompt: Optional[str] = None) -> str:
        request = {
            "model": self.model_name,
            "file": (filename, audio),
            "response_format": "json",
        }
        if prompt:
            request["prompt"] = prompt

        try:
            result = await self._client.audio.transcriptions.create(**request)
        except openai.APIError as e:
            raise self._map_error(e) from e

        return normalize_transcription_response(result)

    def _map_error(self, error: "openai.APIError") -> ExternalServiceError:
        """openai SDK 异常 -> 领域异常"""
        service = self.service_name
        message = f"OpenAI Whisper: {error}"

        if isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return InvalidApiKey(message, service=service, status_code=error.status_code, retryable=False)
        if isinstance(error, openai.RateLimitError):
            return RateLimited(message, service=service, status_code=error.status_code)
        # APITimeoutError 是 APIConnectionError 的子类，必须先判断
        if isinstance(error, openai.APITimeoutError):
            return ServiceTimeout(message, service=service)
        if isinstance(error, openai.APIConnectionError):
            return ServiceUnavailable(message, service=service)
        if isinstance(error, openai.APIStatusError):
            if error.status_code == 413:
                return PayloadTooLarge(message, service=service, status_code=413, retryable=False)
            if error.status_code >= 500:
                return ServiceUnavailable(message, service=service, status_code=error.status_code)
            return TranscriptionServiceError(message, service=service, status_code=error.status_code)
        return TranscriptionServiceError(message, service=service)


class HuggingFaceWhisperClient(SpeechToTextClient):
    """Hugging Face 托管的 Whisper 转写

    推理 API 不支持提示词，prompt 参数被忽略
    """

    service_name = "huggingface"
    method_name = "whisper"

    def __init__(self, hf_client: HuggingFaceInferenceClient):
        self.hf_client = hf_client

    async def transcribe(self, audio: bytes, filename: str, prompt: Optional[str] = None) -> str:
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        data = await self.hf_client.automatic_speech_recognition(audio, content_type=content_type)
        return normalize_transcription_response(data)
