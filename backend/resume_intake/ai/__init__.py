"""
外部 AI 服务客户端
Hugging Face 推理 API、语音转写以及按配置创建它们的工厂
"""

from .huggingface_client import HuggingFaceInferenceClient
from .speech_to_text import (
    SpeechToTextClient,
    OpenAIWhisperClient,
    HuggingFaceWhisperClient,
    normalize_transcription_response,
)
from .factory import AIServiceFactory, PipelineSettings

__all__ = [
    "HuggingFaceInferenceClient",
    "SpeechToTextClient",
    "OpenAIWhisperClient",
    "HuggingFaceWhisperClient",
    "normalize_transcription_response",
    "AIServiceFactory",
    "PipelineSettings",
]
