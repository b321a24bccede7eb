"""AI 服务工厂模块

根据配置文件创建 Hugging Face 推理客户端和语音转写客户端。
遵循安全协议：从不读取 .env 文件，只从系统环境变量获取密钥。
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .huggingface_client import DEFAULT_BASE_URL, HuggingFaceInferenceClient
from .speech_to_text import HuggingFaceWhisperClient, OpenAIWhisperClient, SpeechToTextClient


class PipelineSettings(BaseModel):
    """流水线可调参数（ai_config.json 的 pipeline 段）"""
    inter_call_delay_seconds: float = 0.5
    max_audio_bytes: int = 25 * 1024 * 1024
    section_window_words: int = 50
    qa_min_score: float = 0.01


class AIServiceFactory:
    """AI 服务工厂类，负责创建外部 AI 客户端"""

    def __init__(self, config_path: Optional[str] = None):
        """初始化工厂，配置文件延迟加载

        Args:
            config_path: 配置文件路径，如果为 None 则使用 backend/ai_config.json
        """
        if config_path is None:
            # 默认路径：从 backend/resume_intake/ai/factory.py 到 backend/ai_config.json
            default_path = Path(__file__).parent.parent.parent / "ai_config.json"
            self.config_path = str(default_path)
        else:
            self.config_path = config_path
        self._loaded_config = None

    def _load_config(self) -> Dict[str, Any]:
        """加载配置文件

        Returns:
            配置字典

        Raises:
            FileNotFoundError: 配置文件不存在
            json.JSONDecodeError: JSON 格式错误
        """
        if self._loaded_config is None:
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    self._loaded_config = json.load(f)
            except FileNotFoundError:
                raise FileNotFoundError(f"配置文件不存在: {self.config_path}")
            except json.JSONDecodeError as e:
                raise json.JSONDecodeError(f"JSON 格式错误: {e}", e.doc, e.pos)

        return self._loaded_config

    def get_provider_config(self, provider: str) -> Dict[str, Any]:
        """获取某个 provider 的配置

        Raises:
            ValueError: providers 字段缺失或找不到该 provider
        """
        providers = self._load_config().get("providers")
        if not providers:
            raise ValueError("配置文件中缺少 providers 字段")

        provider_config = providers.get(provider)
        if not provider_config:
            raise ValueError(f"providers 中找不到 '{provider}' 的配置")

        return provider_config

    def _get_api_key(self, env_key: str) -> str:
        """从系统环境变量获取 API Key

        Raises:
            ValueError: 环境变量不存在或为空
        """
        api_key = os.getenv(env_key)
        if not api_key:
            raise ValueError(f"环境变量 '{env_key}' 未设置或为空，无法初始化 AI 服务")

        return api_key

    def _api_key_for(self, provider_config: Dict[str, Any]) -> str:
        env_key_map = provider_config.get("env_key_map")
        if not env_key_map:
            raise ValueError("provider 配置中缺少 env_key_map 字段")
        return self._get_api_key(env_key_map)

    def get_pipeline_settings(self) -> PipelineSettings:
        """获取流水线参数，缺省项使用默认值"""
        return PipelineSettings(**self._load_config().get("pipeline", {}))

    def create_huggingface_client(self) -> HuggingFaceInferenceClient:
        """创建 Hugging Face 推理客户端

        Raises:
            ValueError: 配置错误或环境变量缺失
        """
        hf_config = self.get_provider_config("huggingface")
        return HuggingFaceInferenceClient(
            api_key=self._api_key_for(hf_config),
            base_url=hf_config.get("base_url", DEFAULT_BASE_URL),
            models=hf_config.get("models"),
            timeout_seconds=hf_config.get("timeout_seconds", 30.0),
            model_loading_retry_seconds=hf_config.get("model_loading_retry_seconds", 20.0)
        )

    def create_speech_to_text_client(
        self,
        hf_client: Optional[HuggingFaceInferenceClient] = None
    ) -> SpeechToTextClient:
        """按 transcription_provider 创建语音转写客户端

        Args:
            hf_client: 复用已创建的 Hugging Face 客户端（可选）

        Raises:
            ValueError: 配置错误或环境变量缺失
            NotImplementedError: 不支持的 provider
        """
        provider = self._load_config().get("transcription_provider", "openai_whisper")

        if provider == "openai_whisper":
            whisper_config = self.get_provider_config("openai_whisper")
            return OpenAIWhisperClient(
                api_key=self._api_key_for(whisper_config),
                model_name=whisper_config.get("model_name", "whisper-1"),
                base_url=whisper_config.get("base_url"),
                timeout_seconds=whisper_config.get("timeout_seconds", 120.0)
            )
        elif provider == "huggingface":
            return HuggingFaceWhisperClient(hf_client or self.create_huggingface_client())
        else:
            raise NotImplementedError(f"不支持的转写服务: {provider}")
