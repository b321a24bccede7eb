"""Hugging Face Inference API 客户端

所有托管模型（问答、零样本分类、实体识别、句子相似度、语音识别）共用同一个 HTTP 通道：
- 每次调用都有超时上限，超时按服务不可用处理
- HTTP 错误统一映射为 resume_intake.errors 中的领域异常
- 只有"模型加载中"(503 + loading) 会在固定等待后自动重试一次
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from resume_intake.errors import (
    ExternalServiceError,
    InvalidApiKey,
    ModelLoading,
    PayloadTooLarge,
    RateLimited,
    ServiceTimeout,
    ServiceUnavailable,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "huggingface"

DEFAULT_BASE_URL = "https://api-inference.huggingface.co/models/"

DEFAULT_MODELS = {
    "question_answering": "deepset/roberta-base-squad2",
    "zero_shot": "facebook/bart-large-mnli",
    "token_classification": "dslim/bert-base-NER",
    "sentence_similarity": "sentence-transformers/all-MiniLM-L6-v2",
    "speech_to_text": "openai/whisper-small",
}


def _error_detail(response: httpx.Response) -> str:
    """尽量从响应体里取出可读的错误信息"""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return str(body)[:200]


def raise_for_status(response: httpx.Response, model: str) -> None:
    """将 HTTP 错误状态映射为领域异常

    Raises:
        InvalidApiKey: 401 / 403
        RateLimited: 429
        PayloadTooLarge: 413
        ModelLoading: 503 且响应体提示模型加载中
        ServiceUnavailable: 其余 5xx
        ExternalServiceError: 其余 4xx
    """
    status = response.status_code
    if status < 400:
        return

    detail = _error_detail(response)
    message = f"{model}: HTTP {status} {detail}"

    if status in (401, 403):
        raise InvalidApiKey(message, service=SERVICE_NAME, status_code=status, retryable=False)
    if status == 429:
        raise RateLimited(message, service=SERVICE_NAME, status_code=status)
    if status == 413:
        raise PayloadTooLarge(message, service=SERVICE_NAME, status_code=status, retryable=False)
    if status == 503 and "loading" in detail.lower():
        raise ModelLoading(message, service=SERVICE_NAME, status_code=status)
    if status >= 500:
        raise ServiceUnavailable(message, service=SERVICE_NAME, status_code=status)
    raise ExternalServiceError(message, service=SERVICE_NAME, status_code=status, retryable=False)


class HuggingFaceInferenceClient:
    """Hugging Face Inference API 的异步客户端"""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        models: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 30.0,
        model_loading_retry_seconds: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            api_key: Hugging Face API Token
            base_url: 推理 API 根地址（以 / 结尾）
            models: 能力名 -> 模型 ID 的映射，缺省项使用 DEFAULT_MODELS
            timeout_seconds: 单次请求超时
            model_loading_retry_seconds: 模型加载中时的等待时长
            transport: 自定义 httpx transport（测试时注入 MockTransport）
        """
        self.api_key = api_key
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.models = {**DEFAULT_MODELS, **(models or {})}
        self.timeout_seconds = timeout_seconds
        self.model_loading_retry_seconds = model_loading_retry_seconds
        self._transport = transport

    def _model_url(self, capability: str) -> str:
        return self.base_url + self.models[capability]

    async def _send(self, capability: str, **request_kwargs) -> Any:
        """发送一次请求并返回解析后的 JSON"""
        url = self._model_url(capability)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        headers.update(request_kwargs.pop("headers", {}))

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport
            ) as client:
                response = await client.post(url, headers=headers, **request_kwargs)
        except httpx.TimeoutException as e:
            raise ServiceTimeout(
                f"{self.models[capability]}: request timed out after {self.timeout_seconds}s",
                service=SERVICE_NAME
            ) from e
        except httpx.TransportError as e:
            raise ServiceUnavailable(
                f"{self.models[capability]}: {e}",
                service=SERVICE_NAME
            ) from e

        raise_for_status(response, self.models[capability])

        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"{self.models[capability]}: response is not valid JSON",
                service=SERVICE_NAME,
                status_code=response.status_code,
                retryable=False
            ) from e

    async def _call(self, capability: str, **request_kwargs) -> Any:
        """调用模型；模型加载中时等待后重试一次"""
        try:
            return await self._send(capability, **request_kwargs)
        except ModelLoading:
            logger.info(
                "[HuggingFace] %s is loading, retrying in %ss",
                self.models[capability], self.model_loading_retry_seconds
            )
            await asyncio.sleep(self.model_loading_retry_seconds)
            return await self._send(capability, **request_kwargs)

    # ==================== 能力接口 ====================

    async def question_answering(self, question: str, context: str) -> Dict[str, Any]:
        """抽取式问答，返回 {answer, score, start, end}"""
        data = await self._call(
            "question_answering",
            json={"inputs": {"question": question, "context": context}}
        )
        # 部分模型版本返回单元素列表
        if isinstance(data, list):
            data = data[0] if data else {}
        return data

    async def zero_shot_classification(
        self,
        text: str,
        candidate_labels: List[str],
        multi_label: bool = False,
        hypothesis_template: Optional[str] = None
    ) -> Dict[str, Any]:
        """零样本分类，返回按得分降序排列的 {labels, scores}"""
        parameters: Dict[str, Any] = {"candidate_labels": candidate_labels, "multi_label": multi_label}
        if hypothesis_template:
            parameters["hypothesis_template"] = hypothesis_template

        data = await self._call("zero_shot", json={"inputs": text, "parameters": parameters})
        if isinstance(data, list):
            data = data[0] if data else {}
        return data

    async def token_classification(self, text: str) -> List[Dict[str, Any]]:
        """命名实体识别，返回 [{word, entity_group, score, start, end}]"""
        data = await self._call(
            "token_classification",
            json={"inputs": text, "parameters": {"aggregation_strategy": "simple"}}
        )
        return data or []

    async def sentence_similarity(self, source_sentence: str, sentences: List[str]) -> List[float]:
        """句子相似度，返回与 sentences 一一对应的余弦相似度"""
        data = await self._call(
            "sentence_similarity",
            json={"inputs": {"source_sentence": source_sentence, "sentences": sentences}}
        )
        return [float(score) for score in data]

    async def automatic_speech_recognition(
        self,
        audio: bytes,
        content_type: str = "application/octet-stream"
    ) -> Any:
        """语音识别，请求体直接是音频二进制"""
        return await self._call(
            "speech_to_text",
            content=audio,
            headers={"Content-Type": content_type}
        )
