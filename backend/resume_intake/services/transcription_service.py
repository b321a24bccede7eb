"""
语音转写服务

职责：
1. 上传校验：格式、大小、可读性，全部在任何网络调用之前完成
2. 调用语音转文字客户端，附带简历场景提示词
3. 转写质量评估（确定性规则）
4. 口语 -> 分段文本：为解析阶段补上 PERSONAL INFORMATION / EXPERIENCE / EDUCATION / SKILLS 标题
"""

import logging
import os
import re
import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from resume_intake.ai.speech_to_text import SpeechToTextClient
from resume_intake.errors import (
    AuthFailed,
    ExternalServiceError,
    FileTooLarge,
    PayloadTooLarge,
    RateLimited,
    ResourceUnreadable,
    TranscriptionServiceError,
    UnsupportedFormat,
)
from resume_intake.models.payloads import QualityAssessment, QualityIndicators, TranscriptionPayload
from .file_resolver import FileReferenceResolver, reference_name

logger = logging.getLogger(__name__)

SUPPORTED_AUDIO_FORMATS = (".mp3", ".wav", ".m4a", ".ogg", ".webm")
MAX_AUDIO_BYTES = 25 * 1024 * 1024

RESUME_TRANSCRIPTION_PROMPT = (
    "This is a spoken resume. Preserve personal names, email addresses, phone numbers, "
    "company names and technical terms exactly as spoken."
)

EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
PHONE_PATTERN = re.compile(r"\d{3}[-.\s]?\d{3}[-.\s]?\d{4}")
# 同一个词连续出现 3 次及以上
REPETITION_PATTERN = re.compile(r"\b(\w+)\b(?:\s+\1\b){2,}", re.IGNORECASE)
SENTENCE_TERMINATOR_PATTERN = re.compile(r"[.!?]+")

# ==================== 口语分段规则 ====================

INTRO_PATTERNS = [
    re.compile(r"my name is .+? and", re.IGNORECASE),
    re.compile(r"i am .+? with", re.IGNORECASE),
    re.compile(r"hello,? i'm", re.IGNORECASE),
    re.compile(r"hi,? my name", re.IGNORECASE),
]
INTRO_WORDS = 50

SECTION_KEYWORDS = {
    "experience": [
        "worked at", "working at", "currently work",
        "experience includes", "my experience",
        "previous role", "current role", "position",
    ],
    "education": [
        "studied at", "graduated from", "degree in",
        "university", "college", "education",
        "bachelor", "master", "phd", "certification",
    ],
    "skills": [
        "skills include", "proficient in", "experienced with",
        "technologies", "programming languages", "familiar with",
    ],
}

SECTION_HEADERS = {
    "introduction": "PERSONAL INFORMATION",
    "experience": "EXPERIENCE",
    "education": "EDUCATION",
    "skills": "SKILLS",
}


class FormattedTranscript(BaseModel):
    """分段后的转写文本"""
    original_text: str
    formatted_text: str
    detected_sections: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ==================== 质量评估 ====================

def _quality_recommendations(score: str, indicators: QualityIndicators) -> List[str]:
    recommendations = []

    if score == "low":
        recommendations.append("Consider re-recording in a quieter environment")
        recommendations.append("Speak more clearly and at a moderate pace")
        if indicators.word_count < 50:
            recommendations.append("Provide more detail about your experience")

    if not indicators.has_email:
        recommendations.append("Remember to mention your email address")

    if not indicators.has_phone:
        recommendations.append("Consider including your phone number")

    if indicators.sentence_count < 5:
        recommendations.append("Try to speak in complete sentences")

    return recommendations


def assess_quality(text: str) -> QualityAssessment:
    """
    转写质量评估

    从 high 开始：少于 100 词降为 medium，少于 50 词降为 low；
    出现连续重复词或平均词长不在 [2, 15] 内（疑似乱码）时无论长度一律为 low
    """
    words = text.split()
    word_count = len(words)
    avg_word_length = sum(len(w) for w in words) / word_count if word_count else 0.0

    indicators = QualityIndicators(
        length=len(text),
        word_count=word_count,
        has_email=bool(EMAIL_PATTERN.search(text)),
        has_phone=bool(PHONE_PATTERN.search(text)),
        sentence_count=len(SENTENCE_TERMINATOR_PATTERN.findall(text)),
        avg_word_length=round(avg_word_length, 2)
    )

    score = "high"
    if word_count < 50:
        score = "low"
    elif word_count < 100:
        score = "medium"

    has_repetitions = bool(REPETITION_PATTERN.search(text))
    has_gibberish = avg_word_length > 15 or avg_word_length < 2
    if has_repetitions or has_gibberish:
        score = "low"

    return QualityAssessment(
        score=score,
        indicators=indicators,
        recommendations=_quality_recommendations(score, indicators)
    )


# ==================== 口语分段 ====================

def _keyword_window(text: str, keywords: List[str], window_words: int) -> Optional[str]:
    """取第一个命中关键词前后各 window_words 个词"""
    lower_text = text.lower()
    words = text.split()

    for keyword in keywords:
        index = lower_text.find(keyword)
        if index == -1:
            continue
        word_index = len(text[:index].split())
        start = max(0, word_index - window_words)
        return " ".join(words[start:word_index + window_words])

    return None


def identify_sections(text: str, window_words: int = 50) -> Dict[str, str]:
    """识别口语中的简历段落，只返回实际找到的段落"""
    sections: Dict[str, str] = {}

    for pattern in INTRO_PATTERNS:
        match = pattern.search(text)
        if match:
            sections["introduction"] = " ".join(text[match.start():].split()[:INTRO_WORDS])
            break

    for name, keywords in SECTION_KEYWORDS.items():
        content = _keyword_window(text, keywords, window_words)
        if content:
            sections[name] = content

    return sections


def format_for_parsing(
    text: str,
    metadata: Optional[Dict[str, Any]] = None,
    window_words: int = 50
) -> FormattedTranscript:
    """
    把口语转写整理成带段落标题的文本，没有识别到任何段落时原样返回
    """
    sections = identify_sections(text, window_words)

    blocks = [
        f"{SECTION_HEADERS[name]}\n{sections[name]}"
        for name in SECTION_HEADERS
        if name in sections
    ]
    formatted = "\n\n".join(blocks) if blocks else text

    return FormattedTranscript(
        original_text=text,
        formatted_text=formatted,
        detected_sections=list(sections),
        metadata={**(metadata or {}), "is_voice_resume": True}
    )


class TranscriptionService:
    """语音简历转写适配器"""

    def __init__(
        self,
        client: SpeechToTextClient,
        resolver: Optional[FileReferenceResolver] = None,
        max_audio_bytes: int = MAX_AUDIO_BYTES,
        section_window_words: int = 50
    ):
        """
        Args:
            client: 语音转文字客户端
            resolver: 文件引用解析器
            max_audio_bytes: 音频大小上限
            section_window_words: 分段时关键词前后截取的词数
        """
        self.client = client
        self.resolver = resolver or FileReferenceResolver()
        self.max_audio_bytes = max_audio_bytes
        self.section_window_words = section_window_words

    @property
    def transcription_method(self) -> str:
        return self.client.method_name

    def validate(self, reference: str, filename: Optional[str] = None, size: Optional[int] = None) -> None:
        """
        上传校验，不发起任何网络请求

        Args:
            reference: 存储引用
            filename: 原始文件名（用于判断格式，缺省时取引用的文件名）
            size: 声明的字节数（缺省时读取本地文件大小）

        Raises:
            UnsupportedFormat: 扩展名不在支持列表
            FileTooLarge: 超过大小上限
            ResourceUnreadable: 文件不可读
        """
        name = filename or reference_name(reference)
        extension = os.path.splitext(name)[1].lower()
        if extension not in SUPPORTED_AUDIO_FORMATS:
            raise UnsupportedFormat(
                f"Unsupported audio format '{extension or name}'. "
                f"Supported formats: {', '.join(SUPPORTED_AUDIO_FORMATS)}"
            )

        self._check_size(size)

        if not self.resolver.is_readable(reference):
            raise ResourceUnreadable(f"Audio file is not readable: {reference}")

        if size is None:
            self._check_size(self.resolver.size_of(reference))

    def _check_size(self, size: Optional[int]) -> None:
        if size is not None and size > self.max_audio_bytes:
            raise FileTooLarge(
                f"Audio file too large ({size} bytes). "
                f"Maximum size: {self.max_audio_bytes // (1024 * 1024)}MB"
            )

    async def transcribe(
        self,
        reference: str,
        filename: Optional[str] = None,
        size: Optional[int] = None
    ) -> TranscriptionPayload:
        """
        转写音频文件

        Raises:
            ValidationError: 校验失败
            AuthFailed / RateLimited / PayloadTooLarge: 原样抛出
            TranscriptionServiceError: 其他转写失败
        """
        self.validate(reference, filename, size)

        resolved = await self.resolver.read(reference)
        self._check_size(resolved.size)
        logger.info(
            "[TranscriptionService] Transcribing %s (%.2f MB)",
            filename or resolved.name, resolved.size / 1024 / 1024
        )

        start = time.monotonic()
        try:
            text = await self.client.transcribe(
                resolved.content,
                filename or resolved.name,
                prompt=RESUME_TRANSCRIPTION_PROMPT
            )
        except (AuthFailed, RateLimited, PayloadTooLarge, TranscriptionServiceError):
            raise
        except ExternalServiceError as e:
            raise TranscriptionServiceError(
                f"Transcription failed: {e.message}",
                service=e.service,
                status_code=e.status_code,
                retryable=e.retryable
            ) from e
        elapsed_ms = int((time.monotonic() - start) * 1000)

        text = text.strip()
        quality = assess_quality(text)
        logger.info(
            "[TranscriptionService] Transcription completed in %sms (%s words, quality=%s)",
            elapsed_ms, quality.indicators.word_count, quality.score
        )

        return TranscriptionPayload(
            text=text,
            word_count=quality.indicators.word_count,
            character_count=len(text),
            quality=quality,
            processing_time_ms=elapsed_ms
        )

    def format_for_parsing(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> FormattedTranscript:
        formatted = format_for_parsing(text, metadata, self.section_window_words)
        formatted.metadata["transcription_method"] = self.transcription_method
        return formatted
