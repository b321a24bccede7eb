"""
简历解析服务 - 基于抽取式问答

对每个目标字段提问（带备用问题），身份类字段（姓名/邮箱/电话）只在简历开头部分搜索，
避免把推荐人的联系方式当成候选人的。每次问答调用之间有固定间隔，遵守第三方限流。
"""

import asyncio
import logging
import re
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel

from resume_intake.ai.huggingface_client import HuggingFaceInferenceClient
from resume_intake.errors import ExternalServiceError, ParsingServiceError
from resume_intake.models.base import utc_now
from resume_intake.models.payloads import ParsedPayload

logger = logging.getLogger(__name__)

FIRST_SECTION_LIMIT = 800
FIRST_SECTION_MIN_BREAK = 100

SECTION_BREAKERS = [
    "experience", "education", "skills", "summary", "objective",
    "professional", "work history", "employment", "projects",
]

HONORIFIC_PATTERN = re.compile(r"^(Mr\.|Mrs\.|Ms\.|Dr\.|Prof\.)\s*", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
VALID_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SKILL_SEPARATOR_PATTERN = re.compile(r"[,;]")


class ExtractionTask(BaseModel):
    """一个字段的抽取任务"""
    question: str
    target_field: str
    fallback_question: Optional[str] = None
    context_scope: Literal["first_section", "full_text"] = "full_text"


DEFAULT_EXTRACTION_TASKS: List[ExtractionTask] = [
    ExtractionTask(
        question="What is the name at the very beginning of this resume?",
        target_field="name",
        fallback_question="Whose resume is this?",
        context_scope="first_section"
    ),
    ExtractionTask(
        question="What is the first email address mentioned in this resume?",
        target_field="email",
        fallback_question="What email address appears near the name at the top?",
        context_scope="first_section"
    ),
    ExtractionTask(
        question="What is the first phone number listed in this resume?",
        target_field="phone",
        fallback_question="What phone number appears in the contact information?",
        context_scope="first_section"
    ),
    ExtractionTask(
        question="What programming languages and technical skills are mentioned?",
        target_field="skills",
        fallback_question="What are the technical skills?"
    ),
    ExtractionTask(
        question="What is the most recent job title and company?",
        target_field="current_job",
        fallback_question="What is their current position?"
    ),
    ExtractionTask(
        question="What is the highest education degree and institution?",
        target_field="education",
        fallback_question="What education is listed?"
    ),
    ExtractionTask(
        question="How many years of experience are mentioned?",
        target_field="experience",
        fallback_question="What is the work experience?"
    ),
]


# ==================== 文本预处理 ====================

def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def extract_first_section(text: str) -> str:
    """
    简历开头部分（通常是候选人本人信息）

    默认取前 800 个字符，若在第 100 个字符之后出现段落关键词，则截断到最早的那个
    """
    lower_text = text.lower()
    end = FIRST_SECTION_LIMIT

    for breaker in SECTION_BREAKERS:
        index = lower_text.find(breaker)
        if FIRST_SECTION_MIN_BREAK < index < end:
            end = index

    return text[:end]


# ==================== 字段后处理 ====================

def clean_name(raw: str) -> str:
    return HONORIFIC_PATTERN.sub("", raw).strip()


def clean_email(raw: str) -> str:
    """从回答中抽出邮箱并转小写，抽不到则保留原始回答"""
    match = EMAIL_PATTERN.search(raw)
    if match:
        return match.group(0).lower()
    return raw


def clean_phone(raw: str) -> str:
    """只保留数字；不足 10 位时保留原始回答"""
    digits = re.sub(r"\D", "", raw)
    return digits if len(digits) >= 10 else raw


def split_skills(raw: str) -> List[str]:
    skills = [skill.strip() for skill in SKILL_SEPARATOR_PATTERN.split(raw)]
    skills = [skill for skill in skills if skill]
    return skills or [raw]


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(VALID_EMAIL_PATTERN.match(email))


def extraction_confidence(name: Optional[str], email: Optional[str]) -> str:
    """姓名和有效邮箱都有为 high，只有一个为 medium，都没有为 low"""
    present = int(bool(name)) + int(is_valid_email(email))
    return {2: "high", 1: "medium"}.get(present, "low")


def post_process(raw: Dict[str, str]) -> ParsedPayload:
    """把问答原始回答整理成 ParsedPayload"""
    name = clean_name(raw["name"]) if raw.get("name") else None
    email = clean_email(raw["email"]) if raw.get("email") else None

    return ParsedPayload(
        name=name or None,
        email=email,
        phone=clean_phone(raw["phone"]) if raw.get("phone") else None,
        skills=split_skills(raw["skills"]) if raw.get("skills") else None,
        experience=raw.get("experience"),
        education=raw.get("education"),
        current_job=raw.get("current_job"),
        extraction_confidence=extraction_confidence(name, email),
        extracted_at=utc_now()
    )


class ParsingService:
    """问答式简历解析适配器"""

    def __init__(
        self,
        hf_client: HuggingFaceInferenceClient,
        inter_call_delay_seconds: float = 0.5,
        min_score: float = 0.01,
        tasks: Optional[List[ExtractionTask]] = None
    ):
        """
        Args:
            hf_client: Hugging Face 推理客户端
            inter_call_delay_seconds: 相邻两次问答调用的间隔
            min_score: 接受答案的最低置信度（刻意放宽，短答案模型的绝对分数普遍偏低）
            tasks: 抽取任务列表，默认 DEFAULT_EXTRACTION_TASKS
        """
        self.hf_client = hf_client
        self.inter_call_delay_seconds = inter_call_delay_seconds
        self.min_score = min_score
        self.tasks = tasks or DEFAULT_EXTRACTION_TASKS

    async def _ask(self, context: str, question: str) -> Optional[str]:
        """提问一次；置信度不足或答案过短时返回 None"""
        result = await self.hf_client.question_answering(question, context)
        answer = str(result.get("answer") or "").strip()
        score = float(result.get("score") or 0.0)

        if score > self.min_score and len(answer) >= 2:
            return answer
        return None

    async def _pause(self) -> None:
        if self.inter_call_delay_seconds > 0:
            await asyncio.sleep(self.inter_call_delay_seconds)

    async def parse(self, text: str, tasks: Optional[List[ExtractionTask]] = None) -> ParsedPayload:
        """
        从纯文本中抽取结构化字段

        Raises:
            ParsingServiceError: 文本为空，或所有字段的问答调用都失败
        """
        tasks = self.tasks if tasks is None else tasks
        full_text = normalize_whitespace(text)
        if not full_text:
            raise ParsingServiceError("No text to parse", retryable=False)

        first_section = extract_first_section(full_text)
        logger.info("[ParsingService] Parsing %s characters of text", len(full_text))

        raw: Dict[str, str] = {}
        last_error: Optional[ExternalServiceError] = None
        failed_fields = 0

        for index, task in enumerate(tasks):
            context = first_section if task.context_scope == "first_section" else full_text
            if index > 0:
                await self._pause()

            try:
                answer = await self._ask(context, task.question)
                if answer is None and task.fallback_question:
                    await self._pause()
                    answer = await self._ask(context, task.fallback_question)
            except ExternalServiceError as e:
                logger.warning("[ParsingService] Failed to extract %s: %s", task.target_field, e)
                last_error = e
                failed_fields += 1
                continue

            if answer:
                raw[task.target_field] = answer
                logger.debug("[ParsingService] Extracted %s: %s", task.target_field, answer[:50])

        if tasks and failed_fields == len(tasks):
            raise ParsingServiceError(
                f"Question answering failed for every field: {last_error.message}",
                service=last_error.service,
                status_code=last_error.status_code,
                retryable=last_error.retryable
            ) from last_error

        parsed = post_process(raw)
        logger.info(
            "[ParsingService] Extracted %s/%s fields (confidence=%s)",
            len(raw), len(tasks), parsed.extraction_confidence
        )
        return parsed
